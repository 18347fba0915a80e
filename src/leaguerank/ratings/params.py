"""
Rating model parameters and their persistence.

RatingParams holds every tunable number of the model in one object. The
calculation job records the params it used on the job row, so any published
rankings table can be traced back to the exact model that produced it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields

from sqlalchemy.orm import Session

from leaguerank.config import Settings, get_settings
from leaguerank.db.models import GAME_PLAYOFF, RatingParameterSet
from leaguerank.ratings.constants import (
    DECAY_DEFAULTS,
    DEFAULT_BETA,
    DEFAULT_DRAW_PROBABILITY,
    DEFAULT_MU,
    DEFAULT_SIGMA,
    DEFAULT_TAU,
    MARGIN_DEFAULTS,
    MIN_SIGMA,
    PLAYOFF_MULTIPLIER,
)

logger = logging.getLogger(__name__)

DEFAULT_PARAMS_VERSION = "defaults-v1"


@dataclass(frozen=True)
class RatingParams:
    """All rating model parameters in one object."""
    # TrueSkill environment
    initial_mu: float = DEFAULT_MU
    initial_sigma: float = DEFAULT_SIGMA
    beta: float = DEFAULT_BETA
    tau: float = DEFAULT_TAU
    draw_probability: float = DEFAULT_DRAW_PROBABILITY
    min_sigma: float = MIN_SIGMA

    # Game weighting
    playoff_multiplier: float = PLAYOFF_MULTIPLIER
    margin_scale: float = MARGIN_DEFAULTS["margin_scale"]
    max_full_weight_differential: float = MARGIN_DEFAULTS["max_full_weight_differential"]
    margin_multiplier_max: float = MARGIN_DEFAULTS["multiplier_max"]

    # Season boundaries
    apply_decay: bool = True
    season_decay_factor: float = DECAY_DEFAULTS["season_decay_factor"]
    season_sigma_drift: float = DECAY_DEFAULTS["season_sigma_drift"]
    inactive_after_seasons: int = DECAY_DEFAULTS["inactive_after_seasons"]

    def __post_init__(self):
        if not 0.0 <= self.draw_probability < 1.0:
            raise ValueError("draw_probability must be in [0, 1)")
        if self.initial_sigma <= 0 or self.beta <= 0:
            raise ValueError("initial_sigma and beta must be positive")
        if not 0.0 <= self.season_decay_factor <= 1.0:
            raise ValueError("season_decay_factor must be in [0, 1]")
        if self.inactive_after_seasons < 1:
            raise ValueError("inactive_after_seasons must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RatingParams":
        """Build params from the RATING_* settings."""
        s = settings or get_settings()
        return cls(
            initial_mu=s.rating_initial_mu,
            initial_sigma=s.rating_initial_sigma,
            beta=s.rating_beta,
            tau=s.rating_tau,
            draw_probability=s.rating_draw_probability,
            min_sigma=s.rating_min_sigma,
            playoff_multiplier=s.rating_playoff_multiplier,
            margin_scale=s.rating_margin_scale,
            max_full_weight_differential=s.rating_max_full_weight_differential,
            margin_multiplier_max=s.rating_margin_multiplier_max,
            season_decay_factor=s.rating_season_decay_factor,
            season_sigma_drift=s.rating_season_sigma_drift,
            inactive_after_seasons=s.rating_inactive_after_seasons,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "RatingParams":
        """Build params from a stored dict, ignoring keys this version doesn't know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)

    def multiplier_for(self, game_type: str) -> float:
        """Mean-update multiplier for a game type."""
        if game_type == GAME_PLAYOFF:
            return self.playoff_multiplier
        return 1.0


def get_active_rating_params(session: Session) -> tuple[RatingParams, str]:
    """Return active persisted params, or settings-based defaults if none are active."""
    active = (
        session.query(RatingParameterSet)
        .filter(RatingParameterSet.is_active.is_(True))
        .order_by(RatingParameterSet.created_at.desc(), RatingParameterSet.id.desc())
        .first()
    )
    if not active:
        return RatingParams.from_settings(), DEFAULT_PARAMS_VERSION

    try:
        params = RatingParams.from_dict(active.params or {})
    except (TypeError, ValueError) as e:
        logger.warning("Ignoring invalid parameter set '%s': %s", active.name, e)
        return RatingParams.from_settings(), DEFAULT_PARAMS_VERSION

    return params, active.name


def persist_rating_params(
    session: Session,
    name: str,
    params: RatingParams,
    source: str = "manual",
    activate: bool = False,
) -> RatingParameterSet:
    """Persist a named params set and optionally activate it."""
    if activate:
        session.query(RatingParameterSet).update({RatingParameterSet.is_active: False})

    record = RatingParameterSet(
        name=name,
        params=params.to_dict(),
        source=source,
        is_active=activate,
    )
    session.add(record)
    session.flush()
    return record
