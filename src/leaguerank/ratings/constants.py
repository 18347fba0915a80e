"""
Rating model constants.

The skill model is TrueSkill, with every number expressed relative to the
starting mean of 25 (sigma0 = mu0 / 3, beta = mu0 / 6, tau = mu0 / 300).

mu: Estimated skill. Ranking is by mu alone, uncertainty is reported
    alongside it but never subtracted.
sigma: Uncertainty around mu. Shrinks as a player plays, widens again at
    each season boundary so a returning player can move quickly.

The league-specific modifiers on top of plain TrueSkill:
- Playoff games move ratings further (playoff multiplier)
- Lopsided scores move ratings further, with diminishing returns past a
  few points (point differential weighting)
- Between seasons every rating regresses toward the baseline
"""

# Starting distribution for a player's first game
DEFAULT_MU = 25.0
DEFAULT_SIGMA = DEFAULT_MU / 3.0

# Performance variance and per-game dynamics
DEFAULT_BETA = DEFAULT_MU / 6.0
DEFAULT_TAU = DEFAULT_MU / 300.0

# Prior chance of a draw between two equal sides
DEFAULT_DRAW_PROBABILITY = 0.10

# Sigma never drops below this, so long-time players can still move
MIN_SIGMA = 0.5

# Playoff games carry more information about a player's level
PLAYOFF_MULTIPLIER = 1.8

# Default parameters for point differential scaling
# margin_scale: how much a full-weight differential amplifies the update
# max_full_weight_differential: differential counted 1:1 before log damping
# log_weight: slope of the log damping beyond the full-weight range
# multiplier_max: hard ceiling on the resulting multiplier
MARGIN_DEFAULTS = {
    "margin_scale": 0.25,
    "max_full_weight_differential": 5.0,
    "log_weight": 2.2,
    "multiplier_max": 2.0,
}

# Default parameters for between-season decay
# season_decay_factor: share of (mu - mu0) kept across one boundary.
#   0.95 per season is the same long-run regression as the 0.82 applied once
#   every four seasons in the old seasonal model.
# season_sigma_drift: sigma added in quadrature at each boundary
# inactive_after_seasons: seasons without a game before a player drops out
#   of the active rankings
DECAY_DEFAULTS = {
    "season_decay_factor": 0.95,
    "season_sigma_drift": 1.0,
    "inactive_after_seasons": 2,
}

# Game outcomes from the home side's point of view
OUTCOME_HOME_WIN = "home"
OUTCOME_AWAY_WIN = "away"
OUTCOME_DRAW = "draw"
