"""Create league and rankings engine tables

Revision ID: 3d1a6c0e9b72
Revises:
Create Date: 2026-10-01 09:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision: str = "3d1a6c0e9b72"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    # --- League tables ---
    op.create_table(
        "seasons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("date_start", sa.DateTime(), nullable=True),
        sa.Column("date_end", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("firstname", sa.String(length=100), nullable=False),
        sa.Column("lastname", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "roster_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "player_id", name="uq_roster_team_player"),
    )
    op.create_index("idx_roster_entries_team", "roster_entries", ["team_id"], unique=False)

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=False),
        sa.Column("away_team_id", sa.Integer(), nullable=False),
        sa.Column("home_score", sa.Integer(), nullable=True),
        sa.Column("away_score", sa.Integer(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("field", sa.Integer(), nullable=True),
        sa.Column("game_type", sa.String(length=20), nullable=False, server_default="regular"),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.ForeignKeyConstraint(["home_team_id"], ["teams.id"]),
        sa.ForeignKeyConstraint(["away_team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_games_season_scheduled", "games", ["season_id", "scheduled_at"], unique=False)
    op.create_index("idx_games_scheduled_id", "games", ["scheduled_at", "id"], unique=False)

    # --- Rankings engine tables ---
    op.create_table(
        "calculation_jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("calculation_id", sa.String(length=64), nullable=False),
        sa.Column("calculation_type", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("triggered_by", sa.String(length=120), nullable=True),
        sa.Column("worker_id", sa.String(length=120), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("heartbeat_at", sa.DateTime(), nullable=True),
        sa.Column("current_step", sa.String(length=200), nullable=False),
        sa.Column("percent_complete", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_season_id", sa.Integer(), nullable=True),
        sa.Column("current_week", sa.Integer(), nullable=True),
        sa.Column("rounds_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_rounds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_games", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("seasons_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_seasons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("checkpoint_season_id", sa.Integer(), nullable=True),
        sa.Column("checkpoint_week", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_stack", sa.Text(), nullable=True),
        sa.Column("error_at", sa.DateTime(), nullable=True),
        sa.Column("parameters", _json(), nullable=False),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint(
            "percent_complete >= 0 AND percent_complete <= 100",
            name="ck_calculation_jobs_percent_range",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("calculation_id"),
    )
    op.create_index("idx_calculation_jobs_status", "calculation_jobs", ["status"], unique=False)
    op.create_index("idx_calculation_jobs_started_at", "calculation_jobs", ["started_at"], unique=False)

    op.create_table(
        "player_ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("calculation_id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("player_name", sa.String(length=220), nullable=False),
        sa.Column("mu", sa.Float(), nullable=False),
        sa.Column("sigma", sa.Float(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("total_games", sa.Integer(), nullable=False),
        sa.Column("total_seasons", sa.Integer(), nullable=False),
        sa.Column("last_season_id", sa.Integer(), nullable=True),
        sa.Column("last_game_at", sa.DateTime(), nullable=True),
        sa.Column("last_rating_change", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("calculation_id", "player_id", name="uq_player_ratings_calc_player"),
    )
    op.create_index("idx_player_ratings_calc_rank", "player_ratings", ["calculation_id", "rank"], unique=False)

    op.create_table(
        "current_rankings",
        sa.Column("key", sa.String(length=20), nullable=False),
        sa.Column("calculation_id", sa.String(length=64), nullable=False),
        sa.Column("published_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "ranking_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("calculation_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("snapshot_at", sa.DateTime(), nullable=False),
        sa.Column("rankings", _json(), nullable=False),
        sa.Column("games_in_week", sa.Integer(), nullable=False),
        sa.Column("rounds_in_week", sa.Integer(), nullable=False),
        sa.Column("total_games_processed", sa.Integer(), nullable=False),
        sa.Column("average_rating", sa.Float(), nullable=False),
        sa.Column("active_player_count", sa.Integer(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("calculation_id", "season_id", "week", name="uq_ranking_snapshots_bucket"),
        sa.UniqueConstraint("calculation_id", "sequence", name="uq_ranking_snapshots_sequence"),
    )
    op.create_index(
        "idx_ranking_snapshots_calc_season",
        "ranking_snapshots",
        ["calculation_id", "season_id"],
        unique=False,
    )

    op.create_table(
        "calculated_rounds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("calculation_id", sa.String(length=64), nullable=False),
        sa.Column("round_id", sa.String(length=40), nullable=False),
        sa.Column("round_start", sa.DateTime(), nullable=False),
        sa.Column("season_id", sa.Integer(), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("game_count", sa.Integer(), nullable=False),
        sa.Column("game_ids", _json(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("calculation_id", "round_id", name="uq_calculated_rounds_calc_round"),
    )

    op.create_table(
        "rating_parameter_sets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("params", _json(), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("idx_rating_parameter_sets_active", "rating_parameter_sets", ["is_active"], unique=False)

    # At most one active parameter set
    op.create_index(
        "uq_rating_parameter_sets_single_active",
        "rating_parameter_sets",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )


def downgrade() -> None:
    op.drop_index("uq_rating_parameter_sets_single_active", table_name="rating_parameter_sets")
    op.drop_index("idx_rating_parameter_sets_active", table_name="rating_parameter_sets")
    op.drop_table("rating_parameter_sets")
    op.drop_table("calculated_rounds")
    op.drop_index("idx_ranking_snapshots_calc_season", table_name="ranking_snapshots")
    op.drop_table("ranking_snapshots")
    op.drop_table("current_rankings")
    op.drop_index("idx_player_ratings_calc_rank", table_name="player_ratings")
    op.drop_table("player_ratings")
    op.drop_index("idx_calculation_jobs_started_at", table_name="calculation_jobs")
    op.drop_index("idx_calculation_jobs_status", table_name="calculation_jobs")
    op.drop_table("calculation_jobs")
    op.drop_index("idx_games_scheduled_id", table_name="games")
    op.drop_index("idx_games_season_scheduled", table_name="games")
    op.drop_table("games")
    op.drop_index("idx_roster_entries_team", table_name="roster_entries")
    op.drop_table("roster_entries")
    op.drop_table("teams")
    op.drop_table("players")
    op.drop_table("seasons")
