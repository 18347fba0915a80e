"""
Alembic migration environment for League Rankings.

The database URL comes from leaguerank.config (DATABASE_URL / .env), never
from alembic.ini, and autogenerate compares against leaguerank.db.models.

    alembic upgrade head            # online, against DATABASE_URL
    alembic upgrade head --sql      # offline, print the SQL instead
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Models must be imported before Base.metadata is read
from leaguerank.config import settings
from leaguerank.db.models import Base

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_kwargs(dialect_name: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        # SQLite can't ALTER most things in place
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to the database."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url.split(":", 1)[0]),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a fresh, unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_kwargs(connection.dialect.name),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
