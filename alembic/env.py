"""Alembic environment configuration.

The database URL comes from groupdesk.config so migrations and the app
always point at the same database. SQLite runs in batch mode, since it
cannot ALTER most constraints in place.
"""
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from groupdesk.config import settings
from groupdesk.database import Base

# Import all models so they register with Base.metadata
from groupdesk.models.user import User  # noqa: F401
from groupdesk.models.group import Group, GroupMember  # noqa: F401
from groupdesk.models.join_request import JoinRequest  # noqa: F401
from groupdesk.models.moderation import GroupBlock, GroupRemoval  # noqa: F401
from groupdesk.models.invite import GroupInvite  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
is_sqlite = settings.DATABASE_URL.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a live connection."""
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=is_sqlite,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single, unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=is_sqlite,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
