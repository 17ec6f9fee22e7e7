from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from chatledger.config import settings
from chatledger.db import search  # noqa: F401  (registers FTS DDL hooks)
from chatledger.models.db import Base

# Alembic Config object
config = context.config

# Python logging from ini file
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# An explicit sqlalchemy.url (alembic -x or ini) wins over settings
DATABASE_URL = config.get_main_option("sqlalchemy.url") or settings.database_url

# Import metadata for autogenerate
target_metadata = Base.metadata


def include_name(name, type_, parent_names):
    """Skip the full-text side tables; they are managed by raw DDL."""
    if type_ == "table":
        return "_fts" not in name
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_name=include_name,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_name=include_name,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
