"""
Alembic migration environment: reads DATABASE_URL_SYNC from app settings.

Only the reference tables declared under ``app.db.models`` are managed
here.  Sample tables (``SA_*`` and their derivatives) are created at upload
time and must never be touched by autogenerate.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from app.core.config import settings
from app.db.models import Base  # noqa: F401  (registers every model)
from app.samples.schema import SAMPLE_TABLE_PREFIX

config = context.config

sync_url = settings.DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", sync_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip dynamically created sample tables during autogenerate."""
    if type_ == "table" and reflected and name.startswith(SAMPLE_TABLE_PREFIX):
        return False
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with sync engine."""
    connectable = create_engine(
        sync_url,
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
