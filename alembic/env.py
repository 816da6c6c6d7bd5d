from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection

from gymflow.database.connection import get_database_url
from gymflow.database.orm_models import Base

config = context.config
if config.config_file_name is not None:
    # app loggers stay enabled under gymflow-migrate
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _target_url() -> str:
    """URL set by the migration runner, else DATABASE_URL / DB_* like the app."""
    if config.attributes.get("url_from_runner"):
        return str(config.get_main_option("sqlalchemy.url"))
    return get_database_url()


def _configure(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
        compare_type=True,
    )


def run_migrations_offline() -> None:
    context.configure(
        url=_target_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    shared = config.attributes.get("connection")
    if shared is not None:
        _configure(shared)
        with context.begin_transaction():
            context.run_migrations()
        return

    engine = create_engine(_target_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _configure(connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
