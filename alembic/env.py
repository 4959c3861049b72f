"""
Alembic environment for the billing schema.

Both the app (``init_db``) and the ``alembic`` CLI come through here. The
CLI resolves the database the same way the app does, so
``alembic upgrade head`` and a service start touch the same file.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from app.core.database import database_url
from app.models.billing import BillingRecord  # noqa: F401
from app.models.user import User  # noqa: F401

config = context.config

# configparser interpolation: escape % in passwords
config.set_main_option("sqlalchemy.url", database_url().replace("%", "%%"))

# init_db() passes configure_logger=False so structlog keeps the root logger
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        # batch mode lets ALTER-style migrations run on SQLite
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
