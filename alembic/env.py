"""
Alembic environment for the entitlement tables.
The URL comes from app settings (DATABASE_URL) unless alembic.ini or
app.main sets sqlalchemy.url explicitly.
"""
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context

from app.core.config import settings
from app.db.base import Base
import app.models  # noqa: F401

config = context.config
target_metadata = Base.metadata

if config.config_file_name is not None:
    # Keep the app's loggers alive when migrations run at startup
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def get_url() -> str:
    return config.get_main_option("sqlalchemy.url") or settings.database_url


def include_object(obj, name, type_, reflected, compare_to):
    # auth.* belongs to Supabase; only public tables are ours
    if type_ == "table" and getattr(obj, "schema", None) not in (None, "public"):
        return False
    return True


def _configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "include_object": include_object,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = get_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_url()
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
