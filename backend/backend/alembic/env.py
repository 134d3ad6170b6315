from __future__ import annotations
from logging.config import fileConfig
from alembic import context

from app.core.config import DATABASE_URL
from app.db.base import Base
from app.db import models  # noqa: F401 registers inventory, product, manufacturing, audit and outbox tables
from app.db.session import make_engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _url() -> str:
    # -x url=... overrides DATABASE_URL for one-off runs
    return context.get_x_argument(as_dictionary=True).get("url", DATABASE_URL)


def _configure(**kw):
    url = kw.get("url") or ""
    conn = kw.get("connection")
    is_sqlite = url.startswith("sqlite") or (conn is not None and conn.dialect.name == "sqlite")
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER constraints in place
        render_as_batch=is_sqlite,
        **kw,
    )


def run_migrations_offline():
    _configure(url=_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    engine = make_engine(_url())
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
