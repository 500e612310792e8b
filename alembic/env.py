"""Alembic environment for Comment ModBot.

Takes DATABASE_URL from config.py (which loads .env) so migrations run
against the same store as the bot, SQLite or PostgreSQL.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine

from alembic import context
from config import DATABASE_URL

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

if DATABASE_URL:
    url = DATABASE_URL
    # SQLAlchemy only accepts the postgresql:// spelling
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    config.set_main_option("sqlalchemy.url", url)


def run_migrations_offline() -> None:
    """Emit the SQL script without connecting."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=None, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(config.get_main_option("sqlalchemy.url", "sqlite:///modbot.db"))

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
