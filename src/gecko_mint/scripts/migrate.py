# src/gecko_mint/scripts/migrate.py
from __future__ import annotations

import os

from alembic import command
from alembic.config import Config

from gecko_mint.core.settings import Settings

_MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "..", "migrations")


def run_upgrade_head(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    cfg = Config(os.path.join(_MIGRATIONS_DIR, "alembic.ini"))
    # Inject sync URL for Alembic (psycopg driver)
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    cfg.set_main_option("script_location", os.path.abspath(_MIGRATIONS_DIR))
    command.upgrade(cfg, "head")


if __name__ == "__main__":
    run_upgrade_head()
