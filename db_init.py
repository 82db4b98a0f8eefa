# db_init.py
import logging
from pathlib import Path

from sqlalchemy import inspect

from config import Config
from models import Base, ensure_sqlite_dir, make_engine

logger = logging.getLogger(__name__)


def init_db(db_url: str, exports_dir: str, echo: bool = False) -> list[str]:
    """Create the SQLite folder, the exports folder and every table. Returns the table names."""
    ensure_sqlite_dir(db_url)
    Path(exports_dir).mkdir(parents=True, exist_ok=True)

    engine = make_engine(db_url, echo=echo)
    Base.metadata.create_all(engine)
    return sorted(inspect(engine).get_table_names())


def main():
    logging.basicConfig(level=Config.LOG_LEVEL.upper(), format="%(levelname)s %(name)s: %(message)s")

    tables = init_db(Config.SQLALCHEMY_DATABASE_URI, Config.EXPORTS_DIR, echo=Config.SQLALCHEMY_ECHO)
    logger.info("Database initialized at %s (tables: %s)", Config.SQLALCHEMY_DATABASE_URI, ", ".join(tables))
    logger.info("Exports dir: %s", Config.EXPORTS_DIR)


if __name__ == "__main__":
    main()
