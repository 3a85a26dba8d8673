# scripts/init_db.py
"""
Create the billing tables in DATABASE_URL.

    python -m scripts.init_db           # create missing tables
    python -m scripts.init_db --reset   # drop everything first
"""

import argparse
import logging

from billing_api.db.engine import get_engine
from billing_api.db.schema import metadata

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()

    engine = get_engine()
    if args.reset:
        metadata.drop_all(engine)
        logger.warning("Dropped tables: %s", ", ".join(metadata.tables))
    metadata.create_all(engine)
    logger.info("DB schema ready at %s", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    main()
