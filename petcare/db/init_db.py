# FILE: petcare/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petcare.db.base import Base
from petcare.db.session import engine
from petcare.services.accounts import seed_default_chart

logger = logging.getLogger(__name__)


def run(fresh: bool = False, seed: bool = True) -> None:
    if fresh:
        logger.warning("Dropping ALL tables (dev only)")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Tables: %s", sorted(inspect(engine).get_table_names()))

    if not seed:
        return
    try:
        with Session(engine) as db:
            added = seed_default_chart(db)
            db.commit()
            logger.info("Chart of accounts seeded (%s missing codes inserted)", added)
    except SQLAlchemyError:
        logger.exception("Seeding failed")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed chart of accounts).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Skip seeding the default chart of accounts.",
    )
    args = parser.parse_args()
    run(fresh=args.fresh, seed=not args.no_seed)
