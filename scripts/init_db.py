"""Create the payments table and its indexes if they do not exist.

Intended for local SQLite/dev databases; use the alembic revisions elsewhere.
"""

import argparse

from sqlalchemy import create_engine, inspect

from paydash.common.config import settings
from paydash.common.db import Base, engine_options
from paydash.services.payments.models import PaymentRecord


def main() -> None:
    """CLI entrypoint for local schema bootstrap."""

    parser = argparse.ArgumentParser(description="Create payment record tables.")
    parser.add_argument("--dsn", default=settings.database_dsn)
    args = parser.parse_args()

    engine = create_engine(args.dsn, **engine_options(args.dsn))
    table = PaymentRecord.__tablename__
    if inspect(engine).has_table(table):
        print(f"Table {table} already exists")
        return
    Base.metadata.create_all(engine)
    print(f"Table {table} created")


if __name__ == "__main__":
    main()
