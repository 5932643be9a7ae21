"""Delete every payment record for every owner. Use with care."""

import argparse

from paydash.common.db import SessionLocal
from paydash.services.payments import repository


def main() -> None:
    """CLI entrypoint; refuses to run without `--yes`."""

    parser = argparse.ArgumentParser(description="Delete all payment records from the store.")
    parser.add_argument("--yes", action="store_true", help="confirm deleting everything")
    args = parser.parse_args()
    if not args.yes:
        print("Refusing to delete without --yes")
        raise SystemExit(2)

    with SessionLocal() as db:
        deleted = repository.delete_all_payments(db)
        db.commit()
    print(f"Deleted {deleted} payments")


if __name__ == "__main__":
    main()
