import argparse
import logging

from gymflow.database.connection import describe_database_url, get_database_url
from gymflow.database.migration_runner import upgrade_head

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(prog="gymflow-migrate")
    parser.add_argument("--database-url", type=str, default=None)
    parser.add_argument("--lock-timeout-seconds", type=int, default=120)
    parser.add_argument("--no-verify", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    url = args.database_url or get_database_url()
    logger.info(f"migrating {describe_database_url(url)}")
    try:
        rev = upgrade_head(
            url,
            lock_timeout_seconds=int(args.lock_timeout_seconds),
            verify_revision=not args.no_verify,
        )
    except Exception as e:
        raise SystemExit(f"Migración fallida: {e}")
    print(f"OK: {rev}")


if __name__ == "__main__":
    main()
