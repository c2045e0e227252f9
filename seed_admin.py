"""Create or repair the clinic's admin account.

Reads ADMIN_DEFAULT_NAME, ADMIN_DEFAULT_EMAIL and ADMIN_DEFAULT_PASSWORD from
the environment (or .env). Run with ``--reset-password`` to overwrite the
password of an existing account.
"""
import argparse
import sys

from opticlinic.bootstrap import upsert_admin
from opticlinic.config import get_settings
from opticlinic.core.logging import setup_logging
from opticlinic.database import SessionLocal, create_tables


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--reset-password", action="store_true",
                        help="replace the password of an existing admin")
    parser.add_argument("--create-tables", action="store_true",
                        help="create missing tables first (development databases only)")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    if not settings.admin_default_email or not settings.admin_default_password:
        print("ADMIN_DEFAULT_EMAIL and ADMIN_DEFAULT_PASSWORD must be set.", file=sys.stderr)
        return 1

    if args.create_tables:
        create_tables()

    db = SessionLocal()
    try:
        user = upsert_admin(
            db,
            name=settings.admin_default_name,
            email=settings.admin_default_email,
            password=settings.admin_default_password,
            reset_password=args.reset_password,
        )
    finally:
        db.close()

    print(f"Admin user ready: email='{user.email}' (id {user.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
