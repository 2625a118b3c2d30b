"""Print a bearer token for an existing user to stdout.

Usage:
    python -m calendar_api.print_access_token someone@example.com [minutes]
"""
import sys

from calendar_api.auth.jwt_handler import create_access_token
from calendar_api.core.errors import PersonNotFound
from calendar_api.database import SessionLocal
from calendar_api.repositories.people import get_person_by_email


def issue_token(email: str, expires_minutes: int | None = None) -> str:
    db = SessionLocal()
    try:
        person = get_person_by_email(db, email)
    finally:
        db.close()
    return create_access_token(person.email, expires_minutes)


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args or len(args) > 2:
        print(__doc__.strip(), file=sys.stderr)
        return 2

    expires_minutes = int(args[1]) if len(args) == 2 else None
    try:
        token = issue_token(args[0], expires_minutes)
    except PersonNotFound as exc:
        print(f"{exc.message} ({args[0]})", file=sys.stderr)
        return 1
    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
