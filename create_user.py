"""
Create a sign-in account.

    python create_user.py you@example.com 'password' --name "You"

The email must also be listed in ALLOWED_EMAILS when that is set.
"""
import argparse

from subtrack.auth import create_user, get_user_by_email
from subtrack.infrastructure.db.session import get_session_factory


def main():
    parser = argparse.ArgumentParser(description="Create a SubTrack user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--name", default="")
    args = parser.parse_args()

    db = get_session_factory()()
    try:
        existing = get_user_by_email(db, args.email)
        if existing:
            print(f"User already exists: {existing.email} (ID: {existing.id})")
            return
        user = create_user(db, args.email, args.password, name=args.name)
        print(f"Created user: {user.email} (ID: {user.id})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
