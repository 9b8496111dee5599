"""
Create a user without the upload flow (the avatar must already be hosted). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL "FULL NAME" PASSWORD --avatar-url URL
Example:
  python -m app.scripts.create_user annlee ann@x.com "Ann Lee" secret1 --avatar-url https://res.cloudinary.com/demo/a.png
"""
import argparse
import sys

from app.core.database import SessionLocal
from app.models.user import User
from app.services.accounts import find_by_username_or_email


def main() -> int:
    parser = argparse.ArgumentParser(description="Create an account from the command line.")
    parser.add_argument("username", help="Username (1-255 chars, stored lowercase)")
    parser.add_argument("email", help="Email address (stored lowercase)")
    parser.add_argument("full_name", help="Full name")
    parser.add_argument("password", help="Password (1-128 chars)")
    parser.add_argument("--avatar-url", required=True, help="URL of an already hosted avatar image")
    parser.add_argument("--cover-image-url", default=None, help="URL of an already hosted cover image")
    args = parser.parse_args()

    username = args.username.strip().lower()
    email = args.email.strip().lower()
    full_name = args.full_name.strip()
    if not username or len(username) > 255:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not email or not full_name or not args.avatar_url.strip():
        print("Email, full name and avatar URL are required.", file=sys.stderr)
        return 1
    if not args.password.strip() or len(args.password) > 128:
        print("Password must be 1-128 characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        if find_by_username_or_email(db, username=username, email=email) is not None:
            print(f"User '{username}' or email '{email}' already exists.", file=sys.stderr)
            return 1
        user = User(
            username=username,
            email=email,
            full_name=full_name,
            avatar_url=args.avatar_url.strip(),
            cover_image_url=(args.cover_image_url or "").strip() or None,
        )
        user.set_password(args.password)
        db.add(user)
        db.commit()
        print(f"Created user '{username}' with id {user.id}.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
