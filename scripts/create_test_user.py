"""
Seed a user and print a bearer token for poking the API or the socket.

    python scripts/create_test_user.py alice --email alice@example.com
"""

import argparse
import uuid

from loguru import logger

from caddate.core.auth import create_access_token
from caddate.core.db import SessionLocal
from caddate.core.init_db import init_db
from caddate.models.user import User


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a test user and print a JWT")
    parser.add_argument("user_id", nargs="?", default=None)
    parser.add_argument("--email", default=None)
    parser.add_argument("--first-name", default=None)
    parser.add_argument("--last-name", default=None)
    args = parser.parse_args()

    user_id = args.user_id or str(uuid.uuid4())
    email = args.email or f"{user_id}@example.com"

    init_db()
    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if user is None:
            user = User(id=user_id, email=email, first_name=args.first_name, last_name=args.last_name)
            db.add(user)
            db.commit()
            logger.info(f"Created user {user_id}")
        else:
            email = user.email
            logger.info(f"User {user_id} already exists")
    finally:
        db.close()

    print(create_access_token(user_id, email=email))


if __name__ == "__main__":
    main()
