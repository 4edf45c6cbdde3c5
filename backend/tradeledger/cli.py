"""Management CLI.

Usage:
    tradeledger-admin create-tables                         # Create any missing tables
    tradeledger-admin create-user USERNAME PASSWORD [ROLE]  # Add a user (default role: manager)
    tradeledger-admin list-users                            # Show all users
"""

import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from tradeledger.auth.password import hash_password
from tradeledger.config import settings
from tradeledger.database import Base
from tradeledger.models.user import User, UserRole


def _engine():
    return create_engine(settings.database_url_sync)


def create_tables():
    import tradeledger.models  # noqa: F401

    Base.metadata.create_all(_engine())
    print(f"  {len(Base.metadata.tables)} table(s) ensured")


def create_user(username: str, password: str, role: str = "manager") -> int:
    try:
        user_role = UserRole(role)
    except ValueError:
        print(f"  Unknown role: {role} (expected one of {', '.join(r.value for r in UserRole)})")
        return 1
    if len(password) < 6:
        print("  Password must be at least 6 characters")
        return 1

    with Session(_engine()) as session:
        if session.scalar(select(User.id).where(User.username == username)):
            print(f"  User {username} already exists")
            return 1
        session.add(User(
            username=username,
            hashed_password=hash_password(password),
            full_name=username,
            role=user_role,
        ))
        session.commit()
    print(f"  Created {user_role.value} {username}")
    return 0


def list_users():
    with Session(_engine()) as session:
        users = session.scalars(select(User).order_by(User.username)).all()
    for u in users:
        status = "active" if u.is_active else "inactive"
        print(f"  {u.username:<20} {u.role.value:<12} {status}")
    print(f"\n{len(users)} user(s)")


def main() -> int:
    args = sys.argv[1:]
    cmd = args[0] if args else ""
    if cmd == "create-tables":
        create_tables()
        return 0
    if cmd == "create-user" and len(args) in (3, 4):
        return create_user(*args[1:])
    if cmd == "list-users":
        list_users()
        return 0
    print("Usage: tradeledger-admin [create-tables|create-user USERNAME PASSWORD [ROLE]|list-users]")
    return 1


if __name__ == "__main__":
    sys.exit(main())
