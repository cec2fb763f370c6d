# Operator commands. Sign-up never grants the admin role, so admins are seeded here:
#   python -m boardinghouse.manage create-admin admin@example.com 'a-long-password' --name "Landlord"
import argparse
import logging
import sys
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .db import Base, SessionLocal, engine, is_sqlite
from .routes.auth import hash_password

logger = logging.getLogger("boardinghouse.manage")


def create_admin(db: Session, email: str, password: str, full_name: Optional[str] = None) -> models.Profile:
    """Create an admin profile, or promote and re-key an existing one with the same email."""
    email = email.strip().lower()
    profile = db.query(models.Profile).filter(models.Profile.email == email).first()
    if profile is None:
        profile = models.Profile(email=email, full_name=full_name)
        db.add(profile)
    elif full_name:
        profile.full_name = full_name
    profile.role = models.Role.ADMIN
    profile.password_hash = hash_password(password)
    db.commit()
    db.refresh(profile)
    return profile


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="boardinghouse.manage")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-admin", help="create or promote an admin account")
    p.add_argument("email")
    p.add_argument("password")
    p.add_argument("--name", default=None)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    if is_sqlite():
        Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        profile = create_admin(db, args.email, args.password, args.name)
    finally:
        db.close()
    logger.info("admin ready: id=%s email=%s", profile.id, profile.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
