"""Create a professor or TA account.

Public sign-up only ever creates students; staff accounts are made by an
operator with this script. The account is created already verified.

Usage:
    python -m lms.create_user --role professor --username ada --email ada@example.edu --password 'Abc123!@'
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms.auth import passwords
from lms.database import Base, SessionLocal, engine
from lms.models import course, coursework  # noqa: F401  registers the remaining tables
from lms.models.user import Role, User

logger = logging.getLogger(__name__)

STAFF_ROLES = (Role.PROFESSOR, Role.TA)


class CreateUserError(Exception):
    pass


def create_staff_user(db: Session, username: str, email: str, password: str, role: Role) -> User:
    if role not in STAFF_ROLES:
        raise CreateUserError("Only professor and TA accounts are created here; students sign up themselves.")
    if not username.strip():
        raise CreateUserError("Username is required")
    if not passwords.is_valid_email(email):
        raise CreateUserError("Invalid email address")
    if not passwords.is_strong_password(password):
        raise CreateUserError(passwords.PASSWORD_REQUIREMENTS)

    existing = db.query(User).filter((User.email == email) | (User.username == username)).first()
    if existing is not None:
        raise CreateUserError("Email or username already registered")

    user = User(username=username.strip(), email=email, role=role, is_verified=True)
    user.set_password(password)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created %s account %s", role.value, email)
    return user


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--role", required=True, choices=[role.value for role in STAFF_ROLES])
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = create_staff_user(db, args.username, args.email.strip(), args.password, Role(args.role))
    except CreateUserError as exc:
        print(exc, file=sys.stderr)
        sys.exit(1)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not create user")
        sys.exit(1)
    finally:
        db.close()

    print(f"Created {user.role.value} {user.username} (id {user.id})")


if __name__ == "__main__":
    main()
