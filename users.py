import logging
from typing import Optional

from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from database import insert
from models import System, User

logger = logging.getLogger(__name__)


def username_exists(db: Session, username: str) -> bool:
    return db.query(User.id).filter(User.username == username).first() is not None


def email_exists(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == email).first() is not None


def create_user(
    db: Session,
    username: str,
    email: str,
    password: str,
    registration_code: Optional[str] = None,
) -> int:
    """Insert a user with a hashed password. Returns 0 if the username is taken."""
    stmt = (
        insert(db, User.__table__)
        .values(
            username=username,
            email=email,
            password=hash_password(password),
            registration_code=registration_code,
        )
        .on_conflict_do_nothing(index_elements=["username"])
    )
    return db.execute(stmt).rowcount


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """Return the user if the password matches, else None."""
    user = db.query(User).filter(User.username == username).first()
    if user is None or not verify_password(password, user.password):
        logger.warning("failed login for %r", username)
        return None
    return user


def system_name_for(db: Session, user_id: int, mac: Optional[str]) -> str:
    """Name of the user's system registered under `mac`, or "" if none."""
    if not mac:
        return ""
    name = (
        db.query(System.name)
        .filter(System.user_id == user_id, System.mac == mac)
        .order_by(System.id.asc())
        .limit(1)
        .scalar()
    )
    return name or ""
