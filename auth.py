import logging
import secrets
import threading
from datetime import datetime, timezone

from passlib.context import CryptContext

from config import PASSWORD_HASH_ROUNDS
from database import insert
from models import Config

logger = logging.getLogger(__name__)

# pbkdf2_sha256 is a salted adaptive hash that ships with passlib and
# needs no external bcrypt backend.
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=PASSWORD_HASH_ROUNDS,
)

_secret_lock = threading.Lock()


def hash_password(password: str) -> str:
    """
    Hash a plain-text password using PBKDF2-SHA256.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed: str) -> bool:
    """
    Verify a candidate password against a stored hash.
    """
    try:
        return pwd_context.verify(plain_password, hashed)
    except ValueError:
        # stored value is not a recognised hash
        logger.warning("unrecognised password hash format")
        return False


def get_secret(store) -> str:
    """
    Return the token signing secret, creating it on first use.

    The row with id=1 is inserted with ON CONFLICT DO NOTHING so processes
    racing on an empty database all end up reading the same value. The
    result is cached on the store.
    """
    if store.secret is not None:
        return store.secret
    with _secret_lock:
        if store.secret is None:
            with store.session_scope() as db:
                stmt = (
                    insert(db, Config.__table__)
                    .values(
                        id=1,
                        secret=secrets.token_hex(16),
                        created=datetime.now(timezone.utc),
                    )
                    .on_conflict_do_nothing()
                )
                if db.execute(stmt).rowcount:
                    logger.info("generated new token signing secret")
            with store.session_scope() as db:
                store.secret = db.query(Config.secret).filter(Config.id == 1).scalar()
    return store.secret
