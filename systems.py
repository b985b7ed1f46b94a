import time
from typing import Dict, Optional

from sqlalchemy.orm import Session

from errors import NotFoundError
from models import System


def _serialize_system(row: System) -> Dict:
    return {
        "id": row.id,
        "name": row.name,
        "mac": row.mac,
        "userId": row.user_id,
        "hostname": row.hostname,
        "clientVersion": row.client_version,
        "created": row.created,
        "updated": row.updated,
    }


def register_system(
    db: Session,
    user_id: int,
    mac: str,
    name: Optional[str],
    hostname: Optional[str],
    client_version: Optional[str],
) -> System:
    """
    Insert a system row stamped with the current time.

    No lookup is done first: registering the same (user, mac) twice leaves
    two rows. Clients call update_system for hosts they already registered.
    """
    now = int(time.time())
    system = System(
        user_id=user_id,
        mac=mac,
        name=name,
        hostname=hostname,
        client_version=client_version,
        created=now,
        updated=now,
    )
    db.add(system)
    db.flush()
    return system


def update_system(db: Session, user_id: int, mac: str, hostname: Optional[str]) -> int:
    """Set hostname and bump `updated`. Returns the number of rows touched."""
    return (
        db.query(System)
        .filter(System.user_id == user_id, System.mac == mac)
        .update(
            {System.hostname: hostname, System.updated: int(time.time())},
            synchronize_session=False,
        )
    )


def get_system(db: Session, user_id: int, mac: str) -> Dict:
    row = (
        db.query(System)
        .filter(System.user_id == user_id, System.mac == mac)
        .order_by(System.id.asc())
        .first()
    )
    if row is None:
        raise NotFoundError(f"no system registered with mac {mac!r}")
    return _serialize_system(row)
