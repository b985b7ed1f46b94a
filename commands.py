import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import INT32_MAX, INT32_MIN
from database import insert
from errors import NotFoundError
from models import Command, User
from schemas import CommandIn, ImportIn

logger = logging.getLogger(__name__)


def _session_id(process_id: Optional[int]) -> Optional[str]:
    return None if process_id is None else str(process_id)


def _process_id(session_id) -> Optional[int]:
    try:
        process_id = int(session_id)
    except (TypeError, ValueError):
        return None
    return process_id if INT32_MIN <= process_id <= INT32_MAX else None


def insert_command(db: Session, user_id: int, system_name: str, cmd: CommandIn) -> int:
    """
    Store a command for `user_id`. A uuid that already exists is ignored.

    Returns the number of rows inserted (0 or 1).
    """
    stmt = (
        insert(db, Command.__table__)
        .values(
            process_id=cmd.process_id,
            process_start_time=cmd.process_start_time,
            exit_status=cmd.exit_status,
            uuid=cmd.uuid,
            command=cmd.command,
            created=cmd.created,
            path=cmd.path,
            user_id=user_id,
            system_name=system_name,
        )
        .on_conflict_do_nothing()
    )
    return db.execute(stmt).rowcount


def import_command(db: Session, username: str, record: ImportIn) -> int:
    """Insert a record exported by another server, owned by `username`."""
    owner = select(User.id).where(User.username == username).scalar_subquery()
    stmt = (
        insert(db, Command.__table__)
        .values(
            command=record.command,
            path=record.path,
            created=record.created,
            uuid=record.uuid,
            exit_status=record.exit_status,
            system_name=record.system_name,
            process_id=_process_id(record.session_id),
            user_id=owner,
        )
        .on_conflict_do_nothing()
    )
    inserted = db.execute(stmt).rowcount
    if not inserted:
        logger.debug("import skipped existing uuid %s", record.uuid)
    return inserted


def get_command(db: Session, user_id: int, uuid: str) -> Dict:
    row = (
        db.query(Command)
        .filter(Command.uuid == uuid, Command.user_id == user_id)
        .first()
    )
    if row is None:
        raise NotFoundError(f"no command with uuid {uuid!r}")
    return {
        "command": row.command,
        "path": row.path,
        "created": row.created,
        "uuid": row.uuid,
        "exitStatus": row.exit_status,
        "systemName": row.system_name,
        "sessionId": _session_id(row.process_id),
    }


def delete_command(db: Session, user_id: int, uuid: str) -> int:
    return (
        db.query(Command)
        .filter(Command.user_id == user_id, Command.uuid == uuid)
        .delete(synchronize_session=False)
    )
