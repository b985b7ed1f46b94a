from typing import Dict

from sqlalchemy import Date, cast, distinct, func, select
from sqlalchemy.orm import Session

from models import Command, System


def _created_today(single_writer: bool):
    """Predicate: the command's created date equals today in server-local time."""
    seconds = Command.created // 1000
    if single_writer:
        return func.date(seconds, "unixepoch", "localtime") == func.date("now", "localtime")
    return cast(func.to_timestamp(seconds), Date) == cast(func.now(), Date)


def get_status(db: Session, user_id: int, process_id: int) -> Dict[str, int]:
    """
    Five counters for the client's status view, fetched in one round trip.

    sessionTotalCommands counts by process id alone, across all users; the
    shell client relies on this query as it stands.
    """
    single_writer = db.info.get("single_writer", True)

    def count(*where, of=None):
        target = func.count() if of is None else func.count(distinct(of))
        return select(target).select_from(Command).where(*where).scalar_subquery()

    total_systems = (
        select(func.count()).select_from(System).where(System.user_id == user_id).scalar_subquery()
    )
    row = db.query(
        count(Command.user_id == user_id).label("totalCommands"),
        count(Command.user_id == user_id, of=Command.process_id).label("totalSessions"),
        total_systems.label("totalSystems"),
        count(Command.user_id == user_id, _created_today(single_writer)).label("totalCommandsToday"),
        count(Command.process_id == process_id).label("sessionTotalCommands"),
    ).one()
    return dict(row._mapping)
