"""
Parameterised search over a user's command history.

The abstract query is always the same: `(command, uuid, created)` for one
user, optionally narrowed by exact path / system name and a regex over the
command text, optionally collapsed to one row per distinct command, newest
first, limited. `build_search()` assembles it as a SQLAlchemy statement;
the only dialect split is how "one row per command" is expressed:

* SQLite groups by command and selects max(created); SQLite takes the
  bare columns (uuid) from the row holding that maximum.
* PostgreSQL takes DISTINCT ON (command) ordered by created DESC inside a
  subquery, then re-orders the survivors by created DESC.

Regex matching renders as `REGEXP` on SQLite (backed by the `regexp`
function registered in database.py) and `~` on PostgreSQL. All filter
values are bound parameters.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import distinct_on
from sqlalchemy.orm import Session

from config import INT64_MAX, SEARCH_DEFAULT_LIMIT
from errors import ValidationError
from models import Command

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass
class SearchParams:
    user_id: int
    limit: int = SEARCH_DEFAULT_LIMIT
    path: Optional[str] = None
    system_name: Optional[str] = None
    query: Optional[str] = None
    unique: bool = False


def parse_limit(raw: Optional[str]) -> int:
    """Positive 64-bit integer from a query string value; anything else is the default."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return SEARCH_DEFAULT_LIMIT
    return limit if 0 < limit <= INT64_MAX else SEARCH_DEFAULT_LIMIT


def _clean(name: str, value: Optional[str]) -> Optional[str]:
    # empty and missing both mean "no restriction"
    if not value:
        return None
    if _CONTROL_CHARS.search(value):
        raise ValidationError(f"{name} contains control characters")
    return value


def params_from_query(
    user_id: int,
    limit: Optional[str] = None,
    unique: Optional[str] = None,
    path: Optional[str] = None,
    query: Optional[str] = None,
    system_name: Optional[str] = None,
) -> SearchParams:
    """Build SearchParams from raw query-string values, validating filters."""
    query = _clean("query", query)
    if query is not None:
        try:
            re.compile(query)
        except re.error as exc:
            raise ValidationError(f"error parsing regexp: {exc}") from exc
    return SearchParams(
        user_id=user_id,
        limit=parse_limit(limit),
        path=_clean("path", path),
        system_name=_clean("systemName", system_name),
        query=query,
        unique=unique == "true",
    )


def build_search(params: SearchParams, single_writer: bool) -> Select:
    filters = [Command.user_id == params.user_id]
    if params.path:
        filters.append(Command.path == params.path)
    if params.system_name:
        filters.append(Command.system_name == params.system_name)
    if params.query:
        filters.append(Command.command.regexp_match(params.query))

    if not params.unique:
        return (
            select(Command.command, Command.uuid, Command.created)
            .where(*filters)
            .order_by(Command.created.desc())
            .limit(params.limit)
        )

    if single_writer:
        newest = func.max(Command.created).label("created")
        return (
            select(Command.command, Command.uuid, newest)
            .where(*filters)
            .group_by(Command.command)
            .order_by(newest.desc())
            .limit(params.limit)
        )

    latest = (
        select(Command.command, Command.uuid, Command.created)
        .where(*filters)
        .ext(distinct_on(Command.command))
        .order_by(Command.command, Command.created.desc())
        .subquery("c")
    )
    return (
        select(latest.c.command, latest.c.uuid, latest.c.created)
        .order_by(latest.c.created.desc())
        .limit(params.limit)
    )


def search_commands(db: Session, params: SearchParams) -> List[Dict]:
    stmt = build_search(params, db.info.get("single_writer", True))
    return [
        {"command": row.command, "uuid": row.uuid, "created": row.created}
        for row in db.execute(stmt)
    ]
