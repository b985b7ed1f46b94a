import logging

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from database import Base

logger = logging.getLogger(__name__)


class User(Base):
    """Account that owns systems and commands. Usernames are case-sensitive."""

    __tablename__ = "users"
    __table_args__ = (Index("idx_user", "username", unique=True),)

    id = Column(Integer, primary_key=True)
    username = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    password = Column(String(256), nullable=False)
    registration_code = Column(String(255), nullable=True)


class System(Base):
    """
    A host registered by a shell client, keyed by (user_id, mac).

    `created` and `updated` are unix seconds.
    """

    __tablename__ = "systems"
    __table_args__ = (Index("idx_mac", "mac"),)

    id = Column(Integer, primary_key=True)
    created = Column(BigInteger)
    updated = Column(BigInteger)
    mac = Column(String(255))
    hostname = Column(String(255))
    name = Column(String(255))
    client_version = Column(String(64))
    user_id = Column(Integer, ForeignKey("users.id"))


class Command(Base):
    """
    One recorded shell command.

    `created` and `process_start_time` are milliseconds since the epoch as
    sent by the client. `system_name` is copied from the System at insert
    time so history keeps its origin after the System changes.
    """

    __tablename__ = "commands"
    __table_args__ = (
        Index("idx_user_command_created", "user_id", "created", "command"),
        Index("idx_user_uuid", "user_id", "uuid"),
        Index("idx_uuid", "uuid", unique=True),
    )

    id = Column(Integer, primary_key=True)
    process_id = Column(Integer)
    process_start_time = Column(BigInteger)
    uuid = Column(String(64), nullable=False)
    command = Column(Text)
    created = Column(BigInteger)
    path = Column(Text)
    system_name = Column(String(255))
    exit_status = Column(Integer)
    user_id = Column(Integer, ForeignKey("users.id"))


class Config(Base):
    """Single row (id=1) holding the token signing secret."""

    __tablename__ = "configs"
    __table_args__ = (Index("idx_config_id", "id", unique=True),)

    id = Column(Integer, primary_key=True, autoincrement=False)
    secret = Column(String(64), nullable=False)
    created = Column(DateTime(timezone=True), server_default=func.now())


def migrate(store) -> None:
    """
    Create missing tables and indexes. Safe to run on every start.

    create_all() only emits indexes for tables it creates, so indexes are
    checked one by one as well.
    """
    Base.metadata.create_all(bind=store.engine)
    with store.engine.begin() as conn:
        for table in Base.metadata.sorted_tables:
            for index in table.indexes:
                index.create(bind=conn, checkfirst=True)
    logger.info("schema up to date (%s)", ", ".join(Base.metadata.tables))
