import os
import time
import uuid as uuidlib

import pytest
from fastapi.testclient import TestClient

from app import create_app
from commands import insert_command
from database import Base, open_store
from models import User, migrate
from schemas import CommandIn
from users import create_user

POSTGRES_URI = os.getenv("BH_TEST_POSTGRES_URI", "")

COMMANDS = [
    "cat foo.txt",
    "ls",
    "pwd",
    "whoami",
    "which cat",
    "head foo.txt",
    "sed 's/fooobaar/foobar/g' somefile.txt",
    "curl google.com",
    "file /dev/null",
    "df -h",
]


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture(params=["sqlite", "postgres"])
def store(request, tmp_path):
    """A migrated store. Postgres runs only when BH_TEST_POSTGRES_URI is set."""
    if request.param == "postgres":
        if not POSTGRES_URI:
            pytest.skip("BH_TEST_POSTGRES_URI not set")
        uri = POSTGRES_URI
    else:
        uri = str(tmp_path / "test.db")
    store = open_store(uri)
    migrate(store)
    yield store
    if not store.single_writer:
        Base.metadata.drop_all(bind=store.engine)
    store.close()


@pytest.fixture
def db(store):
    session = store.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(username="tester", email=None, password="tester"):
        create_user(db, username, email or f"{username}@email.com", password)
        db.commit()
        return db.query(User.id).filter(User.username == username).scalar()

    return _make


@pytest.fixture
def add_command(db):
    def _add(user_id, command, created=None, path="/tmp/foo", system_name="system-1", process_id=1, uuid=None):
        cmd = CommandIn(
            uuid=uuid or str(uuidlib.uuid4()),
            command=command,
            created=now_ms() if created is None else created,
            path=path,
            processId=process_id,
            processStartTime=now_ms(),
            exitStatus=0,
        )
        inserted = insert_command(db, user_id, system_name, cmd)
        db.commit()
        return cmd.uuid if inserted else None

    return _add


@pytest.fixture
def app(tmp_path):
    return create_app(str(tmp_path / "server.db"))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def history(make_user, add_command):
    """
    tester owns 50 commands: the 10 COMMANDS once per process id 0-4, all
    in /tmp/foo on system-1, with strictly increasing created times.
    """
    user_id = make_user("tester")
    base = now_ms() - 60_000
    n = 0
    for process_id in range(5):
        for command in COMMANDS:
            add_command(user_id, command, created=base + n, process_id=process_id)
            n += 1
    return user_id
