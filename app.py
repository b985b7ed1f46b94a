import argparse
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import get_secret
from commands import delete_command, get_command, import_command, insert_command
from config import (
    ACCEPTED_EXIT_STATUSES,
    DATABASE_URL,
    INT32_MAX,
    INT32_MIN,
    INT64_MAX,
    INT64_MIN,
    JWT_REALM,
    LISTEN_ADDR,
    LOG_FILE,
    VERSION,
    default_database_path,
)
from database import get_db, open_store
from errors import AuthError, BashhubError, ConflictError, NotFoundError, ValidationError
from models import migrate
from schemas import CommandIn, ImportIn, LoginRequest, SystemIn, UserCreate
from search import params_from_query, search_commands
from status import get_status
from systems import get_system, register_system, update_system
from tokens import Identity, issue_token, require_identity
from users import (
    authenticate,
    create_user,
    email_exists,
    system_name_for,
    username_exists,
)

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("bashhub.access")

router = APIRouter()


@router.get("/ping")
def ping():
    return {"message": "pong"}


# ---------------- Accounts ----------------

@router.post("/api/v1/login")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Exchange username/password for a bearer token.

    The token's systemName is the name of the system the caller registered
    under `mac`, or empty before the client has registered one.
    """
    if not payload.username or not payload.password:
        raise AuthError("missing Username or Password")
    user = authenticate(db, payload.username, payload.password)
    if user is None:
        raise AuthError("incorrect Username or Password")
    identity = Identity(
        username=user.username,
        system_name=system_name_for(db, user.id, payload.mac),
        user_id=user.id,
    )
    return {"accessToken": issue_token(request.app.state.secret, identity)}


@router.post("/api/v1/user")
def user_create(payload: UserCreate, db: Session = Depends(get_db)):
    if not payload.email:
        raise ValidationError("email required")
    if username_exists(db, payload.username):
        raise ConflictError("Username already taken")
    if email_exists(db, payload.email):
        raise ConflictError("This email address is already registered.")
    if not create_user(
        db, payload.username, payload.email, payload.password, payload.registration_code
    ):
        raise ConflictError("Username already taken")
    db.commit()
    return Response(status_code=200)


# ---------------- Commands ----------------

@router.post("/api/v1/command")
def command_create(
    payload: CommandIn,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    """Record a command; anything but a 0 or 130 exit status is dropped silently."""
    if payload.exit_status not in ACCEPTED_EXIT_STATUSES:
        return Response(status_code=200)
    insert_command(db, identity.user_id, identity.system_name, payload)
    db.commit()
    return Response(status_code=200)


@router.get("/api/v1/command/search")
def command_search(
    limit: Optional[str] = None,
    unique: Optional[str] = None,
    path: Optional[str] = None,
    query: Optional[str] = None,
    systemName: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    params = params_from_query(
        identity.user_id,
        limit=limit,
        unique=unique,
        path=path,
        query=query,
        system_name=systemName,
    )
    results = search_commands(db, params)
    # the client expects an object, not an empty array, when nothing matches
    return JSONResponse(results if results else {})


@router.get("/api/v1/command/{uuid}")
def command_get(
    uuid: str,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    try:
        result = get_command(db, identity.user_id, uuid)
    except NotFoundError as exc:
        # a missing uuid is a 400 for this route
        return JSONResponse({"error": exc.message}, status_code=400)
    result["username"] = identity.username
    return result


@router.delete("/api/v1/command/{uuid}")
def command_delete(
    uuid: str,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    delete_command(db, identity.user_id, uuid)
    db.commit()
    return Response(status_code=200)


@router.post("/api/v1/import")
def command_import(
    payload: ImportIn,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    import_command(db, identity.username, payload)
    db.commit()
    return Response(status_code=200)


# ---------------- Systems ----------------

@router.post("/api/v1/system")
def system_create(
    payload: SystemIn,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    register_system(
        db,
        identity.user_id,
        payload.mac,
        payload.name,
        payload.hostname,
        payload.client_version,
    )
    db.commit()
    return Response(status_code=201)


@router.get("/api/v1/system")
def system_get(
    mac: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    if not mac:
        raise ValidationError("mac required")
    return get_system(db, identity.user_id, mac)


@router.patch("/api/v1/system/{mac}")
def system_update(
    mac: str,
    payload: SystemIn,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    update_system(db, identity.user_id, mac, payload.hostname)
    db.commit()
    return Response(status_code=200)


# ---------------- Status ----------------

def _int_param(name: str, raw: Optional[str], low: int, high: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ValidationError(f"{name} out of range: {raw}")
    return value


@router.get("/api/v1/client-view/status")
def client_status(
    processId: Optional[str] = None,
    startTime: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
):
    start_time = _int_param("startTime", startTime, INT64_MIN, INT64_MAX)
    process_id = _int_param("processId", processId, INT32_MIN, INT32_MAX)
    counts = get_status(db, identity.user_id, process_id)
    return {
        "username": identity.username,
        "totalCommands": counts["totalCommands"],
        "totalSessions": counts["totalSessions"],
        "totalSystems": counts["totalSystems"],
        "totalCommandsToday": counts["totalCommandsToday"],
        "sessionName": processId,
        "sessionStartTime": start_time,
        "sessionTotalCommands": counts["sessionTotalCommands"],
    }


# ---------------- Error mapping ----------------

def _describe_validation(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(messages) or "invalid request"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _describe_validation(exc)}, status_code=400)

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError):
        return JSONResponse(
            {"code": exc.status_code, "message": exc.message},
            status_code=exc.status_code,
            headers={"WWW-Authenticate": f'JWT realm="{JWT_REALM}"'},
        )

    @app.exception_handler(ConflictError)
    async def conflict_error(request: Request, exc: ConflictError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(BashhubError)
    async def bashhub_error(request: Request, exc: BashhubError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"error": str(exc)}, status_code=500)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"error": "internal server error"}, status_code=500)


async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    access_logger.info(
        "[BASHHUB-SERVER] %s | %3d | %11.3fms | %15s | %-7s  %s",
        datetime.now().strftime("%Y/%m/%d - %H:%M:%S"),
        response.status_code,
        latency_ms,
        client,
        request.method,
        request.url.path,
    )
    return response


def create_app(db_uri: str) -> FastAPI:
    """
    Open the store, migrate it, load the signing secret and build the app.

    Any failure here is fatal to the caller.
    """
    store = open_store(db_uri)
    migrate(store)
    secret = get_secret(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        store.close()

    app = FastAPI(title="bashhub-server", version=VERSION, lifespan=lifespan)
    app.state.store = store
    app.state.secret = secret
    app.middleware("http")(log_requests)
    register_error_handlers(app)
    app.include_router(router)
    return app


# ---------------- Entry point ----------------

def configure_logging(log_file: str) -> None:
    """An empty path logs to stderr, /dev/null silences, anything else is a file."""
    if log_file == "/dev/null":
        logging.basicConfig(level=logging.CRITICAL + 1, handlers=[logging.NullHandler()])
        return
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[handler],
    )


def split_addr(addr: str):
    """'http://0.0.0.0:8080' -> ('0.0.0.0', 8080)"""
    addr = addr.replace("http://", "").rstrip("/")
    host, _, port = addr.rpartition(":")
    return host or "0.0.0.0", int(port)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="bashhub-server",
        description="Self-hosted server for the bashhub shell history client.",
    )
    parser.add_argument("--db", default=DATABASE_URL, help="db location (sqlite path or postgres:// uri)")
    parser.add_argument("-a", "--addr", default=LISTEN_ADDR, help="ip and port to listen and serve on")
    parser.add_argument("--log", default=LOG_FILE, help='filepath for the log; "" logs to stderr')
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    args = parser.parse_args(argv)

    configure_logging(args.log)
    db_uri = args.db or str(default_database_path())
    try:
        app = create_app(db_uri)
        host, port = split_addr(args.addr)
    except (SQLAlchemyError, OSError, ValueError) as exc:
        logger.critical("startup failed: %s", exc)
        sys.exit(1)

    logger.info("listening and serving HTTP on %s", args.addr)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
