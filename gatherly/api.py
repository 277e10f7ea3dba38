"""FastAPI application for Gatherly."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import database
from .auth import current_user_id
from .datastore import DataStore
from .errors import (
    FeedCancelled,
    GatherlyError,
    NotAuthenticatedError,
    ProfileValidationError,
)
from .feed import FeedComposer
from .friends import FriendshipManager
from .profiles import ProfileManager
from .rsvp import RSVPManager
from .storage import init_db

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

PROFILE_FIELDS = ("username", "first_name", "last_name", "bio")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("gatherly")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Gatherly", version=APP_VERSION, lifespan=lifespan)


def get_store() -> DataStore:
    # Looked up per request so tests can swap the session factory.
    return DataStore(database.SessionLocal)


def get_user_id(request: Request, store: DataStore = Depends(get_store)) -> str | None:
    return current_user_id(request, store)


def _require_user_id(user_id: str | None, action: str) -> str:
    if not user_id:
        raise NotAuthenticatedError(f"You must be logged in to {action}.")
    return user_id


@app.exception_handler(ProfileValidationError)
async def profile_validation_handler(request: Request, exc: ProfileValidationError):
    return JSONResponse(
        {"detail": exc.message, "errors": exc.errors}, status_code=exc.status_code
    )


@app.exception_handler(FeedCancelled)
async def feed_cancelled_handler(request: Request, exc: FeedCancelled):
    logger.info("Client left before %s %s finished", request.method, request.url.path)
    return Response(status_code=exc.status_code)


@app.exception_handler(GatherlyError)
async def gatherly_error_handler(request: Request, exc: GatherlyError):
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    lower = raw.lower()
    if "database is locked" in lower:
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class FriendRequestPayload(BaseModel):
    target_id: str


class ProfileUpdatePayload(BaseModel):
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    bio: str | None = None


@app.get("/api/health")
def api_health():
    return {"status": "ok", "version": APP_VERSION}


# -- feed ------------------------------------------------------------------


@app.get("/api/v1/feed")
async def api_feed(
    request: Request,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    page = await FeedComposer(store).load_initial_feed(
        user_id, cancelled=request.is_disconnected
    )
    return page.to_dict()


@app.get("/api/v1/feed/more")
async def api_feed_more(
    request: Request,
    cursor: str | None = Query(None),
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    page = await FeedComposer(store).load_more(
        user_id, cursor, cancelled=request.is_disconnected
    )
    return page.to_dict()


# -- rsvps -----------------------------------------------------------------


@app.post("/api/v1/events/{event_id}/accept")
def api_accept_event(
    event_id: str,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    RSVPManager(store).accept(event_id, user_id)
    return {"event_id": event_id, "accepted": True}


@app.post("/api/v1/events/{event_id}/dismiss")
def api_dismiss_event(
    event_id: str,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    RSVPManager(store).dismiss(event_id, user_id)
    return {"event_id": event_id, "accepted": False}


@app.get("/api/v1/events/{event_id}/rsvp")
def api_rsvp_status(
    event_id: str,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    return {
        "event_id": event_id,
        "accepted": RSVPManager(store).check_status(event_id, user_id),
    }


# -- friends ---------------------------------------------------------------


@app.get("/api/v1/friends")
def api_friends(
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    user_id = _require_user_id(user_id, "view your friends")
    manager = FriendshipManager(store)
    friends = manager.list_friends(user_id)
    return {
        "friends": [friend.to_dict() for friend in friends],
        "count": manager.friend_count(user_id),
    }


@app.get("/api/v1/friends/search")
def api_search_users(
    q: str = Query(""),
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    user_id = _require_user_id(user_id, "search for friends")
    results = FriendshipManager(store).search_users(q, user_id)
    return {"results": [result.to_dict() for result in results]}


@app.post("/api/v1/friends/requests", status_code=201)
def api_send_friend_request(
    payload: FriendRequestPayload,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    return FriendshipManager(store).send_friend_request(user_id, payload.target_id)


@app.post("/api/v1/friends/requests/{requester_id}/accept")
def api_accept_friend_request(
    requester_id: str,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    return FriendshipManager(store).accept_friend_request(user_id, requester_id)


@app.delete("/api/v1/friends/{friend_id}")
def api_remove_friend(
    friend_id: str,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    return FriendshipManager(store).remove_friend(user_id, friend_id)


@app.post("/api/v1/invites", status_code=201)
def api_create_invite(
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    link = FriendshipManager(store).generate_invite_link(user_id)
    return {"invite_code": link.invite_code, "invite_url": link.invite_url}


# -- profile ---------------------------------------------------------------


@app.get("/api/v1/profile")
def api_profile(
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    user_id = _require_user_id(user_id, "view your profile")
    profile = ProfileManager(store).get_profile(user_id)
    return {
        "profile": profile.to_dict() if profile else None,
        "friend_count": FriendshipManager(store).friend_count(user_id),
    }


@app.patch("/api/v1/profile")
def api_update_profile(
    payload: ProfileUpdatePayload,
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    user_id = _require_user_id(user_id, "edit your profile")
    manager = ProfileManager(store)
    current = manager.get_profile(user_id)
    # Fields left out of the payload keep their stored value.
    values = {field: getattr(current, field) if current else None for field in PROFILE_FIELDS}
    values.update(payload.model_dump(exclude_unset=True))
    profile = manager.update_profile(user_id, **values)
    return {"profile": profile.to_dict()}


@app.get("/api/v1/profile/events")
def api_my_events(
    store: DataStore = Depends(get_store),
    user_id: str | None = Depends(get_user_id),
):
    user_id = _require_user_id(user_id, "view your events")
    events = ProfileManager(store).my_events(user_id)
    return {"events": [event.to_dict() for event in events]}
