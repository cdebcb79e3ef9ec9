"""FastAPI application for FOMO."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
import tomllib

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import crud
from .batch import process_batch
from .config import settings
from .database import SessionLocal
from .errors import FomoError, ValidationError
from .facets import available_facets, group_events_by_period
from .filters import Period
from .friendships import delete_friendship, upsert_friendship
from .models import Event, Friendship, ResponseHistoryEntry, User
from .query import FilterState, apply_filters
from .responses import (
    RESPONSE_LABELS,
    append_response,
    current_response,
    history_for,
    latest_by_event,
)
from .storage import init_db
from .tags import popular_tags, search_tags, tag_usage
from .utils import to_naive_utc

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("fomo")
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


app = FastAPI(title="FOMO", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@app.exception_handler(FomoError)
async def fomo_error_handler(request: Request, exc: FomoError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.message, request.method, request.url.path)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {"detail": "The database is busy at the moment. Please try again."},
            status_code=503,
        )
    logger.error(
        "Operational database error on %s %s: %s",
        request.method,
        request.url.path,
        raw,
    )
    return JSONResponse({"detail": "Database error"}, status_code=500)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def _parse_datetime(name: str, raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(raw))
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}; use ISO8601 format") from exc


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_event(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "start_time": _iso(event.start_time),
        "end_time": _iso(event.end_time),
        "venue": {
            "name": event.venue_name,
            "address": event.venue_address,
            "lat": event.venue_lat,
            "lng": event.venue_lng,
        },
        "organizer_id": event.organizer_id,
        "organizer_name": event.organizer_name,
        "is_public": bool(event.is_public),
        "is_online": bool(event.is_online),
        "tags": list(event.tags or []),
        "cover_url": event.cover_url,
        "created_at": _iso(event.created_at),
        "modified_at": _iso(event.modified_at),
        "deleted_at": _iso(event.deleted_at),
    }


def _serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "city": user.city,
        "lat": user.lat,
        "lng": user.lng,
        "friends_count": user.friends_count,
        "is_active": bool(user.is_active),
        "is_public_profile": bool(user.is_public_profile),
        "is_ambassador": bool(user.is_ambassador),
        "allow_requests": bool(user.allow_requests),
        "show_attendance_to_friends": bool(user.show_attendance_to_friends),
        "last_connection": _iso(user.last_connection),
        "created_at": _iso(user.created_at),
        "modified_at": _iso(user.modified_at),
    }


def _serialize_entry(entry: ResponseHistoryEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "event_id": entry.event_id,
        "invited_by_user_id": entry.invited_by_user_id,
        "initial_response": entry.initial_response,
        "final_response": entry.final_response,
        "created_at": _iso(entry.created_at),
    }


def _serialize_friendship(friendship: Friendship) -> dict[str, Any]:
    return {
        "id": friendship.id,
        "from_user_id": friendship.from_user_id,
        "to_user_id": friendship.to_user_id,
        "status": friendship.status,
        "created_at": _iso(friendship.created_at),
        "modified_at": _iso(friendship.modified_at),
        "deleted_at": _iso(friendship.deleted_at),
    }


class EventPayload(BaseModel):
    id: str | None = None
    title: str
    description: str | None = None
    start_time: str = Field(..., description="ISO datetime string")
    end_time: str | None = Field(None, description="Optional ISO datetime string")
    venue_name: str | None = None
    venue_address: str | None = None
    venue_lat: float | None = None
    venue_lng: float | None = None
    organizer_id: str | None = None
    organizer_name: str | None = None
    is_public: bool = True
    is_online: bool = True
    tags: list[str] = Field(default_factory=list)
    cover_url: str | None = None


class UserPayload(BaseModel):
    id: str | None = None
    name: str
    email: str
    city: str | None = None
    lat: float | None = None
    lng: float | None = None
    is_active: bool = True
    is_public_profile: bool = False
    is_ambassador: bool = False
    allow_requests: bool = True
    show_attendance_to_friends: bool = True
    last_connection: str | None = None


class ResponsePayload(BaseModel):
    user_id: str
    event_id: str
    response: str | None = None
    invited_by_user_id: str | None = None


class FriendshipPayload(BaseModel):
    from_user_id: str
    to_user_id: str
    status: str


class BatchPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    actions: Any = None
    user_id: str | None = Field(None, alias="userId")


class QueryPayload(BaseModel):
    search_query: str = ""
    period: str = Period.ALL.value
    tags: list[str] = Field(default_factory=list)
    organizer_id: str | None = None
    responses: list[str | None] | None = None
    include_past_events: bool | None = None
    is_public_mode: bool | None = None
    online: bool | None = None
    current_user_id: str | None = None
    timezone: str | None = None
    now: str | None = Field(None, description="Optional ISO datetime used as 'now'")


def _event_fields(payload: EventPayload) -> dict[str, Any]:
    start_time = _parse_datetime("start_time", payload.start_time)
    if start_time is None:
        raise ValidationError("start_time is required")
    return {
        "title": payload.title,
        "description": payload.description,
        "start_time": start_time,
        "end_time": _parse_datetime("end_time", payload.end_time),
        "venue_name": payload.venue_name,
        "venue_address": payload.venue_address,
        "venue_lat": payload.venue_lat,
        "venue_lng": payload.venue_lng,
        "organizer_id": payload.organizer_id,
        "organizer_name": payload.organizer_name,
        "is_public": payload.is_public,
        "is_online": payload.is_online,
        "tags": payload.tags,
        "cover_url": payload.cover_url,
    }


def _user_fields(payload: UserPayload) -> dict[str, Any]:
    return {
        "name": payload.name,
        "email": payload.email,
        "city": payload.city,
        "lat": payload.lat,
        "lng": payload.lng,
        "is_active": payload.is_active,
        "is_public_profile": payload.is_public_profile,
        "is_ambassador": payload.is_ambassador,
        "allow_requests": payload.allow_requests,
        "show_attendance_to_friends": payload.show_attendance_to_friends,
        "last_connection": _parse_datetime("last_connection", payload.last_connection),
    }


def _filter_state(payload: QueryPayload) -> FilterState:
    state_kwargs: dict[str, Any] = {
        "search_query": payload.search_query,
        "period": Period.parse(payload.period),
        "tags": tuple(payload.tags),
        "organizer_id": payload.organizer_id,
        "is_public_mode": payload.is_public_mode,
        "online": payload.online,
        "current_user_id": payload.current_user_id,
    }
    if payload.responses is not None:
        state_kwargs["responses"] = frozenset(payload.responses)
    if payload.include_past_events is not None:
        state_kwargs["include_past_events"] = payload.include_past_events
    if payload.timezone:
        state_kwargs["timezone"] = payload.timezone
    now = _parse_datetime("now", payload.now)
    if now is not None:
        state_kwargs["now"] = now
    return FilterState(**state_kwargs)


@app.get("/api/v1/health")
def api_health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/v1/events")
def api_list_events(db: Session = Depends(get_db)):
    return {"events": [_serialize_event(event) for event in crud.list_events(db)]}


@app.post("/api/v1/events", status_code=201)
def api_create_event(payload: EventPayload, db: Session = Depends(get_db)):
    event = crud.create_event(db, event_id=payload.id, **_event_fields(payload))
    logger.info("Event %s created", event.id)
    return {"event": _serialize_event(event)}


@app.post("/api/v1/events/query")
def api_query_events(payload: QueryPayload, db: Session = Depends(get_db)):
    state = _filter_state(payload)
    events = crud.list_events(db)
    entries = history_for(db)
    users = crud.list_users(db)
    matched = apply_filters(events, state, entries)
    facets = available_facets(events, state, entries, users)
    calendar = group_events_by_period(matched, now=state.now, timezone=state.timezone)
    return {
        "event_ids": [event.id for event in matched],
        "events": [_serialize_event(event) for event in matched],
        "facets": {
            name: [facet.to_dict() for facet in values]
            for name, values in facets.items()
        },
        "calendar": [
            {
                "key": group.key.value,
                "label": group.label,
                "event_ids": [event.id for event in group.events],
            }
            for group in calendar
        ],
    }


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    return {"event": _serialize_event(crud.get_event(db, event_id))}


@app.put("/api/v1/events/{event_id}")
def api_update_event(event_id: str, payload: EventPayload, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    event = crud.update_event(db, event, **_event_fields(payload))
    return {"event": _serialize_event(event)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(event_id: str, db: Session = Depends(get_db)):
    crud.delete_event(db, event_id)
    return Response(status_code=204)


@app.get("/api/v1/events/{event_id}/guests")
def api_event_guests(
    event_id: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    grouped = crud.event_guests(db, event_id, user_id=user_id)
    return {
        "event_id": event_id,
        "groups": [
            {
                "response": response.value if response else None,
                "label": RESPONSE_LABELS[response],
                "guests": [
                    {"user": _serialize_user(user), "response": _serialize_entry(entry)}
                    for user, entry in members
                ],
            }
            for response, members in grouped.items()
        ],
    }


@app.get("/api/v1/users")
def api_list_users(db: Session = Depends(get_db)):
    return {"users": [_serialize_user(user) for user in crud.list_users(db)]}


@app.post("/api/v1/users", status_code=201)
def api_create_user(payload: UserPayload, db: Session = Depends(get_db)):
    user = crud.create_user(db, user_id=payload.id, **_user_fields(payload))
    logger.info("User %s registered", user.id)
    return {"user": _serialize_user(user)}


@app.get("/api/v1/users/search")
def api_search_users(
    q: str = Query(""),
    current_user_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    matches = crud.search_users(db, q, current_user_id=current_user_id)
    return {
        "users": [
            {**_serialize_user(user), "friendship_status": status}
            for user, status in matches
        ]
    }


@app.get("/api/v1/users/{user_id}")
def api_get_user(user_id: str, db: Session = Depends(get_db)):
    return {"user": _serialize_user(crud.get_user(db, user_id))}


@app.put("/api/v1/users/{user_id}")
def api_update_user(user_id: str, payload: UserPayload, db: Session = Depends(get_db)):
    user = crud.get_user(db, user_id)
    user = crud.update_user(db, user, **_user_fields(payload))
    return {"user": _serialize_user(user)}


@app.delete("/api/v1/users/{user_id}", status_code=204)
def api_delete_user(user_id: str, db: Session = Depends(get_db)):
    crud.delete_user(db, user_id)
    return Response(status_code=204)


@app.get("/api/v1/users/{user_id}/friends")
def api_user_friends(
    user_id: str,
    status: str = Query("active"),
    db: Session = Depends(get_db),
):
    crud.get_user(db, user_id)
    friends = crud.user_friends(db, user_id, status=status)
    return {
        "friends": [
            {**_serialize_user(user), "friendship": _serialize_friendship(friendship)}
            for user, friendship in friends
        ]
    }


@app.get("/api/v1/users/{user_id}/responses")
def api_user_responses(user_id: str, db: Session = Depends(get_db)):
    latest = latest_by_event(history_for(db, user_id=user_id), user_id)
    return {
        "user_id": user_id,
        "responses": {
            event_id: _serialize_entry(entry) for event_id, entry in latest.items()
        },
    }


@app.post("/api/v1/responses", status_code=201)
def api_append_response(payload: ResponsePayload, db: Session = Depends(get_db)):
    entry = append_response(
        db,
        user_id=payload.user_id,
        event_id=payload.event_id,
        response=payload.response,
        invited_by_user_id=payload.invited_by_user_id,
    )
    return {"response": _serialize_entry(entry)}


@app.get("/api/v1/responses/current")
def api_current_response(
    user_id: str = Query(...),
    event_id: str = Query(...),
    db: Session = Depends(get_db),
):
    value = current_response(db, user_id=user_id, event_id=event_id)
    return {
        "user_id": user_id,
        "event_id": event_id,
        "response": value.value if value else None,
    }


@app.post("/api/v1/friendships")
def api_upsert_friendship(payload: FriendshipPayload, db: Session = Depends(get_db)):
    result = upsert_friendship(db, payload.from_user_id, payload.to_user_id, payload.status)
    return {
        "id": result.id,
        "action": result.action,
        "friendship": _serialize_friendship(result.friendship),
    }


@app.delete("/api/v1/friendships/{friendship_id}")
def api_delete_friendship(friendship_id: str, db: Session = Depends(get_db)):
    friendship = delete_friendship(db, friendship_id)
    return {"friendship": _serialize_friendship(friendship)}


@app.post("/api/v1/batch")
def api_process_batch(payload: BatchPayload, db: Session = Depends(get_db)):
    result = process_batch(db, payload.actions, payload.user_id)
    return result.to_dict()


def _tag_rows(rows: list[tuple[str, int]]) -> list[dict[str, Any]]:
    return [{"tag": tag, "count": count} for tag, count in rows]


@app.get("/api/v1/tags")
def api_tags(db: Session = Depends(get_db)):
    return {"tags": _tag_rows(tag_usage(crud.list_events(db)))}


@app.get("/api/v1/tags/popular")
def api_popular_tags(
    limit: int = Query(settings.popular_tags_limit, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {"tags": _tag_rows(popular_tags(crud.list_events(db), limit=limit))}


@app.get("/api/v1/tags/search")
def api_search_tags(
    q: str = Query(""),
    limit: int = Query(settings.popular_tags_limit, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {"tags": _tag_rows(search_tags(crud.list_events(db), q, limit=limit))}
