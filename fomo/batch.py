"""Batch processing of queued user actions.

Actions run one at a time in submission order. Each action gets its own
SAVEPOINT, so a failure rolls back that action alone and the batch moves on.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .errors import FomoError, NotFoundError, ValidationError
from .friendships import delete_friendship, upsert_friendship
from .models import Friendship, FriendshipStatus
from .responses import append_response
from .utils import clean_id

logger = logging.getLogger("uvicorn.error")


class BatchActionType(str, enum.Enum):
    EVENT_RESPONSE = "event_response"
    FRIENDSHIP_ACCEPT = "friendship_accept"
    FRIENDSHIP_BLOCK = "friendship_block"
    FRIENDSHIP_REMOVE = "friendship_remove"


FRIENDSHIP_STATUS_FOR_ACTION = {
    BatchActionType.FRIENDSHIP_ACCEPT: FriendshipStatus.ACTIVE,
    BatchActionType.FRIENDSHIP_BLOCK: FriendshipStatus.BLOCKED,
}


class BatchAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = Field(None, alias="userId")

    @property
    def action_type(self) -> BatchActionType | None:
        try:
            return BatchActionType(self.type)
        except ValueError:
            return None


@dataclass
class BatchItemResult:
    type: BatchActionType
    action: str
    action_id: str | None = None
    event_id: str | None = None
    friendship_id: str | None = None
    to_user_id: str | None = None
    response: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "type": self.type.value,
            "action": self.action,
            "action_id": self.action_id,
        }
        for key in ("event_id", "friendship_id", "to_user_id", "response"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class BatchResult:
    processed: int
    total: int
    results: list[BatchItemResult] = field(default_factory=list)
    failed: list[dict[str, str | None]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "total": self.total,
            "results": [item.to_dict() for item in self.results],
            "failed": list(self.failed),
        }


def _data(action: BatchAction, key: str) -> str:
    return clean_id(action.data.get(key))


def process_event_response(
    session: Session, action: BatchAction, user_id: str
) -> BatchItemResult:
    target_user_id = clean_id(action.user_id) or user_id
    event_id = _data(action, "event_id")
    if not event_id:
        raise ValidationError("event_id is required for event_response")
    entry = append_response(
        session,
        user_id=target_user_id,
        event_id=event_id,
        response=action.data.get("response"),
        invited_by_user_id=action.data.get("invited_by_user_id"),
    )
    logger.debug(
        "Batch response %s for user %s on event %s",
        entry.final_response,
        target_user_id,
        event_id,
    )
    return BatchItemResult(
        type=BatchActionType.EVENT_RESPONSE,
        action="appended",
        action_id=action.id,
        event_id=event_id,
        response=entry.final_response,
    )


def process_friendship_action(
    session: Session, action: BatchAction, action_type: BatchActionType
) -> BatchItemResult:
    friendship_id = _data(action, "friendship_id")
    to_user_id = _data(action, "to_user_id")
    if not friendship_id or not to_user_id:
        raise ValidationError("friendship_id and to_user_id are required")

    if action_type is BatchActionType.FRIENDSHIP_REMOVE:
        delete_friendship(session, friendship_id)
        return BatchItemResult(
            type=action_type,
            action="deleted",
            action_id=action.id,
            friendship_id=friendship_id,
            to_user_id=to_user_id,
        )

    existing = session.get(Friendship, friendship_id)
    if existing is None or existing.deleted_at is not None:
        raise NotFoundError(f"Friendship {friendship_id} not found")
    # Keep the direction the friendship was created with.
    result = upsert_friendship(
        session,
        existing.from_user_id,
        existing.to_user_id,
        FRIENDSHIP_STATUS_FOR_ACTION[action_type],
    )
    return BatchItemResult(
        type=action_type,
        action=result.action,
        action_id=action.id,
        friendship_id=result.id,
        to_user_id=to_user_id,
    )


def _parse(raw: Any) -> BatchAction | None:
    if isinstance(raw, BatchAction):
        return raw
    try:
        return BatchAction.model_validate(raw)
    except PydanticValidationError:
        return None


def process_batch(
    session: Session, actions: Iterable[Any] | None, user_id: str | None
) -> BatchResult:
    """Apply each action in order, isolating failures.

    Unknown or unparseable action types are skipped: they are neither counted
    as processed nor reported as failed.
    """
    if actions is None or isinstance(actions, (str, bytes, dict)):
        raise ValidationError("actions must be a list")
    actions = list(actions)
    if not actions:
        raise ValidationError("actions must be a non-empty list")
    user_id = clean_id(user_id)
    if not user_id:
        raise ValidationError("user_id is required")

    logger.info("Processing batch of %s actions for user %s", len(actions), user_id)
    result = BatchResult(processed=0, total=len(actions))
    for raw in actions:
        action = _parse(raw)
        action_type = action.action_type if action else None
        if action_type is None:
            logger.warning(
                "Skipping unsupported batch action type %r",
                getattr(action, "type", None) if action else raw,
            )
            continue
        try:
            with session.begin_nested():
                if action_type is BatchActionType.EVENT_RESPONSE:
                    item = process_event_response(session, action, user_id)
                else:
                    item = process_friendship_action(session, action, action_type)
        except Exception as exc:
            logger.exception("Batch action %s failed", action.id or "<no id>")
            message = exc.message if isinstance(exc, FomoError) else str(exc)
            result.failed.append({"id": action.id, "error": message})
            continue
        result.results.append(item)
        result.processed += 1

    logger.info(
        "Batch for user %s finished: %s of %s actions processed",
        user_id,
        result.processed,
        result.total,
    )
    return result
