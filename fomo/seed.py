"""Development helpers for populating fake users, events, responses and friendships."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, create_user
from .database import get_session
from .friendships import upsert_friendship
from .models import Event, FriendshipStatus, ResponseValue, User
from .responses import append_response
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Concert",
    "Apéro",
    "Workshop",
    "Picnic",
    "Exhibition",
    "Running Club",
    "Board Games",
    "Open Mic",
]
_tag_pool = [
    "music",
    "food",
    "art",
    "sport",
    "outdoor",
    "games",
    "tech",
    "party",
    "family",
    "culture",
]
_responses = [
    ResponseValue.GOING,
    ResponseValue.GOING,
    ResponseValue.INTERESTED,
    ResponseValue.INTERESTED,
    ResponseValue.MAYBE,
    ResponseValue.NOT_INTERESTED,
    ResponseValue.SEEN,
    ResponseValue.INVITED,
]
_friendship_statuses = [
    FriendshipStatus.ACTIVE,
    FriendshipStatus.ACTIVE,
    FriendshipStatus.ACTIVE,
    FriendshipStatus.PENDING,
    FriendshipStatus.BLOCKED,
]


def seed_fake_data(
    *,
    user_count: int = 12,
    event_count: int = 30,
    max_responses_per_event: int = 4,
    max_friendships_per_user: int = 3,
    public_percentage: int = 70,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic users, events and history."""
    if user_count < 1:
        raise ValueError("user_count must be >= 1")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_responses_per_event < 0:
        raise ValueError("max_responses_per_event must be >= 0")
    if max_friendships_per_user < 0:
        raise ValueError("max_friendships_per_user must be >= 0")
    if not 0 <= public_percentage <= 100:
        raise ValueError("public_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "responses": 0, "friendships": 0}

    with get_session() as session:
        users = [_create_user(session, fake) for _ in range(user_count)]
        stats["users"] = len(users)
        for _ in range(event_count):
            event = _create_event(
                session, fake, organizer=random.choice(users), public_percentage=public_percentage
            )
            stats["events"] += 1
            stats["responses"] += _create_responses(
                session, event, users, max_responses_per_event
            )
        stats["friendships"] = _create_friendships(session, users, max_friendships_per_user)

    return stats


def _create_user(session: Session, fake: Faker) -> User:
    city = fake.city()
    return create_user(
        session,
        name=fake.name_nonbinary(),
        email=fake.unique.email(),
        city=city,
        lat=float(fake.latitude()),
        lng=float(fake.longitude()),
        is_public_profile=random.random() < 0.3,
        is_ambassador=random.random() < 0.1,
        last_connection=utcnow() - timedelta(days=random.randint(0, 30)),
    )


def _random_start_time() -> datetime:
    now = utcnow()
    day_offset = random.randint(-7, 45)
    minute_offset = random.randint(0, 23 * 60)
    return now + timedelta(days=day_offset, minutes=minute_offset)


def _maybe_end_time(start_time: datetime) -> datetime | None:
    if random.random() < 0.3:
        return None
    return start_time + timedelta(hours=random.randint(1, 6))


def _create_event(
    session: Session, fake: Faker, *, organizer: User, public_percentage: int
) -> Event:
    start_time = _random_start_time()
    return create_event(
        session,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description=fake.paragraph(nb_sentences=3),
        start_time=start_time,
        end_time=_maybe_end_time(start_time),
        venue_name=fake.company(),
        venue_address=fake.address().replace("\n", ", "),
        venue_lat=float(fake.latitude()),
        venue_lng=float(fake.longitude()),
        organizer_id=organizer.id,
        organizer_name=organizer.name,
        is_public=random.randint(1, 100) <= public_percentage,
        is_online=random.random() < 0.9,
        tags=random.sample(_tag_pool, k=random.randint(0, 4)),
    )


def _create_responses(
    session: Session, event: Event, users: list[User], max_responses: int
) -> int:
    if max_responses <= 0:
        return 0
    responders = random.sample(users, k=min(len(users), random.randint(0, max_responses)))
    total = 0
    for user in responders:
        # Some users change their mind, which appends a second entry.
        for _ in range(random.choice((1, 1, 2))):
            append_response(
                session,
                user_id=user.id,
                event_id=event.id,
                response=random.choice(_responses),
            )
            total += 1
    return total


def _create_friendships(session: Session, users: list[User], max_per_user: int) -> int:
    if max_per_user <= 0 or len(users) < 2:
        return 0
    created = 0
    for user in users:
        others = [other for other in users if other.id != user.id]
        for other in random.sample(others, k=min(len(others), random.randint(0, max_per_user))):
            result = upsert_friendship(
                session, user.id, other.id, random.choice(_friendship_statuses)
            )
            if result.action == "created":
                created += 1
    return created
