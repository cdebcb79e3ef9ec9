"""Typer CLI for FOMO."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .crud import list_events
from .database import get_session
from .errors import FomoError
from .responses import current_response, migrate_responses
from .seed import seed_fake_data
from .storage import init_db, upgrade_database
from .tags import popular_tags

app = typer.Typer(help="FOMO command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.command("init-db")
def init_database() -> None:
    """Create the database schema if it does not exist yet."""
    actions = init_db()
    typer.echo(f"Database ready at {settings.database_path}")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            _fail(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}."
            )
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI application."""
    init_db()
    config = uvicorn.Config(
        "fomo.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting FOMO on {host}:{port}")
    server.run()


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=1, help="Number of users to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    max_responses: int = typer.Option(
        settings.seed_responses_per_event,
        "--max-responses",
        min=0,
        help="Maximum responders per event",
    ),
    max_friendships: int = typer.Option(
        settings.seed_friendships_per_user,
        "--max-friendships",
        min=0,
        help="Maximum friendships started by each user",
    ),
    public_percent: int = typer.Option(
        settings.seed_public_percent,
        "--public-percent",
        min=0,
        max=100,
        help="Percentage of events that should be public (0-100)",
    ),
):
    """Populate the database with fake users, events and responses."""
    stats = seed_fake_data(
        user_count=users,
        event_count=events,
        max_responses_per_event=max_responses,
        max_friendships_per_user=max_friendships,
        public_percentage=public_percent,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['responses']} responses, {stats['friendships']} friendships created."
    )


@app.command("tags")
def tags(
    limit: int = typer.Option(
        settings.popular_tags_limit, "--limit", min=1, help="Number of tags to list"
    ),
) -> None:
    """List the most used tags across live events."""
    init_db()
    with get_session() as session:
        rows = popular_tags(list_events(session), limit=limit)
    if not rows:
        typer.echo("No tags yet.")
        return
    for tag, count in rows:
        typer.echo(f"{tag}\t{count}")


@app.command("current-response")
def show_current_response(
    user_id: str = typer.Argument(..., help="User id"),
    event_id: str = typer.Argument(..., help="Event id"),
) -> None:
    """Print a user's current response to an event."""
    init_db()
    with get_session() as session:
        value = current_response(session, user_id=user_id, event_id=event_id)
    typer.echo(value.value if value else "none")


@app.command("migrate-responses")
def migrate_user_responses(
    old_user_id: str = typer.Argument(..., help="Visitor id whose history moves"),
    new_user_id: str = typer.Argument(..., help="Registered user id receiving it"),
) -> None:
    """Move a visitor's response history to a registered user."""
    init_db()
    try:
        with get_session() as session:
            moved = migrate_responses(session, old_user_id, new_user_id)
    except FomoError as exc:
        _fail(exc.message)
    typer.echo(f"Moved {moved} response entries from {old_user_id} to {new_user_id}")


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    default_timezone: str | None = typer.Option(
        None, "--default-timezone", help="Time zone used for period buckets"
    ),
    max_tags_per_event: int | None = typer.Option(
        None, "--max-tags-per-event", min=1, help="Tags kept per event"
    ),
    organizer_facet_limit: int | None = typer.Option(
        None, "--organizer-facet-limit", min=1, help="Organizers listed in facets"
    ),
    tag_facet_limit: int | None = typer.Option(
        None, "--tag-facet-limit", min=1, help="Tags listed in facets"
    ),
    popular_tags_limit: int | None = typer.Option(
        None, "--popular-tags-limit", min=1, help="Default size of popular tag lists"
    ),
    include_past_events: bool | None = typer.Option(
        None,
        "--include-past-events/--exclude-past-events",
        help="Show past events unless a request says otherwise",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to fomo.toml (default: ./fomo.toml)"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=1, help="Default seed-data users"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_responses_per_event: int | None = typer.Option(
        None,
        "--seed-responses-per-event",
        min=0,
        help="Default seed-data responders per event",
    ),
    seed_friendships_per_user: int | None = typer.Option(
        None,
        "--seed-friendships-per-user",
        min=0,
        help="Default seed-data friendships per user",
    ),
    seed_public_percent: int | None = typer.Option(
        None,
        "--seed-public-percent",
        min=0,
        max=100,
        help="Default percent of public events for seed-data",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "default_timezone": default_timezone,
        "max_tags_per_event": max_tags_per_event,
        "organizer_facet_limit": organizer_facet_limit,
        "tag_facet_limit": tag_facet_limit,
        "popular_tags_limit": popular_tags_limit,
        "include_past_events": include_past_events,
        "app_host": host,
        "app_port": port,
        "seed_users": seed_users,
        "seed_events": seed_events,
        "seed_responses_per_event": seed_responses_per_event,
        "seed_friendships_per_user": seed_friendships_per_user,
        "seed_public_percent": seed_public_percent,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
