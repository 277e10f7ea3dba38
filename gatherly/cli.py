"""Typer CLI for Gatherly."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
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
from .crud import create_user as crud_create_user
from .crud import get_user, rotate_access_token, save_profile
from .database import get_session
from .profiles import validate_profile
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="Gatherly command-line interface")


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
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
    """Start the FastAPI app under uvicorn."""
    init_db()
    config = uvicorn.Config(
        "gatherly.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting Gatherly on {host}:{port}")
    server.run()


@app.command("create-user")
def create_user(
    email: str | None = typer.Option(None, "--email", help="Optional sign-in email"),
    username: str | None = typer.Option(None, "--username", help="Profile username"),
    first_name: str | None = typer.Option(None, "--first-name"),
    last_name: str | None = typer.Option(None, "--last-name"),
) -> None:
    """Create a user and print its id and access token."""
    errors = validate_profile(
        username=username, first_name=first_name, last_name=last_name, bio=None
    )
    if errors:
        _fail("; ".join(errors.values()))

    init_db()
    try:
        with get_session() as session:
            user = crud_create_user(session, email=email)
            if username or first_name or last_name:
                save_profile(
                    session,
                    user,
                    username=username or None,
                    first_name=first_name or None,
                    last_name=last_name or None,
                )
            user_id, token = user.id, user.access_token
    except ValueError as exc:
        _fail(str(exc))
    typer.echo(f"User id: {user_id}")
    typer.echo(f"Access token: {token}")


@app.command("rotate-token")
def rotate_token(
    user_ref: str = typer.Argument(..., help="User id or email"),
) -> None:
    """Issue a new access token for a user, invalidating the old one."""
    init_db()
    with get_session() as session:
        user = get_user(session, user_ref)
        if user is None:
            _fail(f"No user matches {user_ref!r}")
        token = rotate_access_token(session, user)
    typer.echo(token)


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=0, help="Number of users to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    max_friends: int = typer.Option(
        settings.seed_friendships_per_user,
        "--max-friends",
        min=0,
        help="Maximum friendships to start from each user",
    ),
    max_rsvps: int = typer.Option(
        settings.seed_rsvps_per_event,
        "--max-rsvps",
        min=0,
        help="Maximum RSVPs to attach to each event",
    ),
) -> None:
    """Populate the database with fake users, events and friendships."""
    stats = seed_fake_data(
        user_count=users,
        event_count=events,
        max_friends_per_user=max_friends,
        max_rsvps_per_event=max_rsvps,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['friendships']} friendships, {stats['rsvps']} RSVPs created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    for_you_page_size: int | None = typer.Option(
        None, "--for-you-page-size", min=1, help="Events on the first 'for you' page"
    ),
    load_more_page_size: int | None = typer.Option(
        None, "--load-more-page-size", min=1, help="Events fetched per 'load more'"
    ),
    popular_limit: int | None = typer.Option(
        None, "--popular-limit", min=0, help="Maximum 'popular with friends' events"
    ),
    search_limit: int | None = typer.Option(
        None, "--search-limit", min=1, help="Maximum user search results"
    ),
    public_base_url: str | None = typer.Option(
        None, "--public-base-url", help="Base URL used in invite links"
    ),
    database_url: str | None = typer.Option(
        None, "--database-url", help="SQLAlchemy URL (default: SQLite file in the data dir)"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to gatherly.toml (default: ./gatherly.toml)"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=0, help="Default seed-data users"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_friendships_per_user: int | None = typer.Option(
        None,
        "--seed-friendships-per-user",
        min=0,
        help="Default seed-data friendships per user",
    ),
    seed_rsvps_per_event: int | None = typer.Option(
        None, "--seed-rsvps-per-event", min=0, help="Default seed-data RSVPs per event"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "for_you_page_size": for_you_page_size,
        "load_more_page_size": load_more_page_size,
        "popular_limit": popular_limit,
        "search_limit": search_limit,
        "public_base_url": public_base_url,
        "app_host": host,
        "app_port": port,
        "seed_users": seed_users,
        "seed_events": seed_events,
        "seed_friendships_per_user": seed_friendships_per_user,
        "seed_rsvps_per_event": seed_rsvps_per_event,
        "database_url": database_url,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

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


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the test suite with helpful defaults."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", ".")
    env.setdefault("UV_CACHE_DIR", ".uv-cache")
    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [uv_path, "run", "pytest"]
    else:
        typer.echo("uv not found, falling back to python -m pytest")
        cmd = [sys.executable, "-m", "pytest"]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
