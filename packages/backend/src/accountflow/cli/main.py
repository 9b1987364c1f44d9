"""AccountFlow CLI — run the Profile Service and poke at profiles.

Usage:
    accountflow serve --port 8000                      # Run the API with uvicorn
    accountflow profile show --token $TOKEN            # GET /profile
    accountflow profile set --phone 555-0100           # POST /profile (merge-patch)
    accountflow profile verify-email                   # POST /profile/verify-email
    accountflow token mint --subject abc --email a@x.com --verified
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import sys
from typing import Optional

import click

from accountflow import __version__
from accountflow.auth.tokens import create_id_token
from accountflow.client.transfer import ProfileClient
from accountflow.config import settings
from accountflow.errors import TransferError
from accountflow.schemas.profile import AccountType, ProfilePatch

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _profile_client(token: str, api_url: Optional[str]) -> ProfileClient:
    async def token_provider() -> str:
        return token

    return ProfileClient(token_provider, base_url=api_url)


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(error: TransferError) -> None:
    status = error.status_code if error.status_code is not None else "no response"
    click.secho(f"Error ({status}): {error.message}", fg="red", err=True)
    if error.details:
        click.echo(_pretty_json(error.details), err=True)
    sys.exit(1)


token_option = click.option(
    "--token",
    envvar="ACCOUNTFLOW_TOKEN",
    required=True,
    help="Bearer token (or set ACCOUNTFLOW_TOKEN)",
)
api_url_option = click.option(
    "--api-url",
    envvar="ACCOUNTFLOW_API_URL",
    default=None,
    help=f"Profile Service base URL (default {settings.api_url})",
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="accountflow")
def main():
    """AccountFlow — profile service and session tooling."""


@main.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Port")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the Profile Service."""
    import uvicorn

    uvicorn.run(
        "accountflow.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# accountflow profile ...
# ---------------------------------------------------------------------------


@main.group()
def profile():
    """Read and write the profile of the token's identity."""


@profile.command("show")
@token_option
@api_url_option
def profile_show(token: str, api_url: Optional[str]):
    """Print the stored profile (exit 1 if none exists)."""

    async def _impl():
        async with _profile_client(token, api_url) as client:
            return await client.fetch_profile()

    try:
        record = _run(_impl())
    except TransferError as e:
        _fail(e)
        return
    if record is None:
        click.secho("No profile stored for this identity yet.", fg="yellow")
        sys.exit(1)
    click.echo(_pretty_json(record.model_dump(mode="json", by_alias=True)))


@profile.command("set")
@token_option
@api_url_option
@click.option("--display-name")
@click.option("--email")
@click.option("--phone")
@click.option("--account-type", type=click.Choice([t.value for t in AccountType]))
@click.option("--gender")
@click.option("--birth-date")
def profile_set(token: str, api_url: Optional[str], **fields):
    """Merge-patch the given fields into the profile."""
    patch = ProfilePatch(**{k: v for k, v in fields.items() if v is not None})
    if patch.is_empty():
        click.secho("Nothing to update: pass at least one field.", fg="yellow", err=True)
        sys.exit(2)

    async def _impl():
        async with _profile_client(token, api_url) as client:
            return await client.upsert_profile(patch)

    try:
        record = _run(_impl())
    except TransferError as e:
        _fail(e)
        return
    click.secho("Profile saved", fg="green")
    click.echo(_pretty_json(record.model_dump(mode="json", by_alias=True)))


@profile.command("verify-email")
@token_option
@api_url_option
def profile_verify_email(token: str, api_url: Optional[str]):
    """Mark the email verified and mirror the flag into the profile."""

    async def _impl():
        async with _profile_client(token, api_url) as client:
            return await client.confirm_email_verified()

    try:
        result = _run(_impl())
    except TransferError as e:
        _fail(e)
        return
    color = "green" if result.mirrored else "yellow"
    click.secho(f"Email verified (mirrored into profile: {result.mirrored})", fg=color)


# ---------------------------------------------------------------------------
# accountflow token ...
# ---------------------------------------------------------------------------


@main.group()
def token():
    """Development token helpers (local identity provider only)."""


@token.command("mint")
@click.option("--subject", required=True, help="Subject id to put in the token")
@click.option("--email", default="", help="Email claim")
@click.option("--verified", is_flag=True, help="Set the email_verified claim")
@click.option("--expires-minutes", type=int, default=None)
def token_mint(subject: str, email: str, verified: bool, expires_minutes: Optional[int]):
    """Print a bearer token signed with ACCOUNTFLOW_TOKEN_SECRET."""
    click.echo(create_id_token(subject, email, verified, expires_minutes=expires_minutes))


if __name__ == "__main__":
    main()
