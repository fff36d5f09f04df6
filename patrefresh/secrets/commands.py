import base64
from pathlib import Path
from typing import Optional

import typer

from patrefresh.core.api import api_get_repo_public_key
from patrefresh.core.config import RefreshSettings, load_settings
from patrefresh.core.errors import RefreshError
from patrefresh.core.pipeline import mint_installation_token, run_refresh
from patrefresh.core.utils import fail, read_private_key_file


app = typer.Typer(help="Repository secret commands (refresh, public-key).")


@app.command("refresh")
def refresh(
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Target repository (owner/repo). Defaults to GITHUB_REPOSITORY."),
    secret_name: Optional[str] = typer.Option(None, "--secret-name", "-s", help="Secret to replace. Defaults to SECRET_NAME or GH_PAT."),
    private_key_file: Optional[Path] = typer.Option(None, "--private-key-file", help="Read the App private key from a PEM file instead of PRIVATE_KEY."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Mint and seal the token without publishing it."),
):
    """
    Mint an installation token and store it, sealed, as a repository secret.
    Safe to run repeatedly; the latest run wins.
    """
    try:
        settings = load_settings(
            RefreshSettings,
            GITHUB_REPOSITORY=repo,
            SECRET_NAME=secret_name,
            PRIVATE_KEY=read_private_key_file(private_key_file),
        )
        result = run_refresh(settings, dry_run=dry_run)
    except RefreshError as e:
        fail(e)

    expires = result.token_expires_at.isoformat() if result.token_expires_at else "unknown"
    if not result.published:
        typer.echo(f"Dry run: token sealed with key id {result.key_id}, nothing published.")
        return
    typer.echo(f"Secret refreshed (key id {result.key_id}, token expires {expires}).")


@app.command("public-key")
def public_key(
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Target repository (owner/repo). Defaults to GITHUB_REPOSITORY."),
    private_key_file: Optional[Path] = typer.Option(None, "--private-key-file", help="Read the App private key from a PEM file instead of PRIVATE_KEY."),
):
    """
    Show the repository public key used to seal Actions secrets.
    """
    try:
        settings = load_settings(
            RefreshSettings,
            GITHUB_REPOSITORY=repo,
            PRIVATE_KEY=read_private_key_file(private_key_file),
        )
        installation_token = mint_installation_token(settings)
        key = api_get_repo_public_key(settings, installation_token.token.get_secret_value(), settings.GITHUB_REPOSITORY)
    except RefreshError as e:
        fail(e)

    typer.echo(f"key_id: {key.key_id}")
    typer.echo(f"key: {base64.b64encode(key.key).decode('utf-8')}")
