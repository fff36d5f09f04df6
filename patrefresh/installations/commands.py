from pathlib import Path
from typing import Optional

import typer

from patrefresh.core.api import api_get_repo_installation, api_list_installations
from patrefresh.core.app_jwt import build_app_jwt
from patrefresh.core.config import AppSettings, REPOSITORY_REGEX, load_settings
from patrefresh.core.errors import ConfigurationError, RefreshError
from patrefresh.core.utils import fail, read_private_key_file


app = typer.Typer(help="GitHub App installation commands (list, find).")


def _load_app(private_key_file: Optional[Path]):
    settings = load_settings(AppSettings, PRIVATE_KEY=read_private_key_file(private_key_file))
    app_jwt = build_app_jwt(settings.APP_ID, settings.PRIVATE_KEY.get_secret_value())
    return settings, app_jwt


@app.command("list")
def list_installations(
    private_key_file: Optional[Path] = typer.Option(None, "--private-key-file", help="Read the App private key from a PEM file instead of PRIVATE_KEY."),
):
    """
    List the installations of the GitHub App.
    """
    try:
        settings, app_jwt = _load_app(private_key_file)
        installations = api_list_installations(settings, app_jwt)
    except RefreshError as e:
        fail(e)

    if not installations:
        typer.echo("No installations found.")
        return

    typer.echo(f"{'ID':<12} {'ACCOUNT':<30} REPOSITORIES")
    for inst in installations:
        login = inst.account.login if inst.account else "-"
        typer.echo(f"{inst.id:<12} {login:<30} {inst.repository_selection or '-'}")


@app.command("find")
def find_installation(
    repo: str = typer.Option(..., "--repo", "-r", help="Repository (owner/repo) the installation must cover."),
    private_key_file: Optional[Path] = typer.Option(None, "--private-key-file", help="Read the App private key from a PEM file instead of PRIVATE_KEY."),
):
    """
    Print the installation id (INSTALLATION_ID) that covers a repository.
    """
    try:
        if not REPOSITORY_REGEX.match(repo):
            raise ConfigurationError("--repo must look like owner/repo.")
        settings, app_jwt = _load_app(private_key_file)
        installation = api_get_repo_installation(settings, app_jwt, repo)
    except RefreshError as e:
        fail(e)

    typer.echo(str(installation.id))
