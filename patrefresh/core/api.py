# patrefresh/core/api.py
"""
GitHub REST calls used by the refresh pipeline.
Every call is blocking, bounded by settings.HTTP_TIMEOUT and raises UpstreamError
on transport failures, non-2xx answers and malformed bodies.
"""
import logging
from typing import List

import requests
from pydantic import ValidationError

from .config import AppSettings, get_verify
from .errors import UpstreamError
from .schemas import Installation, InstallationToken, PublicKeyResponse, RepoPublicKey
from .sealing import decode_public_key

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "gh-pat-refresh"

STAGE_TOKEN = "token exchange"
STAGE_PUBLIC_KEY = "public key fetch"
STAGE_PUBLISH = "secret publish"
STAGE_INSTALLATIONS = "installation lookup"


def _headers(bearer: str) -> dict:
    return {
        "Authorization": f"Bearer {bearer}",
        "Accept": GITHUB_ACCEPT,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": USER_AGENT,
    }


def _transport_error(stage: str, settings: AppSettings, exc: requests.RequestException) -> UpstreamError:
    # The exception text carries the URL (repository, installation id), keep only its type
    if isinstance(exc, requests.Timeout):
        return UpstreamError(stage, f"request timed out after {settings.HTTP_TIMEOUT:g}s")
    return UpstreamError(stage, f"request failed ({type(exc).__name__})")


def _error_detail(resp) -> str:
    """GitHub error bodies look like {"message": "Bad credentials", ...}."""
    try:
        data = resp.json()
    except ValueError:
        return ""
    message = data.get("message") if isinstance(data, dict) else None
    if isinstance(message, str) and message:
        return f" ({message[:200]})"
    return ""


def _check_status(resp, stage: str) -> None:
    logger.debug("%s: HTTP %s", stage, resp.status_code)
    if not 200 <= resp.status_code < 300:
        raise UpstreamError(
            stage,
            f"HTTP {resp.status_code}{_error_detail(resp)}",
            status_code=resp.status_code,
        )


def _json_body(resp, stage: str):
    try:
        return resp.json()
    except ValueError:
        raise UpstreamError(stage, "response body is not valid JSON", status_code=resp.status_code) from None


def _invalid_body(stage: str, resp, error: ValidationError) -> UpstreamError:
    fields = ", ".join(
        ".".join(str(part) for part in err["loc"]) or "body"
        for err in error.errors(include_url=False, include_input=False)
    )
    return UpstreamError(stage, f"malformed response body ({fields})", status_code=resp.status_code)


def api_create_installation_token(settings: AppSettings, app_jwt: str, installation_id: str) -> InstallationToken:
    """
    Exchanges the app JWT for an installation access token.
    POST /app/installations/{installation_id}/access_tokens
    """
    url = f"{settings.GITHUB_API_URL}/app/installations/{installation_id}/access_tokens"
    try:
        resp = requests.post(url, headers=_headers(app_jwt), verify=get_verify(settings), timeout=settings.HTTP_TIMEOUT)
    except requests.RequestException as e:
        raise _transport_error(STAGE_TOKEN, settings, e) from None

    _check_status(resp, STAGE_TOKEN)
    data = _json_body(resp, STAGE_TOKEN)
    if not isinstance(data, dict):
        raise UpstreamError(STAGE_TOKEN, "response body is not a JSON object", status_code=resp.status_code)

    try:
        return InstallationToken.model_validate(data)
    except ValidationError as e:
        raise _invalid_body(STAGE_TOKEN, resp, e) from None


def api_get_repo_public_key(settings: AppSettings, token: str, repository: str) -> RepoPublicKey:
    """
    Gets the repository public key used to seal Actions secrets.
    GET /repos/{owner}/{repo}/actions/secrets/public-key

    The key length is checked here, so a bad key stops the run before any sealing.
    """
    url = f"{settings.GITHUB_API_URL}/repos/{repository}/actions/secrets/public-key"
    try:
        resp = requests.get(url, headers=_headers(token), verify=get_verify(settings), timeout=settings.HTTP_TIMEOUT)
    except requests.RequestException as e:
        raise _transport_error(STAGE_PUBLIC_KEY, settings, e) from None

    _check_status(resp, STAGE_PUBLIC_KEY)
    data = _json_body(resp, STAGE_PUBLIC_KEY)
    if not isinstance(data, dict):
        raise UpstreamError(STAGE_PUBLIC_KEY, "response body is not a JSON object", status_code=resp.status_code)

    try:
        body = PublicKeyResponse.model_validate(data)
    except ValidationError as e:
        raise _invalid_body(STAGE_PUBLIC_KEY, resp, e) from None

    return RepoPublicKey(key_id=body.key_id, key=decode_public_key(body.key))


def api_put_repo_secret(
    settings: AppSettings,
    token: str,
    repository: str,
    secret_name: str,
    encrypted_value: str,
    key_id: str,
) -> int:
    """
    Creates or updates a repository Actions secret.
    PUT /repos/{owner}/{repo}/actions/secrets/{secret_name}

    Returns the status code: 201 when created, 204 when updated.
    """
    url = f"{settings.GITHUB_API_URL}/repos/{repository}/actions/secrets/{secret_name}"
    body = {"encrypted_value": encrypted_value, "key_id": key_id}
    try:
        resp = requests.put(url, json=body, headers=_headers(token), verify=get_verify(settings), timeout=settings.HTTP_TIMEOUT)
    except requests.RequestException as e:
        raise _transport_error(STAGE_PUBLISH, settings, e) from None

    _check_status(resp, STAGE_PUBLISH)
    return resp.status_code


def api_list_installations(settings: AppSettings, app_jwt: str) -> List[Installation]:
    """
    Lists every installation of the App, following pagination.
    GET /app/installations
    """
    url = f"{settings.GITHUB_API_URL}/app/installations"
    params = {"per_page": 100}
    installations: List[Installation] = []

    while url:
        try:
            resp = requests.get(url, params=params, headers=_headers(app_jwt), verify=get_verify(settings), timeout=settings.HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise _transport_error(STAGE_INSTALLATIONS, settings, e) from None

        _check_status(resp, STAGE_INSTALLATIONS)
        data = _json_body(resp, STAGE_INSTALLATIONS)
        if not isinstance(data, list):
            raise UpstreamError(STAGE_INSTALLATIONS, "response body is not a JSON list", status_code=resp.status_code)

        try:
            installations.extend(Installation.model_validate(item) for item in data)
        except ValidationError as e:
            raise _invalid_body(STAGE_INSTALLATIONS, resp, e) from None

        # The "next" link already carries the query string
        url = resp.links.get("next", {}).get("url")
        params = None

    return installations


def api_get_repo_installation(settings: AppSettings, app_jwt: str, repository: str) -> Installation:
    """
    Finds the installation of the App that covers a repository.
    GET /repos/{owner}/{repo}/installation
    """
    url = f"{settings.GITHUB_API_URL}/repos/{repository}/installation"
    try:
        resp = requests.get(url, headers=_headers(app_jwt), verify=get_verify(settings), timeout=settings.HTTP_TIMEOUT)
    except requests.RequestException as e:
        raise _transport_error(STAGE_INSTALLATIONS, settings, e) from None

    _check_status(resp, STAGE_INSTALLATIONS)
    data = _json_body(resp, STAGE_INSTALLATIONS)
    try:
        return Installation.model_validate(data)
    except ValidationError as e:
        raise _invalid_body(STAGE_INSTALLATIONS, resp, e) from None
