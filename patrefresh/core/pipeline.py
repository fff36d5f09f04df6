# patrefresh/core/pipeline.py
"""
The refresh pipeline: app JWT -> installation token -> repository public key
-> sealed token -> repository secret.

Steps run strictly in sequence, nothing is kept between runs and nothing is
retried; the scheduler re-running the pipeline is the retry policy.
Overlapping runs are last-writer-wins on the stored secret.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .api import (
    STAGE_PUBLIC_KEY,
    STAGE_PUBLISH,
    api_create_installation_token,
    api_get_repo_public_key,
    api_put_repo_secret,
)
from .app_jwt import build_app_jwt, decode_app_jwt
from .config import RefreshSettings
from .errors import EncryptionError, PartialPipelineFailure, UpstreamError
from .schemas import InstallationToken
from .sealing import seal_secret

logger = logging.getLogger(__name__)

STAGE_SEAL = "secret sealing"


@dataclass(frozen=True)
class RefreshResult:
    key_id: str
    token_expires_at: Optional[datetime]
    published: bool
    status_code: Optional[int] = None  # 201 created, 204 updated


def mint_installation_token(settings: RefreshSettings, now: Optional[int] = None) -> InstallationToken:
    # The JWT is built for this one exchange and dropped with this frame
    app_jwt = build_app_jwt(settings.APP_ID, settings.PRIVATE_KEY.get_secret_value(), now=now)
    _, claims = decode_app_jwt(app_jwt)
    logger.debug("App JWT valid until %s", claims["exp"])
    logger.info("Requesting installation token")
    return api_create_installation_token(settings, app_jwt, settings.INSTALLATION_ID)


def run_refresh(settings: RefreshSettings, now: Optional[int] = None, dry_run: bool = False) -> RefreshResult:
    """
    Runs the whole pipeline once.

    Args:
        settings: Validated configuration for this run
        now: Issue time of the app JWT in epoch seconds (defaults to the current time)
        dry_run: Do everything except publishing the secret

    Raises:
        ConfigurationError, SigningError, UpstreamError: before or during the token exchange
        PartialPipelineFailure: after the token exchange; the stored secret is unchanged
            unless the publish request was lost in transit (secret_unchanged=False)
    """
    installation_token = mint_installation_token(settings, now=now)
    logger.info("Installation token issued (expires at %s)", installation_token.expires_at or "unknown")

    stage = STAGE_PUBLIC_KEY
    try:
        public_key = api_get_repo_public_key(settings, installation_token.token.get_secret_value(), settings.GITHUB_REPOSITORY)
        logger.info("Fetched repository public key %s", public_key.key_id)

        stage = STAGE_SEAL
        encrypted_value = seal_secret(installation_token.token.get_secret_value(), public_key.key)

        if dry_run:
            logger.info("Dry run, secret not published")
            return RefreshResult(
                key_id=public_key.key_id,
                token_expires_at=installation_token.expires_at,
                published=False,
            )

        stage = STAGE_PUBLISH
        status_code = api_put_repo_secret(
            settings,
            installation_token.token.get_secret_value(),
            settings.GITHUB_REPOSITORY,
            settings.SECRET_NAME,
            encrypted_value,
            public_key.key_id,
        )
    except (UpstreamError, EncryptionError) as e:
        # A PUT lost in transit may still have been committed by GitHub
        secret_unchanged = not (
            stage == STAGE_PUBLISH and isinstance(e, UpstreamError) and e.status_code is None
        )
        logger.warning(
            "Refresh stopped during %s; %s",
            stage,
            "secret left unchanged" if secret_unchanged else "publish outcome unknown",
        )
        raise PartialPipelineFailure(stage, e, secret_unchanged=secret_unchanged) from e

    logger.info("Secret published with key %s (HTTP %s)", public_key.key_id, status_code)
    return RefreshResult(
        key_id=public_key.key_id,
        token_expires_at=installation_token.expires_at,
        published=True,
        status_code=status_code,
    )
