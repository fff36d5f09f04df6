# patrefresh/core/errors.py
"""
Error taxonomy for the refresh pipeline.
Every error carries a short label so the CLI can print a single line per failure.
Messages must never contain keys, tokens or configured identifiers.
"""
from typing import Optional


class RefreshError(Exception):
    label = "Error"


class ConfigurationError(RefreshError):
    label = "Configuration error"


class SigningError(RefreshError):
    label = "Signing error"


class UpstreamError(RefreshError):
    label = "Upstream error"

    def __init__(self, stage: str, message: str, status_code: Optional[int] = None):
        self.stage = stage
        self.status_code = status_code
        super().__init__(f"{stage}: {message}")


class EncryptionError(RefreshError):
    label = "Encryption error"


class PartialPipelineFailure(RefreshError):
    """
    Raised when a step after the token exchange fails.
    Unless the publish request itself was lost in transit, the stored secret
    keeps its previous value.
    """
    label = "Partial pipeline failure"

    def __init__(self, stage: str, cause: RefreshError, secret_unchanged: bool = True):
        self.stage = stage
        self.cause = cause
        self.secret_unchanged = secret_unchanged
        outcome = (
            "existing secret left unchanged"
            if secret_unchanged
            else "publish outcome unknown, the secret may already hold the new token"
        )
        super().__init__(f"{stage} failed ({cause.label}: {cause}); {outcome}")
