# patrefresh/core/app_jwt.py
"""
GitHub App JWT creation and signing utilities.
Uses RS256 (RSA with SHA-256) for signing JWTs.
"""
import base64
import json
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from .errors import ConfigurationError, SigningError

# GitHub rejects app JWTs living longer than 10 minutes; 9 leaves room for clock drift
APP_JWT_LIFETIME_SECONDS = 540
MIN_RSA_KEY_SIZE = 2048

JWT_HEADER = {"alg": "RS256", "typ": "JWT"}


def create_app_payload(issuer_id: str, now: Optional[int] = None) -> dict:
    """
    Creates the app JWT payload.

    Args:
        issuer_id: The GitHub App ID
        now: Issue time in epoch seconds (defaults to the current time)

    Returns:
        dict: JWT payload
    """
    if now is None:
        now = int(datetime.now(timezone.utc).timestamp())
    if isinstance(now, bool) or not isinstance(now, int) or now < 0:
        raise ConfigurationError("Issue time must be a non-negative integer (epoch seconds).")

    return {
        "iat": now,
        "exp": now + APP_JWT_LIFETIME_SECONDS,
        "iss": str(issuer_id),
    }


def _base64url_encode(data: bytes) -> str:
    """Base64 URL-safe encoding without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _base64url_decode(data: str) -> bytes:
    data += "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data)


def load_signing_key(private_key_pem: Union[str, bytes]) -> rsa.RSAPrivateKey:
    """
    Loads the App private key.
    Malformed PEM, non-RSA keys and keys that are too small are configuration errors.
    """
    if isinstance(private_key_pem, str):
        private_key_pem = private_key_pem.encode("utf-8")

    try:
        private_key = load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        # The parser message may quote key material
        raise ConfigurationError("PRIVATE_KEY is not a valid unencrypted PEM private key.") from None

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ConfigurationError("PRIVATE_KEY must be an RSA key (RS256).")
    if private_key.key_size < MIN_RSA_KEY_SIZE:
        raise ConfigurationError(f"PRIVATE_KEY must be at least {MIN_RSA_KEY_SIZE} bits.")
    return private_key


def sign_app_jwt(payload: dict, private_key_pem: Union[str, bytes]) -> str:
    """
    Signs the payload with the App private key using RS256.

    Args:
        payload: The JWT payload dict
        private_key_pem: The App private key in PEM format

    Returns:
        str: The complete JWT string (header.payload.signature)
    """
    private_key = load_signing_key(private_key_pem)

    header_b64 = _base64url_encode(json.dumps(JWT_HEADER, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _base64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))

    signing_input = f"{header_b64}.{payload_b64}"

    # RSASSA-PKCS1-v1_5 with SHA-256
    try:
        signature = private_key.sign(
            signing_input.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA256()
        )
    except Exception as e:
        raise SigningError(f"RS256 signing failed ({type(e).__name__}).") from None

    return f"{signing_input}.{_base64url_encode(signature)}"


def build_app_jwt(issuer_id: str, private_key_pem: Union[str, bytes], now: Optional[int] = None) -> str:
    """Builds a fresh, single-use app JWT: a pure function of (issuer, key, now)."""
    return sign_app_jwt(create_app_payload(issuer_id, now), private_key_pem)


def decode_app_jwt(token: str) -> Tuple[dict, dict]:
    """
    Decodes a JWT WITHOUT verifying the signature.
    Returns (header, payload); raises ValueError if the token is malformed.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("JWT must have three dot-separated parts")

    try:
        header = json.loads(_base64url_decode(parts[0]).decode("utf-8"))
        payload = json.loads(_base64url_decode(parts[1]).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError(f"JWT is not valid base64url JSON: {e}") from e
    return header, payload
