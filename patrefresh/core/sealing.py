# patrefresh/core/sealing.py
"""
Sealed-box encryption of secret values for GitHub Actions.

GitHub publishes a Curve25519 public key per repository. Values are sealed with
an ephemeral sender key (libsodium crypto_box_seal), so only GitHub can open them.
"""
import base64
import binascii

from nacl.exceptions import CryptoError
from nacl.public import PublicKey, SealedBox

from .errors import EncryptionError

PUBLIC_KEY_SIZE = PublicKey.SIZE  # 32 bytes


def decode_public_key(key_b64: str) -> bytes:
    """
    Decodes the base64 public key returned by GitHub.
    The key is never truncated or padded: anything but 32 raw bytes is rejected.
    """
    if not isinstance(key_b64, str) or not key_b64:
        raise EncryptionError("Public key is empty or not a string.")
    try:
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        raise EncryptionError("Public key is not valid base64.") from None

    if len(key) != PUBLIC_KEY_SIZE:
        raise EncryptionError(
            f"Decoded public key is {len(key)} bytes, expected {PUBLIC_KEY_SIZE}."
        )
    return key


def seal_secret(plaintext: str, public_key: bytes) -> str:
    """
    Seals the plaintext for the holder of the matching private key.
    Returns the ciphertext base64-encoded, ready for the secrets API.
    Each call uses a fresh ephemeral key, so ciphertexts never repeat.
    """
    if not plaintext:
        raise EncryptionError("Refusing to seal an empty value.")
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise EncryptionError(
            f"Public key is {len(public_key)} bytes, expected {PUBLIC_KEY_SIZE}."
        )

    try:
        sealed_box = SealedBox(PublicKey(public_key))
        encrypted = sealed_box.encrypt(plaintext.encode("utf-8"))
    except (CryptoError, TypeError, ValueError, UnicodeEncodeError) as e:
        raise EncryptionError(f"Sealing failed ({type(e).__name__}).") from None

    return base64.b64encode(encrypted).decode("utf-8")
