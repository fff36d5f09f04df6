from pathlib import Path
from typing import NoReturn, Optional

import typer

from .errors import ConfigurationError, RefreshError


def read_private_key_file(path: Optional[Path]) -> Optional[str]:
    """
    Reads the App private key from a PEM file.
    Returns None when no path is given, so PRIVATE_KEY from the environment is used.
    """
    if path is None:
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        reason = getattr(e, "strerror", None) or type(e).__name__
        raise ConfigurationError(f"Cannot read private key file ({reason}).") from None


def fail(error: RefreshError) -> NoReturn:
    """Prints a single-line failure reason and exits non-zero."""
    message = " ".join(str(error).split())
    typer.echo(f"{error.label}: {message}")
    raise typer.Exit(code=1)
