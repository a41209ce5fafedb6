"""Terminal helpers: masked password input and password generation."""

import getpass
import secrets
import string

from .errors import SafeError

SYMBOLS = "!@#$%^&*()_+-="


def get_password_input(message: str) -> bytes:
    """Prompt for masked input and return it as UTF-8 bytes.

    Raises:
        SafeError: Input was aborted (EOF or Ctrl+C).
    """
    try:
        value = getpass.getpass(f"{message}: ")
    except (EOFError, KeyboardInterrupt):
        raise SafeError("password input aborted") from None
    return value.encode("utf-8")


def generate_password(length: int = 20, use_symbols: bool = True) -> str:
    """
    Generate a random password from letters, digits and (optionally) symbols.

    Uses the ``secrets`` module (os.urandom underneath).
    """
    if length < 1:
        raise ValueError("password length must be positive")
    chars = string.ascii_letters + string.digits
    if use_symbols:
        chars += SYMBOLS
    return "".join(secrets.choice(chars) for _ in range(length))
