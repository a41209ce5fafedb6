# Safekeep - Key Derivation
#
# Master password -> 256-bit key.
#   pbkdf2-sha256: PBKDF2-HMAC-SHA256, iteration count from config
#   scrypt:        memory-hard, (n, r, p) from config
#
# The parameters used are recorded in every ciphertext envelope so a
# safe stays readable after the configured defaults change.

import os
from typing import Any, Dict

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..config import EncryptionConfig

KEY_LENGTH = 32   # 256 bits
SALT_LENGTH = 32  # 256-bit salt

# Upper bounds accepted when reading parameters back out of an envelope
MAX_PBKDF2_ITERATIONS = 10_000_000
MAX_SCRYPT_P = 16
# scrypt needs about 128 * n * r * p bytes of memory
MAX_SCRYPT_MEMORY = 256 * 1024 * 1024


def generate_salt() -> bytes:
    """Generate cryptographically random salt."""
    return os.urandom(SALT_LENGTH)


def params_from_config(config: EncryptionConfig) -> Dict[str, Any]:
    """KDF parameters (without salt) for new ciphertexts."""
    if config.kdf == "scrypt":
        return {"name": "scrypt", "n": config.scrypt_n, "r": config.scrypt_r, "p": config.scrypt_p}
    return {"name": "pbkdf2-sha256", "iterations": config.pbkdf2_iterations}


def derive_key(password: bytes, salt: bytes, params: Dict[str, Any]) -> bytes:
    """
    Derive an encryption key from the master password.

    Args:
        password: Master password bytes
        salt: Random salt (stored with the ciphertext)
        params: KDF name and cost parameters

    Returns:
        256-bit key

    Raises:
        ValueError: Unknown KDF or parameters outside the accepted range
    """
    name = params.get("name")
    if name == "pbkdf2-sha256":
        iterations = params.get("iterations")
        if not isinstance(iterations, int) or not 1 <= iterations <= MAX_PBKDF2_ITERATIONS:
            raise ValueError("pbkdf2 iterations out of range")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
    elif name == "scrypt":
        n, r, p = params.get("n"), params.get("r"), params.get("p")
        if not all(isinstance(v, int) for v in (n, r, p)):
            raise ValueError("scrypt parameters must be integers")
        if n < 2 or r < 1 or not 1 <= p <= MAX_SCRYPT_P:
            raise ValueError("scrypt parameters out of range")
        if 128 * n * r * p > MAX_SCRYPT_MEMORY:
            raise ValueError("scrypt memory cost out of range")
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=n, r=r, p=p)
    else:
        raise ValueError(f"unsupported kdf: {name}")

    return kdf.derive(password)
