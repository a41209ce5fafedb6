# Safekeep Crypto - Password-Based Encryption of the Safe
#
# Ciphers: aes-256-gcm, chacha20-poly1305
# KDFs:    pbkdf2-sha256, scrypt

from ..config import EncryptionConfig
from .aead import AEADCryptoClient
from .base import CryptoClient


def new_crypto_client(config: EncryptionConfig) -> CryptoClient:
    """Build the crypto client described by ``config``."""
    return AEADCryptoClient(config)


__all__ = ["CryptoClient", "AEADCryptoClient", "new_crypto_client"]
