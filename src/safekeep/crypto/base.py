"""Crypto client contract.

A crypto client turns a master password plus plaintext into a
self-contained ciphertext blob and back. It keeps only algorithm
configuration; the password is supplied per call and never stored.
"""

from abc import ABC, abstractmethod

from ..config import EncryptionConfig


class CryptoClient(ABC):
    """Password-based authenticated encryption of the whole safe payload."""

    def __init__(self, config: EncryptionConfig):
        self.config = config

    @abstractmethod
    def encrypt(self, password: bytes, plaintext: bytes) -> bytes:
        """Encrypt ``plaintext``; the result embeds salt, nonce and parameters."""

    @abstractmethod
    def decrypt(self, password: bytes, ciphertext: bytes) -> bytes:
        """Decrypt a blob produced by :meth:`encrypt`.

        Raises:
            AuthenticationFailed: Wrong password or corrupted/tampered blob.
        """
