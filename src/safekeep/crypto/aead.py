# Safekeep - AEAD Encryption of the Safe Payload
#
# Master password -> key (kdf.py) -> AES-256-GCM or ChaCha20-Poly1305.
#
# Envelope (UTF-8 JSON, binary fields base64):
#   {"version": 1, "cipher": "...", "kdf": {"name": ..., <params>, "salt": ...},
#    "nonce": "...", "ciphertext": "..."}
#
# Everything except "ciphertext" is canonicalized and bound as associated
# data, so editing the header is detected exactly like editing the body.

import base64
import binascii
import json
import logging
import os
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..config import EncryptionConfig
from ..errors import AuthenticationFailed
from .base import CryptoClient
from .kdf import derive_key, generate_salt, params_from_config

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = 1
NONCE_LENGTH = 12  # 96-bit nonce for both AEADs

CIPHERS = {
    "aes-256-gcm": AESGCM,
    "chacha20-poly1305": ChaCha20Poly1305,
}


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: Any) -> bytes:
    if not isinstance(data, str):
        raise ValueError("expected base64 string")
    return base64.b64decode(data.encode("ascii"), validate=True)


def _canonical_header(header: Dict[str, Any]) -> bytes:
    """Same header dict always gives the same associated-data bytes."""
    return json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8")


class AEADCryptoClient(CryptoClient):
    """
    Encrypts the whole safe payload with a password-derived key.

    Flow:
    1. Fresh random salt + nonce for every encrypt
    2. Derive 256-bit key from password + salt with the configured KDF
    3. AEAD-encrypt plaintext, header bound as associated data
    """

    def __init__(self, config: EncryptionConfig):
        super().__init__(config)
        if config.cipher not in CIPHERS:
            raise ValueError(f"Unsupported cipher: {config.cipher}")

    def encrypt(self, password: bytes, plaintext: bytes) -> bytes:
        salt = generate_salt()
        nonce = os.urandom(NONCE_LENGTH)
        kdf_params = params_from_config(self.config)
        kdf_params["salt"] = _b64encode(salt)

        header = {
            "version": ENVELOPE_VERSION,
            "cipher": self.config.cipher,
            "kdf": kdf_params,
            "nonce": _b64encode(nonce),
        }

        key = derive_key(password, salt, kdf_params)
        cipher = CIPHERS[self.config.cipher](key)
        ciphertext = cipher.encrypt(nonce, plaintext, _canonical_header(header))

        envelope = dict(header, ciphertext=_b64encode(ciphertext))
        return json.dumps(envelope, sort_keys=True).encode("utf-8")

    def decrypt(self, password: bytes, ciphertext: bytes) -> bytes:
        try:
            envelope = json.loads(ciphertext.decode("utf-8"))
            if not isinstance(envelope, dict):
                raise ValueError("envelope is not an object")
            body = _b64decode(envelope.pop("ciphertext"))
            header = envelope
            if header.get("version") != ENVELOPE_VERSION:
                raise ValueError("unsupported envelope version")
            cipher_cls = CIPHERS[header["cipher"]]
            kdf_params = dict(header["kdf"])
            salt = _b64decode(kdf_params.pop("salt"))
            nonce = _b64decode(header["nonce"])
            if len(nonce) != NONCE_LENGTH:
                raise ValueError("invalid nonce length")

            key = derive_key(password, salt, kdf_params)
            return cipher_cls(key).decrypt(nonce, body, _canonical_header(header))
        except (
            InvalidTag,
            ValueError,
            KeyError,
            TypeError,
            UnicodeDecodeError,
            binascii.Error,
            RecursionError,
        ) as exc:
            # Wrong password and malformed data look the same to the caller
            logger.debug("Safe decryption failed (%s)", type(exc).__name__)
            raise AuthenticationFailed() from None
