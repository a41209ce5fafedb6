"""Tests for the crypto package: AEAD envelope, KDFs, failure conflation."""

import base64
import json

import pytest

from safekeep.config import EncryptionConfig
from safekeep.crypto import AEADCryptoClient, new_crypto_client
from safekeep.crypto.kdf import KEY_LENGTH, SALT_LENGTH, derive_key
from safekeep.errors import AuthenticationFailed


@pytest.fixture
def crypto():
    return new_crypto_client(EncryptionConfig(pbkdf2_iterations=1000))


# ── Round trip ───────────────────────────────────────────────────────


class TestRoundTrip:
    def test_encrypt_decrypt_roundtrip(self, crypto):
        blob = crypto.encrypt(b"correct-horse", b'{"email": "secret123"}')
        assert crypto.decrypt(b"correct-horse", blob) == b'{"email": "secret123"}'

    def test_empty_plaintext(self, crypto):
        blob = crypto.encrypt(b"pw", b"")
        assert crypto.decrypt(b"pw", blob) == b""

    @pytest.mark.parametrize("cipher", ["aes-256-gcm", "chacha20-poly1305"])
    @pytest.mark.parametrize("kdf", ["pbkdf2-sha256", "scrypt"])
    def test_every_cipher_and_kdf(self, cipher, kdf):
        client = new_crypto_client(
            EncryptionConfig(cipher=cipher, kdf=kdf, pbkdf2_iterations=1000, scrypt_n=2**10)
        )
        blob = client.encrypt(b"pw", b"payload")
        assert client.decrypt(b"pw", blob) == b"payload"

    def test_salt_and_nonce_are_random(self, crypto):
        blob1 = crypto.encrypt(b"pw", b"same data")
        blob2 = crypto.encrypt(b"pw", b"same data")
        assert blob1 != blob2

    def test_plaintext_not_visible_in_blob(self, crypto):
        blob = crypto.encrypt(b"pw", b"very-secret-value")
        assert b"very-secret-value" not in blob

    def test_decrypt_uses_parameters_from_envelope(self):
        old = new_crypto_client(EncryptionConfig(kdf="scrypt", scrypt_n=2**10))
        blob = old.encrypt(b"pw", b"data")
        # Reconfigured client can still read what the old settings wrote
        new = new_crypto_client(EncryptionConfig(cipher="chacha20-poly1305", pbkdf2_iterations=2000))
        assert new.decrypt(b"pw", blob) == b"data"


# ── Authentication failure ───────────────────────────────────────────


def _tamper(blob: bytes, field: str, mutate) -> bytes:
    envelope = json.loads(blob)
    envelope[field] = mutate(envelope[field])
    return json.dumps(envelope).encode("utf-8")


def _flip_b64(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestAuthenticationFailed:
    def test_wrong_password(self, crypto):
        blob = crypto.encrypt(b"correct-horse", b"data")
        with pytest.raises(AuthenticationFailed):
            crypto.decrypt(b"wrong-password", blob)

    def test_tampered_ciphertext(self, crypto):
        blob = crypto.encrypt(b"pw", b"data")
        with pytest.raises(AuthenticationFailed):
            crypto.decrypt(b"pw", _tamper(blob, "ciphertext", _flip_b64))

    def test_tampered_nonce(self, crypto):
        blob = crypto.encrypt(b"pw", b"data")
        with pytest.raises(AuthenticationFailed):
            crypto.decrypt(b"pw", _tamper(blob, "nonce", _flip_b64))

    def test_tampered_header_cipher_name(self):
        client = new_crypto_client(EncryptionConfig(pbkdf2_iterations=1000))
        blob = client.encrypt(b"pw", b"data")
        with pytest.raises(AuthenticationFailed):
            client.decrypt(b"pw", _tamper(blob, "cipher", lambda _: "chacha20-poly1305"))

    def test_tampered_kdf_params(self, crypto):
        blob = crypto.encrypt(b"pw", b"data")

        def bump(kdf):
            kdf = dict(kdf)
            kdf["iterations"] += 1
            return kdf

        with pytest.raises(AuthenticationFailed):
            crypto.decrypt(b"pw", _tamper(blob, "kdf", bump))

    @pytest.mark.parametrize(
        "garbage",
        [
            b"",
            b"not json",
            b"[]",
            b'{"version": 1}',
            b"\xff\xfe",
            b'{"version": 2, "ciphertext": ""}',
            pytest.param(b"[" * 100000 + b"]" * 100000, id="deeply-nested"),
        ],
    )
    def test_malformed_blob_looks_like_wrong_password(self, crypto, garbage):
        with pytest.raises(AuthenticationFailed) as exc_info:
            crypto.decrypt(b"pw", garbage)
        assert str(exc_info.value) == str(AuthenticationFailed())

    def test_absurd_kdf_cost_rejected(self, crypto):
        blob = crypto.encrypt(b"pw", b"data")

        def huge(kdf):
            kdf = dict(kdf)
            kdf["iterations"] = 10**12
            return kdf

        with pytest.raises(AuthenticationFailed):
            crypto.decrypt(b"pw", _tamper(blob, "kdf", huge))

    def test_scrypt_memory_cost_rejected(self):
        client = new_crypto_client(EncryptionConfig(kdf="scrypt", scrypt_n=2**10))
        blob = client.encrypt(b"pw", b"data")

        def huge(kdf):
            kdf = dict(kdf)
            kdf.update(n=2**20, r=32)  # 4 GiB
            return kdf

        with pytest.raises(AuthenticationFailed):
            client.decrypt(b"pw", _tamper(blob, "kdf", huge))


# ── KDF ──────────────────────────────────────────────────────────────


class TestKeyDerivation:
    def test_pbkdf2_deterministic(self):
        salt = b"\x00" * SALT_LENGTH
        params = {"name": "pbkdf2-sha256", "iterations": 1000}
        assert derive_key(b"pw", salt, params) == derive_key(b"pw", salt, params)
        assert len(derive_key(b"pw", salt, params)) == KEY_LENGTH

    def test_different_password_different_key(self):
        salt = b"\x01" * SALT_LENGTH
        params = {"name": "scrypt", "n": 2**10, "r": 8, "p": 1}
        assert derive_key(b"a", salt, params) != derive_key(b"b", salt, params)

    @pytest.mark.parametrize("n,r,p", [(2**19, 8, 1), (2**18, 8, 2), (2**14, 256, 1)])
    def test_scrypt_memory_bound(self, n, r, p):
        with pytest.raises(ValueError, match="memory"):
            derive_key(b"pw", b"\x00" * SALT_LENGTH, {"name": "scrypt", "n": n, "r": r, "p": p})

    def test_unknown_kdf(self):
        with pytest.raises(ValueError):
            derive_key(b"pw", b"salt", {"name": "md5"})


def test_factory_returns_aead_client():
    assert isinstance(new_crypto_client(EncryptionConfig()), AEADCryptoClient)
