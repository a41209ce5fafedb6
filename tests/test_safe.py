"""Tests for Safe: init, load, mutations, dirty tracking, save.

Covers the end-to-end properties of the store:
- round trip through encrypt/save/load
- wrong password never changes the stored blob
- no double init
- save requires the writable lock and rewrites the whole payload
"""

from unittest.mock import patch

import pytest

from safekeep.backends import FileBackend
from safekeep.crypto import new_crypto_client
from safekeep.errors import (
    AlreadyInitialized,
    AuthenticationFailed,
    EntryExists,
    EntryNotFound,
    NotInitialized,
    NotWritable,
    SafeError,
    SafeIOError,
)
from safekeep.safe import Safe, SecretEntry


@pytest.fixture
def crypto(config):
    return new_crypto_client(config.encryption)


@pytest.fixture
def backend(config):
    client = FileBackend(config.storage)
    yield client
    client.close()


@pytest.fixture
def writable_backend(backend):
    backend.set_writable(True)
    return backend


@pytest.fixture
def new_safe(writable_backend, crypto, config):
    return Safe.initialize(b"correct-horse", writable_backend, crypto, config)


def _reopen(config, password: bytes) -> Safe:
    return Safe.load(password, FileBackend(config.storage), new_crypto_client(config.encryption), config)


# ── Initialize ───────────────────────────────────────────────────────


class TestInitialize:
    def test_initialize_writes_empty_safe(self, new_safe, config, safe_path):
        assert safe_path.exists()
        assert len(new_safe) == 0
        assert new_safe.dirty is False
        assert len(_reopen(config, b"correct-horse")) == 0

    def test_initialize_requires_lock(self, backend, crypto, config, safe_path):
        with pytest.raises(NotWritable):
            Safe.initialize(b"pw", backend, crypto, config)
        assert not safe_path.exists()

    def test_no_double_init(self, new_safe, writable_backend, crypto, config, safe_path):
        before = safe_path.read_bytes()
        with patch.object(writable_backend, "_write") as write:
            with pytest.raises(AlreadyInitialized):
                Safe.initialize(b"other", writable_backend, crypto, config)
        write.assert_not_called()
        assert safe_path.read_bytes() == before


# ── Load ─────────────────────────────────────────────────────────────


class TestLoad:
    def test_load_without_safe(self, backend, crypto, config):
        with pytest.raises(NotInitialized):
            Safe.load(b"pw", backend, crypto, config)

    def test_concrete_round_trip(self, new_safe, config):
        new_safe.add("email", "secret123")
        new_safe.save()

        reopened = _reopen(config, b"correct-horse")
        assert reopened.get("email").value == "secret123"

    def test_wrong_password_leaves_ciphertext_untouched(self, new_safe, config, safe_path):
        new_safe.add("email", "secret123")
        new_safe.save()
        before = safe_path.read_bytes()

        with pytest.raises(AuthenticationFailed):
            _reopen(config, b"wrong-password")

        assert safe_path.read_bytes() == before

    def test_round_trip_preserves_every_field(self, new_safe, config):
        new_safe.add(
            "db",
            "p@ss",
            username="admin",
            notes="prod replica",
            metadata={"tags": ["prod", "db"], "port": 5432},
        )
        new_safe.edit("db", value="p@ss2")
        new_safe.save()

        original = new_safe.export()
        reopened = _reopen(config, b"correct-horse")
        assert reopened.export() == original
        assert reopened.get("db").history[0]["value"] == "p@ss"

    def test_unicode_names_and_values(self, new_safe, config):
        new_safe.add("naïve/ключ", "пароль-🔑")
        new_safe.save()
        assert _reopen(config, b"correct-horse").get("naïve/ключ").value == "пароль-🔑"

    def test_load_does_not_take_lock(self, new_safe, config):
        # new_safe's backend still holds the lock; a reader can load anyway
        reader = FileBackend(config.storage)
        safe = Safe.load(b"correct-horse", reader, new_crypto_client(config.encryption), config)
        assert reader.writable is False
        assert len(safe) == 0

    def test_malformed_payload_is_safe_error(self, writable_backend, crypto, config):
        writable_backend.save(crypto.encrypt(b"pw", b"not json"))
        with pytest.raises(SafeError):
            Safe.load(b"pw", writable_backend, crypto, config)


# ── Mutations & dirty flag ───────────────────────────────────────────


class TestMutations:
    def test_mutations_set_dirty_without_writing(self, new_safe, safe_path):
        before = safe_path.read_bytes()
        new_safe.add("a", "1")
        assert new_safe.dirty is True
        assert safe_path.read_bytes() == before

    def test_save_clears_dirty(self, new_safe):
        new_safe.add("a", "1")
        new_safe.save()
        assert new_safe.dirty is False

    def test_add_duplicate(self, new_safe):
        new_safe.add("a", "1")
        with pytest.raises(EntryExists):
            new_safe.add("a", "2")

    def test_add_empty_name(self, new_safe):
        with pytest.raises(SafeError):
            new_safe.add("", "1")

    def test_edit_archives_previous_value(self, new_safe):
        new_safe.add("a", "1")
        new_safe.edit("a", value="2")
        entry = new_safe.get("a")
        assert entry.value == "2"
        assert [h["value"] for h in entry.history] == ["1"]

    def test_edit_same_value_adds_no_history(self, new_safe):
        new_safe.add("a", "1")
        new_safe.edit("a", value="1", notes="n")
        assert new_safe.get("a").history == []
        assert new_safe.get("a").notes == "n"

    def test_edit_missing(self, new_safe):
        with pytest.raises(EntryNotFound):
            new_safe.edit("nope", value="x")

    def test_remove(self, new_safe):
        new_safe.add("a", "1")
        new_safe.remove("a")
        assert "a" not in new_safe
        with pytest.raises(EntryNotFound):
            new_safe.remove("a")

    def test_move(self, new_safe):
        new_safe.add("a", "1")
        new_safe.add("b", "2")
        with pytest.raises(EntryExists):
            new_safe.move("a", "b")
        new_safe.move("a", "c")
        assert new_safe.names() == ["b", "c"]
        assert new_safe.get("c").value == "1"

    def test_copy_is_independent(self, new_safe):
        new_safe.add("a", "1", metadata={"tags": ["x"]})
        new_safe.copy("a", "b")
        new_safe.get("b").metadata["tags"].append("y")
        assert new_safe.get("a").metadata == {"tags": ["x"]}

    def test_get_missing(self, new_safe):
        with pytest.raises(EntryNotFound):
            new_safe.get("missing")


# ── Save ─────────────────────────────────────────────────────────────


class TestSave:
    def test_save_requires_lock(self, config, crypto, new_safe):
        reader = FileBackend(config.storage)
        safe = Safe.load(b"correct-horse", reader, crypto, config)
        safe.add("a", "1")
        with pytest.raises(NotWritable):
            safe.save()
        assert safe.dirty is True

    def test_failed_save_keeps_prior_payload(self, new_safe, safe_path):
        new_safe.add("a", "1")
        new_safe.save()
        before = safe_path.read_bytes()

        new_safe.add("b", "2")
        with patch("safekeep.backends.file.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(SafeIOError):
                new_safe.save()

        assert new_safe.dirty is True
        assert safe_path.read_bytes() == before

    def test_save_rewrites_entire_payload(self, new_safe, config):
        new_safe.add("a", "1")
        new_safe.save()
        new_safe.add("b", "2")
        new_safe.remove("a")
        new_safe.save()
        assert _reopen(config, b"correct-horse").names() == ["b"]

    def test_change_password(self, new_safe, config):
        new_safe.add("a", "1")
        new_safe.change_password(b"new-master")
        new_safe.save()

        with pytest.raises(AuthenticationFailed):
            _reopen(config, b"correct-horse")
        assert _reopen(config, b"new-master").get("a").value == "1"

    def test_change_password_rejects_empty(self, new_safe):
        with pytest.raises(SafeError):
            new_safe.change_password(b"")

    def test_close_releases_lock(self, config, crypto):
        backend = FileBackend(config.storage)
        backend.set_writable(True)
        with Safe.initialize(b"pw", backend, crypto, config):
            assert backend.writable is True
        assert backend.writable is False


class TestAuditTrail:
    def test_secrets_never_logged(self, new_safe, config, tmp_path):
        new_safe.add("email", "secret123")
        new_safe.save()
        _reopen(config, b"correct-horse").get("email")
        with pytest.raises(AuthenticationFailed):
            _reopen(config, b"wrong-password")

        log_text = "".join(p.read_text() for p in (tmp_path / "audit_logs").glob("audit_*.log"))
        assert "safe.created" in log_text
        assert "safe.unlock.failed" in log_text
        assert "secret123" not in log_text
        assert "correct-horse" not in log_text
        assert "wrong-password" not in log_text


def test_secret_entry_dict_round_trip():
    entry = SecretEntry(value="v", username="u", notes="n", metadata={"k": [1, 2]})
    assert SecretEntry.from_dict(entry.to_dict()) == entry
