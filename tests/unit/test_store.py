"""Unit tests for SecretStore."""

from pathlib import Path

import pytest

from sven.exceptions import PersistenceError
from sven.services.store import SecretStore


@pytest.fixture
def store(tmp_path: Path) -> SecretStore:
    """Create a store in a temporary directory."""
    return SecretStore(tmp_path / "db" / "envs.sqlite")


class TestSecretStore:
    """Tests for SecretStore."""

    def test_creates_database(self, tmp_path: Path) -> None:
        """Opening should create the parent directory and file."""
        path = tmp_path / "nested" / "envs.sqlite"
        with SecretStore(path):
            pass

        assert path.is_file()

    def test_put_and_list(self, store: SecretStore) -> None:
        """Records should be listed in key order."""
        store.put_encrypted("ZED", "c3")
        store.put_encrypted("ALPHA", "c1")
        store.put_encrypted("MIDDLE", "c2")

        assert store.list_keys() == ["ALPHA", "MIDDLE", "ZED"]
        assert store.list_all() == [("ALPHA", "c1"), ("MIDDLE", "c2"), ("ZED", "c3")]

    def test_put_overwrites(self, store: SecretStore) -> None:
        """A second put for the same key should replace the first."""
        store.put_encrypted("FOO", "old")
        store.put_encrypted("FOO", "new")

        assert store.list_all() == [("FOO", "new")]

    def test_delete(self, store: SecretStore) -> None:
        """delete should remove the record."""
        store.put_encrypted("FOO", "c")
        store.delete("FOO")

        assert store.list_keys() == []

    def test_delete_missing_is_noop(self, store: SecretStore) -> None:
        """Deleting an unknown key should not raise."""
        store.put_encrypted("KEEP", "c")
        store.delete("MISSING")

        assert store.list_keys() == ["KEEP"]

    def test_persists_across_connections(self, tmp_path: Path) -> None:
        """Records should survive closing and reopening."""
        path = tmp_path / "envs.sqlite"
        with SecretStore(path) as first:
            first.put_encrypted("FOO", "c")

        with SecretStore(path) as second:
            assert second.list_all() == [("FOO", "c")]

    def test_meta(self, store: SecretStore) -> None:
        """Metadata should be settable and readable."""
        assert store.get_meta("key_fingerprint") is None

        store.set_meta("key_fingerprint", "abc")

        assert store.get_meta("key_fingerprint") == "abc"

    def test_closed_store_raises_persistence_error(self, store: SecretStore) -> None:
        """Operations on a closed store should raise PersistenceError."""
        store.close()

        with pytest.raises(PersistenceError):
            store.put_encrypted("FOO", "c")

    def test_unopenable_path_raises(self, tmp_path: Path) -> None:
        """A directory in place of the database should raise PersistenceError."""
        path = tmp_path / "envs.sqlite"
        path.mkdir()

        with pytest.raises(PersistenceError):
            SecretStore(path)
