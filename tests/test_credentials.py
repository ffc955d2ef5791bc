"""
Tests for RPC credential hashing and settings.json access.
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path

import pytest

from transmission_manager.core.errors import ActionFailed
from transmission_manager.core.services.credentials import (
    SALT_LENGTH,
    generate_password,
    generate_salt,
    hash_password,
    is_password_hash,
    new_credential,
    verify_password,
)
from transmission_manager.core.services.settings_file import (
    backup_settings,
    read_settings,
    try_read_settings,
    update_settings,
    write_secret_file,
)


class TestHashing:
    def test_known_hash(self):
        expected = "{" + hashlib.sha1(b"hunter2!abcdefgh").hexdigest() + "abcdefgh"
        assert hash_password("hunter2!", "abcdefgh") == expected

    def test_format(self):
        hashed = hash_password("s3cret-pass")
        assert hashed.startswith("{")
        assert len(hashed) == 1 + 40 + SALT_LENGTH
        assert not hashed.endswith("}")
        assert is_password_hash(hashed)

    def test_salt_is_random(self):
        assert hash_password("same") != hash_password("same")
        assert len(generate_salt()) == SALT_LENGTH

    def test_bad_salt(self):
        with pytest.raises(ValueError):
            hash_password("x", "short")

    def test_verify(self):
        hashed = hash_password("s3cret-pass")
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)
        assert not verify_password("s3cret-pass", "s3cret-pass")

    @pytest.mark.parametrize("value", [None, "", "plain-password", "{tooshort", "{" + "z" * 40 + "saltsalt"])
    def test_not_a_hash(self, value):
        assert not is_password_hash(value)


class TestGeneration:
    def test_length(self):
        assert len(generate_password()) == 16
        assert len(generate_password(32)) == 32

    def test_minimum_length(self):
        with pytest.raises(ValueError, match="at least 8"):
            generate_password(7)

    def test_shell_safe(self):
        assert all(c.isalnum() or c in "._-" for c in generate_password(200))

    def test_new_credential(self):
        plain, hashed = new_credential()
        assert verify_password(plain, hashed)


class TestSettingsFile:
    def test_read_missing(self, tmp_path: Path):
        with pytest.raises(ActionFailed, match="not found"):
            read_settings(tmp_path / "settings.json")
        assert try_read_settings(tmp_path / "settings.json") is None

    def test_read_invalid(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with pytest.raises(ActionFailed):
            read_settings(path)
        path.write_text("[1, 2]")
        with pytest.raises(ActionFailed, match="JSON object"):
            read_settings(path)

    def test_update_preserves_other_keys(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"rpc-port": 9091, "ratio-limit": 2}))
        backup = update_settings(path, {"rpc-port": 9092})
        assert json.loads(path.read_text()) == {"rpc-port": 9092, "ratio-limit": 2}
        assert json.loads(backup.read_text()) == {"rpc-port": 9091, "ratio-limit": 2}
        assert path.stat().st_mode & 0o777 == 0o600
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted([path.name, backup.name])

    def test_update_without_backup(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{}")
        assert update_settings(path, {"a": 1}, backup=False) is None
        assert len(list(tmp_path.iterdir())) == 1

    def test_backup_name(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{}")
        backup = backup_settings(path, now=datetime(2024, 5, 1, 9, 5, 7))
        assert backup.name == "settings.json.backup.20240501-090507"

    def test_secret_file(self, tmp_path: Path):
        path = tmp_path / "cfg" / ".rpc_password.txt"
        write_secret_file(path, "s3cret-pass")
        assert path.read_text() == "s3cret-pass\n"
        assert path.stat().st_mode & 0o777 == 0o600
