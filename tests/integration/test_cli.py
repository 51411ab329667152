"""Integration tests for CLI commands."""

import os
import signal
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from sven.cli.client import DaemonClient
from sven.cli.main import cli
from sven.config import SvenConfig
from sven.daemon.lifecycle import pid_exists, read_pid
from sven.services.vault import SecretVault

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_env(config: SvenConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SvenConfig:
    """Point the CLI at this test's directories.

    Returns:
        The config the CLI will resolve.
    """
    config_file = tmp_path / "config.yaml"
    config_file.write_text("key_size: 2048\n")
    monkeypatch.setenv("SVEN_CONFIG", str(config_file))
    monkeypatch.setenv("SVEN_DATA_DIR", str(config.data_dir))
    monkeypatch.setenv("SVEN_RUNTIME_DIR", str(config.runtime_dir))
    monkeypatch.setenv("SVEN_KEY_PATH", str(config.key_path))
    monkeypatch.delenv("SVEN_PASSPHRASE", raising=False)
    monkeypatch.setenv("SHELL", "/bin/bash")
    return config


def _reap(pid: int) -> None:
    """Wait for a daemon this process spawned to exit."""
    try:
        os.waitpid(pid, 0)
    except ChildProcessError:
        # Already reaped by subprocess
        pass


@pytest.fixture
def detached_cli_env(
    cli_env: SvenConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[SvenConfig]:
    """Let ``sven unlock`` spawn a real daemon, and stop it afterwards."""
    config_file = tmp_path / "detached.yaml"
    config_file.write_text("key_size: 2048\nstartup_attempts: 100\nstartup_delay: 0.1\n")
    monkeypatch.setenv("SVEN_CONFIG", str(config_file))
    monkeypatch.setenv("PYTHONPATH", str(PROJECT_ROOT))
    yield cli_env
    pid = read_pid(cli_env.pid_path)
    if pid is not None and pid_exists(pid):
        os.kill(pid, signal.SIGTERM)
        _reap(pid)


class TestInitCommand:
    """Tests for sven init command."""

    def test_init_creates_key(
        self, runner: CliRunner, cli_env: SvenConfig, tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """init should write a new key."""
        key_path = tmp_path / "fresh" / "key.pem"
        monkeypatch.setenv("SVEN_KEY_PATH", str(key_path))

        result = runner.invoke(cli, ["init", "--no-passphrase"])

        assert result.exit_code == 0
        assert "Generated key" in result.output
        assert "Fingerprint" in result.output
        assert key_path.is_file()

    def test_init_with_passphrase(
        self, runner: CliRunner, cli_env: SvenConfig, tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """init should protect the key with the prompted passphrase."""
        key_path = tmp_path / "fresh" / "key.pem"
        monkeypatch.setenv("SVEN_KEY_PATH", str(key_path))

        result = runner.invoke(cli, ["init"], input="hunter2\nhunter2\n")

        assert result.exit_code == 0
        assert "not protected" not in result.output

        add = runner.invoke(cli, ["add", "FOO", "bar"], input="hunter2\n")
        assert add.exit_code == 0

    def test_init_refuses_existing_key(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """init should not replace an existing key without --force."""
        result = runner.invoke(cli, ["init", "--no-passphrase"])

        assert result.exit_code == 1
        assert "already exists" in result.output


class TestSecretCommands:
    """Tests for add, remove, list and export without a daemon."""

    def test_add_and_list(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """add should store a secret that list then shows."""
        result = runner.invoke(cli, ["add", "FOO", "bar"])

        assert result.exit_code == 0
        assert "Added secret: FOO" in result.output

        result = runner.invoke(cli, ["list"])

        assert result.exit_code == 0
        assert "Secrets:" in result.output
        assert "  FOO" in result.output

    def test_list_empty(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """list should say so when there are no secrets."""
        result = runner.invoke(cli, ["list"])

        assert result.exit_code == 0
        assert "No secrets found" in result.output

    def test_export_shells(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """export should emit the requested shell syntax."""
        runner.invoke(cli, ["add", "FOO", "bar"])

        bash = runner.invoke(cli, ["export"])
        fish = runner.invoke(cli, ["export", "--shell", "fish"])
        csh = runner.invoke(cli, ["export", "-s", "tcsh"])

        assert bash.output == 'export FOO="bar"\n'
        assert fish.output == 'set -gx FOO "bar"\n'
        assert csh.output == 'setenv FOO "bar"\n'

    def test_export_rejects_unknown_shell(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """export should reject shells it cannot format for."""
        result = runner.invoke(cli, ["export", "--shell", "powershell"])

        assert result.exit_code != 0

    def test_remove(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """remove should delete the secret."""
        runner.invoke(cli, ["add", "FOO", "bar"])

        result = runner.invoke(cli, ["remove", "FOO"])

        assert result.exit_code == 0
        assert "Removed secret: FOO" in result.output
        with SecretVault.open(cli_env) as vault:
            assert vault.list_secrets() == []

    def test_missing_key_fails(
        self, runner: CliRunner, cli_env: SvenConfig, tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Commands should fail cleanly before init."""
        monkeypatch.setenv("SVEN_KEY_PATH", str(tmp_path / "missing.pem"))

        result = runner.invoke(cli, ["list"])

        assert result.exit_code == 1
        assert "Failed to list secrets" in result.output


class TestSecretCommandsWithDaemon:
    """Tests for secret commands served by a running daemon."""

    def test_add_goes_through_daemon(
        self, runner: CliRunner, cli_env: SvenConfig, running_daemon: Any
    ) -> None:
        """add should update the daemon's cache."""
        result = runner.invoke(cli, ["add", "FOO", "bar"])

        assert result.exit_code == 0
        assert running_daemon.daemon.cache.read() == [("FOO", "bar")]

    def test_export_from_daemon(
        self, runner: CliRunner, cli_env: SvenConfig, running_daemon: Any
    ) -> None:
        """export should read the daemon's cache."""
        runner.invoke(cli, ["add", "TOKEN", 'a"b'])

        result = runner.invoke(cli, ["export", "--shell", "zsh"])

        assert result.exit_code == 0
        assert result.output == 'export TOKEN="a\\"b"\n'


class TestDaemonCommands:
    """Tests for unlock, status, stop and logs."""

    def test_status_not_running(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """status should report a stopped daemon."""
        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Daemon is not running" in result.output

    def test_status_running(
        self, runner: CliRunner, cli_env: SvenConfig, running_daemon: Any
    ) -> None:
        """status should report a running daemon."""
        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Daemon is running" in result.output

    def test_stop_not_running(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """stop should say there is nothing to stop."""
        result = runner.invoke(cli, ["stop"])

        assert result.exit_code == 0
        assert "not running" in result.output

    def test_unlock_already_running(
        self, runner: CliRunner, cli_env: SvenConfig, running_daemon: Any
    ) -> None:
        """unlock should not start a second daemon."""
        result = runner.invoke(cli, ["unlock"])

        assert result.exit_code == 0
        assert "already running" in result.output

    def test_unlock_wrong_passphrase(
        self, runner: CliRunner, cli_env: SvenConfig, protected_key_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """unlock should fail in the foreground when the key will not open."""
        monkeypatch.setenv("SVEN_KEY_PATH", str(protected_key_path))
        monkeypatch.setenv("SVEN_PASSPHRASE", "wrong")

        result = runner.invoke(cli, ["unlock"])

        assert result.exit_code == 1
        assert "Failed to start daemon" in result.output
        assert not cli_env.pid_path.exists()

    def test_unlock_starts_daemon(
        self, runner: CliRunner, detached_cli_env: SvenConfig, protected_key_path: Path,
        passphrase: str, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """unlock should launch a daemon that serves later commands."""
        monkeypatch.setenv("SVEN_KEY_PATH", str(protected_key_path))
        monkeypatch.setenv("SVEN_PASSPHRASE", passphrase)

        result = runner.invoke(cli, ["unlock"])

        assert result.exit_code == 0, result.output
        assert "Daemon started successfully" in result.output
        pid = read_pid(detached_cli_env.pid_path)
        assert pid is not None
        assert f"PID: {pid}" in result.output

        add = runner.invoke(cli, ["add", "FOO", "bar"])
        assert add.exit_code == 0
        client = DaemonClient(detached_cli_env)
        assert client.get_secrets() == [("FOO", "bar")]

        assert client.shutdown() == "Daemon shutting down"
        _reap(pid)

        assert not detached_cli_env.socket_path.exists()
        assert not detached_cli_env.pid_path.exists()

    def test_logs_missing(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """logs should explain when there is no log file."""
        result = runner.invoke(cli, ["logs"])

        assert result.exit_code == 0
        assert "No log file found" in result.output

    def test_logs_tail(self, runner: CliRunner, cli_env: SvenConfig) -> None:
        """logs should print the last lines of the log."""
        cli_env.log_path.parent.mkdir(parents=True, exist_ok=True)
        cli_env.log_path.write_text("".join(f"line {i}\n" for i in range(10)))

        result = runner.invoke(cli, ["logs", "-n", "2"])

        assert result.exit_code == 0
        assert result.output == "line 8\nline 9\n"


class TestGlobalOptions:
    """Tests for root command options."""

    def test_version(self, runner: CliRunner) -> None:
        """--version should print the version."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "sven" in result.output

    def test_explicit_config(
        self, runner: CliRunner, cli_env: SvenConfig, tmp_path: Path
    ) -> None:
        """--config should load the given file."""
        config_file = tmp_path / "other.yaml"
        config_file.write_text("key_size: 4096\n")

        result = runner.invoke(cli, ["--config", str(config_file), "list"])

        assert result.exit_code == 0
