"""Pytest fixtures for sven tests."""

import asyncio
import shutil
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from sven.cli.client import DaemonClient
from sven.config import SvenConfig
from sven.daemon.server import SvenDaemon
from sven.services.cipher import generate_key
from sven.services.vault import SecretVault

TEST_PASSPHRASE = "correct horse battery staple"
TEST_KEY_SIZE = 2048


class DaemonThread:
    """Runs a SvenDaemon on its own event loop in a background thread."""

    def __init__(self, daemon: SvenDaemon) -> None:
        self.daemon = daemon
        self.error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, name="sven-test-daemon", daemon=True)

    def _run(self) -> None:
        try:
            asyncio.run(self.daemon.run_forever())
        except BaseException as e:
            self.error = e

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self, timeout: float = 10.0) -> None:
        """Start the thread and wait until the daemon is serving."""
        self._thread.start()
        deadline = time.monotonic() + timeout
        while not self.daemon.is_running:
            if not self._thread.is_alive():
                raise self.error or RuntimeError("Daemon thread exited during startup")
            if time.monotonic() > deadline:
                raise TimeoutError("Daemon did not start in time")
            time.sleep(0.01)

    def join(self, timeout: float = 10.0) -> None:
        self._thread.join(timeout)

    def stop(self, timeout: float = 10.0) -> None:
        """Request shutdown and wait for the thread to finish."""
        if self._thread.is_alive():
            self.daemon.request_shutdown()
            self._thread.join(timeout)


@pytest.fixture(scope="session")
def key_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Generate an unprotected private key once per session.

    Returns:
        Path to the PEM key.
    """
    path = tmp_path_factory.mktemp("keys") / "key.pem"
    generate_key(path, key_size=TEST_KEY_SIZE)
    return path


@pytest.fixture(scope="session")
def protected_key_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Generate a passphrase-protected private key once per session.

    Returns:
        Path to the PEM key.
    """
    path = tmp_path_factory.mktemp("keys") / "protected.pem"
    generate_key(path, passphrase=TEST_PASSPHRASE, key_size=TEST_KEY_SIZE)
    return path


@pytest.fixture
def runtime_dir() -> Iterator[Path]:
    """Create a short runtime directory for the socket and PID file.

    Unix socket paths are limited to ~100 bytes, so this avoids the long
    pytest tmp_path.
    """
    path = Path(tempfile.mkdtemp(prefix="sven-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def config(tmp_path: Path, runtime_dir: Path, key_path: Path) -> SvenConfig:
    """Create a configuration isolated to this test.

    Returns:
        Config with its own data and runtime directories.
    """
    return SvenConfig(
        data_dir=tmp_path / "data",
        runtime_dir=runtime_dir,
        key_file=key_path,
        key_size=TEST_KEY_SIZE,
        request_timeout=5.0,
        startup_attempts=3,
        startup_delay=0.01,
    )


@pytest.fixture
def vault(config: SvenConfig) -> Iterator[SecretVault]:
    """Open a vault on this test's store.

    Returns:
        Open SecretVault, closed after the test.
    """
    with SecretVault.open(config) as opened:
        yield opened


@pytest.fixture
def running_daemon(config: SvenConfig) -> Iterator[DaemonThread]:
    """Start an in-process daemon for this test's config.

    Returns:
        The running daemon thread, stopped after the test.
    """
    runner = DaemonThread(SvenDaemon(config))
    runner.start()
    yield runner
    runner.stop()


@pytest.fixture
def start_daemon() -> Iterator[Callable[..., DaemonThread]]:
    """Start extra daemons on demand; any still running are stopped after the test.

    Returns:
        Function taking a SvenConfig (and SvenDaemon keyword arguments) and
        returning the started DaemonThread.
    """
    started: list[DaemonThread] = []

    def _start(config: SvenConfig, **kwargs: Any) -> DaemonThread:
        runner = DaemonThread(SvenDaemon(config, **kwargs))
        started.append(runner)
        runner.start()
        return runner

    yield _start
    for runner in started:
        runner.stop()


@pytest.fixture
def client(config: SvenConfig, running_daemon: DaemonThread) -> DaemonClient:
    """Create a client connected to the running daemon.

    Returns:
        DaemonClient for this test's daemon.
    """
    return DaemonClient(config)


@pytest.fixture
def passphrase() -> str:
    """Get the passphrase protecting protected_key_path."""
    return TEST_PASSPHRASE
