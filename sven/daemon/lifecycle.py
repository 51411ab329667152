"""Daemon lifecycle: liveness checks, the PID marker, launching and waiting.

Both the PID file and the socket file can be left behind by a crash, so
neither is trusted on presence alone. The PID file counts only while the
process it names exists, and the socket file counts only while something
accepts connections on it.
"""

import enum
import errno
import logging
import os
import socket
import subprocess
import sys
import time
from pathlib import Path

from sven.config import SvenConfig
from sven.exceptions import AlreadyRunningError

logger = logging.getLogger(__name__)


class DaemonState(enum.Enum):
    """Lifecycle states of a daemon instance."""

    NOT_RUNNING = "not_running"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


def pid_exists(pid: int) -> bool:
    """Check if a process with this PID exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else
        return True
    except OSError:
        return False
    return True


def read_pid(pid_path: Path) -> int | None:
    """Read the PID recorded in the marker file.

    Returns:
        The PID, or None if the file is missing or malformed.
    """
    try:
        return int(pid_path.read_text().strip())
    except (OSError, ValueError):
        return None


def live_pid(config: SvenConfig) -> int | None:
    """Get the PID of the running daemon.

    Returns:
        PID if the marker names an existing process, None otherwise.
    """
    pid = read_pid(config.pid_path)
    if pid is None or not pid_exists(pid):
        return None
    return pid


def is_running(config: SvenConfig) -> bool:
    """Check if a daemon is running, from any process."""
    return live_pid(config) is not None


def ensure_not_running(config: SvenConfig) -> None:
    """Raise if a live daemon is recorded.

    Raises:
        AlreadyRunningError: If the marker names an existing process.
    """
    pid = live_pid(config)
    if pid is not None:
        raise AlreadyRunningError(pid)


def write_pid_file(pid_path: Path, pid: int) -> None:
    """Write the marker, replacing any stale one."""
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = pid_path.with_name(f".{pid_path.name}.{pid}")
    tmp_path.write_text(f"{pid}\n")
    os.replace(tmp_path, pid_path)


def remove_pid_file(pid_path: Path, pid: int) -> None:
    """Remove the marker if it still names pid. Best effort."""
    if read_pid(pid_path) != pid:
        return
    try:
        pid_path.unlink()
    except OSError as e:
        logger.warning("Could not remove PID file %s: %s", pid_path, e)


def socket_accepts(socket_path: Path, timeout: float = 0.5) -> bool:
    """Check if something accepts connections on socket_path."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(str(socket_path))
    except OSError:
        return False
    finally:
        sock.close()
    return True


def remove_stale_endpoint(socket_path: Path) -> None:
    """Remove a socket file nobody is listening on.

    Raises:
        AlreadyRunningError: If another process accepts connections on it.
    """
    if not socket_path.exists() and not socket_path.is_symlink():
        return

    if socket_accepts(socket_path):
        raise AlreadyRunningError(
            message=f"Another daemon is listening on {socket_path}"
        )

    logger.info("Removing stale socket %s", socket_path)
    try:
        socket_path.unlink()
    except FileNotFoundError:
        pass


def launch_daemon(
    config: SvenConfig,
    passphrase: str | None = None,
    config_path: Path | None = None,
    verbose: bool = False,
) -> subprocess.Popen[bytes]:
    """Start the daemon as a detached background process.

    The child runs in its own session with stdout and stderr appended to the
    log file. The passphrase is handed over on the child's stdin.

    Args:
        config: Resolved configuration.
        passphrase: Passphrase for the private key, if it has one.
        config_path: Config file for the child to load.
        verbose: Enable debug logging in the daemon.

    Returns:
        The spawned process.

    Raises:
        AlreadyRunningError: If a daemon is already live.
        OSError: If the process cannot be spawned.
    """
    ensure_not_running(config)
    remove_stale_endpoint(config.socket_path)

    args = [sys.executable, "-m", "sven.daemon", "--passphrase-stdin"]
    if config_path is not None:
        args.extend(["--config", str(config_path)])
    if verbose:
        args.append("--verbose")

    env = os.environ.copy()
    env["SVEN_DATA_DIR"] = str(config.data_dir)
    env["SVEN_RUNTIME_DIR"] = str(config.runtime_dir)
    env["SVEN_KEY_PATH"] = str(config.key_path)

    config.log_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config.log_path, "ab") as log_file:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.PIPE,
            stdout=log_file,
            stderr=log_file,
            cwd="/",
            env=env,
            start_new_session=True,
        )

    if proc.stdin is None:
        proc.kill()
        proc.wait()
        raise OSError("Daemon process has no stdin pipe for the passphrase")
    try:
        proc.stdin.write(((passphrase or "") + "\n").encode("utf-8"))
        proc.stdin.close()
    except BrokenPipeError:
        # Child already exited; wait_for_daemon reports it
        pass

    logger.info("Launched daemon process %d", proc.pid)
    return proc


def wait_for_daemon(
    config: SvenConfig,
    attempts: int | None = None,
    delay: float | None = None,
    process: subprocess.Popen[bytes] | None = None,
) -> bool:
    """Wait for the daemon to come up.

    Args:
        config: Resolved configuration.
        attempts: Number of checks (default: config.startup_attempts).
        delay: Seconds between checks (default: config.startup_delay).
        process: The spawned daemon; stop early if it exits.

    Returns:
        True if the daemon is live and accepting connections.
    """
    attempts = attempts if attempts is not None else config.startup_attempts
    delay = delay if delay is not None else config.startup_delay

    for attempt in range(attempts):
        if is_running(config) and socket_accepts(config.socket_path):
            return True
        if process is not None and process.poll() is not None:
            logger.warning("Daemon exited with status %s", process.returncode)
            return False
        if attempt < attempts - 1:
            time.sleep(delay)
    return False


def wait_for_shutdown(pid: int, timeout: float = 5.0) -> bool:
    """Wait for a process to exit.

    Returns:
        True if the process exited, False on timeout.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_exists(pid):
            return True
        time.sleep(0.1)
    return not pid_exists(pid)


def describe_bind_error(error: OSError) -> str:
    """Turn a bind failure into a readable message."""
    if error.errno == errno.EADDRINUSE:
        return "Socket address already in use"
    return str(error)
