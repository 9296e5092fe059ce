import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..logger import logger


class CommandError(Exception):
    """Exception raised when a command fails."""
    def __init__(self, cmd: List[str], returncode: int, stdout: str, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command failed with return code {returncode}: {' '.join(str(x) for x in cmd)}\nStderr: {stderr}")


class CommandCancelled(Exception):
    """Raised when a running command is terminated because its job was cancelled."""
    def __init__(self, cmd: List[str]):
        self.cmd = cmd
        super().__init__(f"Command cancelled: {' '.join(str(x) for x in cmd)}")


POLL_INTERVAL = 0.5


def terminate_process(proc: subprocess.Popen, timeout: int = 10) -> bool:
    """
    Gracefully stop a subprocess.

    1. Send SIGTERM
    2. Wait up to `timeout` seconds
    3. Send SIGKILL if still running

    Returns:
        True if it exited on SIGTERM, False if it had to be killed
    """
    if proc.poll() is not None:
        return True

    logger.debug(f"Terminating subprocess PID {proc.pid}")
    proc.terminate()
    try:
        proc.wait(timeout=timeout)
        return True
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {proc.pid} did not terminate, force killing")
        proc.kill()
        proc.wait(timeout=5)
        return False


def _run_cancellable(
    cmd: List[str],
    cwd: Optional[Union[str, Path]],
    env: Dict[str, str],
    timeout: Optional[float],
    capture_output: bool,
    cancel_event: threading.Event,
) -> subprocess.CompletedProcess:
    """Popen + polling loop so a cancel request can stop the child mid-run."""
    pipe = subprocess.PIPE if capture_output else None
    proc = subprocess.Popen(cmd, cwd=cwd, env=env, stdout=pipe, stderr=pipe, text=True)
    deadline = time.monotonic() + timeout if timeout else None

    while True:
        if cancel_event.is_set():
            terminate_process(proc)
            proc.communicate()
            raise CommandCancelled(cmd)
        if deadline is not None and time.monotonic() >= deadline:
            terminate_process(proc)
            stdout, stderr = proc.communicate()
            raise subprocess.TimeoutExpired(cmd, timeout, output=stdout, stderr=stderr)
        try:
            stdout, stderr = proc.communicate(timeout=POLL_INTERVAL)
            return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
        except subprocess.TimeoutExpired:
            continue


def run_command(
    cmd: List[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    check: bool = True,
    capture_output: bool = True,
    log_output: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> subprocess.CompletedProcess:
    """
    Run a command with consistent logging and error handling.

    Args:
        cmd: List of command arguments.
        cwd: Working directory.
        env: Environment variables (merged with os.environ).
        timeout: Timeout in seconds.
        check: If True, raise CommandError on non-zero exit code.
        capture_output: If True, capture stdout and stderr.
        log_output: If True, log stdout and stderr to debug log.
        cancel_event: If given and set while the command runs, the child is
            terminated and CommandCancelled is raised.

    Returns:
        subprocess.CompletedProcess object.
    """
    cmd_str = " ".join(str(x) for x in cmd)
    logger.debug(f"Running command: {cmd_str}")

    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    try:
        if cancel_event is not None:
            result = _run_cancellable(cmd, cwd, full_env, timeout, capture_output, cancel_event)
        else:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=full_env,
                timeout=timeout,
                check=False,  # handled below to raise CommandError
                capture_output=capture_output,
                text=True
            )

        if log_output:
            if result.stdout:
                logger.debug(f"Command stdout: {result.stdout}")
            if result.stderr:
                logger.debug(f"Command stderr: {result.stderr}")

        if check and result.returncode != 0:
            raise CommandError(cmd, result.returncode, result.stdout, result.stderr)

        return result

    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {cmd_str}")
        raise
    except CommandCancelled:
        logger.warning(f"Command cancelled: {cmd_str}")
        raise
    except Exception as e:
        if not isinstance(e, CommandError):
            logger.error(f"Error running command {cmd_str}: {e}")
        raise
