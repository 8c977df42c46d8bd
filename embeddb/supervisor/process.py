import os
import sys
import time
import psutil
import logging
import threading
import subprocess
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import embeddb.settings as default_settings
from embeddb.exceptions import (
    LaunchError,
    ProcessControlError,
    ProcessDiedError,
    ReadinessTimeoutError,
)
from embeddb.supervisor.output import ConsoleOutput, OutputMatcher, as_matcher, capture_process_output

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Granularity of liveness checks while waiting for console output.
POLL_INTERVAL = 0.05
# How long to wait for the pipes to drain after the process has exited.
DRAIN_TIMEOUT = 2.0


#* --- Platform Helpers ---
def get_executable_path(base_path: Path, platform: Optional[str] = None) -> Path:
    """Returns the platform-specific full path for an executable."""
    platform = platform or sys.platform
    return base_path.with_suffix(".exe") if platform == "win32" else base_path


def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments for Popen.

    On Windows the child runs without a console window. Elsewhere it gets its
    own session so a Ctrl+C in the host terminal is not delivered to it directly.

    :return dict: A dictionary of keyword arguments for Popen.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


def normalize_path(path: PathLike) -> str:
    """Absolute path with forward slashes, which the server binaries accept on every platform."""
    return str(Path(path).resolve()).replace("\\", "/")


class ProcessState(Enum):
    NOT_STARTED = "not started"
    RUNNING = "running"
    STOPPED = "stopped"


#* --- Builder ---
class ManagedProcessBuilder:
    """Assembles the command, argument vector and working directory of a ManagedProcess."""

    def __init__(self, command: PathLike, working_directory: Optional[PathLike] = None, name: Optional[str] = None):
        self.command = Path(command)
        self.working_directory = Path(working_directory) if working_directory else None
        self.name = name or self.command.stem
        self._arguments: List[str] = []

    @property
    def arguments(self) -> List[str]:
        return list(self._arguments)

    def add_argument(self, argument: str) -> "ManagedProcessBuilder":
        self._arguments.append(str(argument))
        return self

    def add_file_argument(self, flag: str, path: PathLike) -> "ManagedProcessBuilder":
        """Appends '<flag>=<path>' with the path made absolute and slash-normalized."""
        return self.add_argument(f"{flag}={normalize_path(path)}")

    def set_working_directory(self, working_directory: PathLike) -> "ManagedProcessBuilder":
        self.working_directory = Path(working_directory)
        return self

    def build(self) -> "ManagedProcess":
        return ManagedProcess(self.command, self._arguments, self.working_directory, self.name)


#* --- Managed Process ---
class ManagedProcess:
    """
    A child process owned by exactly one controller.

    The process is spawned once. Its console output is consumed by reader
    threads so callers can block until a given line appears. Termination is
    guarded by a lock, so concurrent callers signal the OS process at most once.
    """

    def __init__(
        self,
        command: Path,
        arguments: Sequence[str],
        working_directory: Optional[Path] = None,
        name: Optional[str] = None
    ):
        self.command = command
        self.arguments = tuple(arguments)
        self.working_directory = working_directory
        self.name = name or command.stem

        self._process: Optional[psutil.Popen] = None
        self._state = ProcessState.NOT_STARTED
        self._lock = threading.Lock()
        self._output = ConsoleOutput(default_settings.OUTPUT_HISTORY_LINES)
        self._readers: List[threading.Thread] = []

    def __repr__(self) -> str:
        return f"<ManagedProcess {self.name} pid={self.pid} state={self._state.name}>"

    @property
    def command_line(self) -> List[str]:
        return [str(self.command), *self.arguments]

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def exit_code(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    def output_lines(self) -> List[str]:
        """Returns the most recent console lines the process printed."""
        return self._output.lines()

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _check_executable(self) -> None:
        if not self.command.is_file():
            raise LaunchError(f"Executable '{self.command}' does not exist.")
        if sys.platform != "win32" and not os.access(self.command, os.X_OK):
            raise LaunchError(f"'{self.command}' is not executable.")

    def start(self) -> None:
        """
        Spawns the process and starts consuming its output.

        :raises LaunchError: If the executable is missing, not executable, or cannot be spawned.
        :raises ProcessControlError: If this process was already started.
        """
        with self._lock:
            if self._state is not ProcessState.NOT_STARTED:
                raise ProcessControlError(f"Process '{self.name}' was already started ({self._state.value}).")

            self._check_executable()
            cwd = str(self.working_directory.resolve()) if self.working_directory else None
            log.info(f"Starting process: {' '.join(self.command_line)}")
            log.debug(f"Working directory for '{self.name}': {cwd}")
            try:
                self._process = psutil.Popen(
                    self.command_line,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    stdin=subprocess.DEVNULL,
                    cwd=cwd,
                    **get_popen_creation_flags()
                )
            except (OSError, psutil.Error) as e:
                raise LaunchError(f"Failed to start process '{self.name}': {e}") from e

            self._readers = capture_process_output(
                self._process.stdout, self._process.stderr, self.name, self._output
            )
            self._state = ProcessState.RUNNING
        log.info(f"{self.name} started successfully with PID: {self._process.pid}")

    def _require_started(self) -> psutil.Popen:
        if self._process is None:
            raise ProcessControlError(f"Process '{self.name}' has not been started.")
        return self._process

    def _join_readers(self, timeout: float = DRAIN_TIMEOUT) -> None:
        self._output.wait_drained(timeout)
        for reader in self._readers:
            reader.join(timeout=0.1)

    def _mark_stopped(self) -> None:
        if self._state is not ProcessState.STOPPED:
            log.debug(f"Process '{self.name}' (PID {self.pid}) stopped with exit code {self.exit_code}.")
        self._state = ProcessState.STOPPED

    def wait_for_exit(self, timeout: Optional[float] = None) -> int:
        """
        Blocks until the process terminates.

        :param timeout: Optional upper bound in seconds; waits forever if None.
        :return int: The exit code of the process.
        :raises ProcessControlError: If the process was never started or outlives the timeout.
        """
        process = self._require_started()
        try:
            exit_code = process.wait(timeout=timeout)
        except (subprocess.TimeoutExpired, psutil.TimeoutExpired) as e:
            raise ProcessControlError(f"Process '{self.name}' did not exit within {timeout} seconds.") from e
        self._join_readers()
        with self._lock:
            self._mark_stopped()
        log.info(f"Process '{self.name}' exited with code {exit_code}.")
        return exit_code

    def wait_for_text(self, pattern: Union[str, OutputMatcher], timeout: float) -> str:
        """
        Blocks until a console line matches `pattern`.

        Lines printed before the call are considered as well, so a process that
        announces itself quickly cannot slip past the wait.

        :param pattern: A verbatim substring or an OutputMatcher.
        :param timeout: Seconds to wait before giving up.
        :return str: The first matching line.
        :raises ReadinessTimeoutError: If no line matched before the deadline.
        :raises ProcessDiedError: If the process exited without printing a matching line.
        """
        self._require_started()
        matcher = as_matcher(pattern)
        deadline = time.monotonic() + timeout
        log.info(f"Waiting up to {timeout}s for {matcher.description} from '{self.name}'...")

        with self._output.watch(matcher) as watch:
            while True:
                remaining = deadline - time.monotonic()
                if watch.wait(min(remaining, POLL_INTERVAL)):
                    log.info(f"'{self.name}' printed the expected line: {watch.line}")
                    return watch.line

                if not self.is_alive():
                    # The pattern may still be sitting in a pipe.
                    self._join_readers()
                    if watch.matched:
                        return watch.line
                    with self._lock:
                        self._mark_stopped()
                    raise ProcessDiedError(
                        f"Process '{self.name}' exited with code {self.exit_code} "
                        f"before printing {matcher.description}.",
                        exit_code=self.exit_code
                    )

                if remaining <= 0:
                    raise ReadinessTimeoutError(
                        f"Process '{self.name}' did not print {matcher.description} within {timeout} seconds."
                    )

    #* --- Termination ---
    def _collect_process_tree(self, process: psutil.Popen) -> List[psutil.Process]:
        procs: List[psutil.Process] = [process]
        try:
            procs.extend(process.children(recursive=True))
        except psutil.NoSuchProcess:
            log.warning(f"Process {process.pid} no longer exists, skipping children retrieval.")
        return procs

    def _send_terminate(self, procs: List[psutil.Process]) -> None:
        """Sends the termination signal to every process in the tree."""
        for proc in procs:
            try:
                log.debug(f"Sending SIGTERM to {self.name} tree member (PID {proc.pid})")
                proc.terminate()
            except psutil.NoSuchProcess:
                log.warning(f"Process {proc.pid} no longer exists, skipping termination.")

    def _force_kill(self, procs: List[psutil.Process]) -> None:
        if not procs:
            return
        log.warning(f"{len(procs)} process(es) of '{self.name}' did not terminate gracefully. Forcing shutdown...")
        for proc in procs:
            try:
                log.warning(f"Killing stubborn process (PID {proc.pid}).")
                proc.kill()
            except psutil.NoSuchProcess:
                log.warning(f"Process {proc.pid} no longer exists, skipping forceful kill.")

    def terminate(self, grace_period: Optional[float] = None) -> bool:
        """
        Stops the process: terminate, wait for the grace period, then kill.

        Calling this on a process that is not running is a reported no-op.

        :param grace_period: Seconds to wait before force-killing. Defaults to the configured grace period.
        :return bool: True if a termination signal was sent, False if there was nothing to stop.
        """
        if grace_period is None:
            grace_period = default_settings.SHUTDOWN_GRACE_PERIOD

        with self._lock:
            if self._state is not ProcessState.RUNNING:
                log.info(f"Process '{self.name}' is {self._state.value}; nothing to terminate.")
                return False

            process = self._process
            if not self.is_alive():
                log.info(f"Process '{self.name}' (PID {process.pid}) had already exited with code {process.returncode}.")
                self._mark_stopped()
                return False

            procs = self._collect_process_tree(process)
            log.info(f"Terminating '{self.name}' (PID {process.pid}) and {len(procs) - 1} child process(es)...")
            self._send_terminate(procs)
            try:
                _, alive = psutil.wait_procs(procs, timeout=grace_period)
            except psutil.NoSuchProcess:
                alive = []
            self._force_kill(alive)

            try:
                process.wait(timeout=DRAIN_TIMEOUT)
            except (subprocess.TimeoutExpired, psutil.TimeoutExpired):
                log.error(f"Process '{self.name}' (PID {process.pid}) could not be reaped after being killed.")
            self._mark_stopped()

        self._join_readers()
        log.info(f"Process '{self.name}' stopped.")
        return True
