import re
import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import IO, Deque, Iterator, List, Optional, Union

log = logging.getLogger(__name__)


#* --- Line Matching ---
class OutputMatcher:
    """Decides whether a console line is the one a caller is waiting for."""

    description = "a matching line"

    def matches(self, line: str) -> bool:
        raise NotImplementedError


class SubstringMatcher(OutputMatcher):
    """Verbatim, case-sensitive substring match."""

    def __init__(self, text: str):
        if not text:
            raise ValueError("Cannot wait for an empty string.")
        self.text = text
        self.description = f"'{text}'"

    def matches(self, line: str) -> bool:
        return self.text in line


class RegexMatcher(OutputMatcher):
    def __init__(self, pattern: Union[str, "re.Pattern[str]"]):
        self.pattern = re.compile(pattern)
        self.description = f"/{self.pattern.pattern}/"

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


def as_matcher(pattern: Union[str, OutputMatcher]) -> OutputMatcher:
    """Plain strings are matched verbatim; matchers are passed through."""
    if isinstance(pattern, OutputMatcher):
        return pattern
    return SubstringMatcher(pattern)


#* --- Output Buffer ---
class LineWatch:
    """A pending wait for one line, fulfilled by ConsoleOutput.append."""

    def __init__(self, matcher: OutputMatcher):
        self.matcher = matcher
        self.line: Optional[str] = None
        self._event = threading.Event()

    @property
    def matched(self) -> bool:
        return self._event.is_set()

    def offer(self, line: str) -> bool:
        if not self._event.is_set() and self.matcher.matches(line):
            self.line = line
            self._event.set()
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(max(timeout, 0))


class ConsoleOutput:
    """
    Thread-safe record of the lines a child process printed.

    Reader threads append lines; waiters register a LineWatch which is checked
    against the retained history first and then against every new line, so a
    line printed before the wait began is never missed.
    """

    def __init__(self, history: int = 500):
        self._lines: Deque[str] = deque(maxlen=history)
        self._watches: List[LineWatch] = []
        self._open_streams = 0
        self._lock = threading.Lock()
        self._drained = threading.Event()

    def open_stream(self) -> None:
        with self._lock:
            self._open_streams += 1
            self._drained.clear()

    def close_stream(self) -> None:
        with self._lock:
            self._open_streams -= 1
            if self._open_streams <= 0:
                self._drained.set()

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)
            for watch in self._watches:
                watch.offer(line)

    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    @property
    def drained(self) -> bool:
        """True once every opened stream has reached end-of-file."""
        return self._drained.is_set()

    def wait_drained(self, timeout: float) -> bool:
        return self._drained.wait(timeout)

    @contextmanager
    def watch(self, matcher: OutputMatcher) -> Iterator[LineWatch]:
        """
        Registers a LineWatch for the duration of the block.

        :param matcher: The matcher deciding which line fulfils the watch.
        :return LineWatch: Already fulfilled if a retained line matches.
        """
        line_watch = LineWatch(matcher)
        with self._lock:
            for line in self._lines:
                if line_watch.offer(line):
                    break
            self._watches.append(line_watch)
        try:
            yield line_watch
        finally:
            with self._lock:
                self._watches.remove(line_watch)


#* --- Pipe Readers ---
def _read_pipe(pipe: IO[bytes], process_name: str, level: int, output: ConsoleOutput) -> None:
    """Target function for reader threads. Reads, logs and records lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            proc_logger.log(level, line)
            output.append(line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()
        output.close_stream()


def capture_process_output(
    stdout: Optional[IO[bytes]],
    stderr: Optional[IO[bytes]],
    process_name: str,
    output: ConsoleOutput,
    stdout_level: int = logging.INFO,
    stderr_level: int = logging.INFO
) -> List[threading.Thread]:
    """
    Starts background threads that consume a process's stdout/stderr.

    Consuming both pipes keeps them from filling up and blocking the child.
    Every non-empty line is logged on the 'proc.<name>' logger and recorded in `output`.

    :param stdout: The child's stdout pipe, or None.
    :param stderr: The child's stderr pipe, or None.
    :param process_name: The logical name of the process for logging context.
    :param output: The buffer receiving every line.
    :return list: The started reader threads.
    """
    threads = []
    for pipe, level, stream in ((stdout, stdout_level, "stdout"), (stderr, stderr_level, "stderr")):
        if pipe is None:
            continue
        output.open_stream()
        thread = threading.Thread(
            target=_read_pipe,
            args=(pipe, process_name, level, output),
            daemon=True,
            name=f"{process_name}-{stream}-reader"
        )
        thread.start()
        threads.append(thread)
    return threads
