# console_manager.py
import logging
import queue
import sys
import threading
from typing import Iterator, Optional, TextIO

from ansi import display_width, make_measurable, make_render_safe, truncate_with_ansi
from models import CapturedLine, RenderState

logger = logging.getLogger(__name__)

CLEAR_LINE = '\033[2K'


# --- Color formatting for our own messages ---
class TColors:
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'

    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_oneline(message: str, level: str = "info", stream: Optional[TextIO] = None):
    """
    Print one of oneline's own messages.

    Errors and warnings go to stderr, everything else to stdout. The colored
    `[oneline]` tag is only added when the target is a terminal, so output
    redirected to a file or pipe stays plain.
    """
    if stream is None:
        stream = sys.stdout if level == "info" else sys.stderr
    color = {
        "info": TColors.OKGREEN,
        "warn": TColors.WARNING,
        "error": TColors.FAIL
    }.get(level, TColors.OKGREEN)

    isatty = getattr(stream, "isatty", None)
    prefix = f"{color}{TColors.BOLD}[oneline]{TColors.ENDC} " if isatty and isatty() else ""
    stream.write(f"{prefix}{message}\n")
    stream.flush()


class MergeChannel:
    """
    Unbounded multi-producer, single-consumer queue of captured lines.

    Lines come out in the order they arrived. Nothing orders stdout against
    stderr beyond that, so the interleaving of the two streams differs from
    run to run.

    Every producer must be registered with `open_producer` before any of
    them can finish; the consumer's iteration ends once the last registered
    producer calls `close_producer`.
    """
    _END = object()

    def __init__(self):
        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._producers = 0
        self._finished = False
        self._receiver_closed = False

    def open_producer(self):
        with self._lock:
            self._producers += 1

    def close_producer(self):
        with self._lock:
            if self._producers == 0:
                return
            self._producers -= 1
            if self._producers == 0:
                self._queue.put(self._END)

    def send(self, line: CapturedLine) -> bool:
        """Queue a line. Returns False, dropping the line, if the receiver is gone."""
        if self._receiver_closed:
            return False
        self._queue.put(line)
        return True

    def receive(self) -> Optional[CapturedLine]:
        """Block for the next line. Returns None once every producer has closed."""
        if self._finished:
            return None
        item = self._queue.get()
        if item is self._END:
            self._finished = True
            return None
        return item

    def close(self):
        """Called by the receiver when it stops listening."""
        self._receiver_closed = True

    def __iter__(self) -> Iterator[CapturedLine]:
        while True:
            line = self.receive()
            if line is None:
                return
            yield line


class ConsoleManager:
    """
    Owns the status line: every rendered line replaces the previous one.

    Only the renderer thread writes through it, but the lock keeps a second
    writer (e.g. the trailing newline) from landing in the middle of a line.
    """
    def __init__(self, state: RenderState, stream: Optional[TextIO] = None):
        self.state = state
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def render(self, line: str) -> bool:
        """
        Overwrite the status line with `line`.

        Returns True if something was written. Empty lines are skipped since
        they would leave an active but blank status line.
        """
        with self._lock:
            if not line:
                return False

            # --- 1. Drop anything that would move the cursor off the line ---
            display_line = make_render_safe(line)

            # --- 2. Measure without escapes, truncate with them ---
            width = self.state.available_width
            if display_width(make_measurable(display_line)) > width:
                display_line = truncate_with_ansi(display_line, width)

            # --- 3. Clear and repaint in a single write ---
            self._stream.write(f"\r{CLEAR_LINE}{self.state.prefix}{display_line}")
            self._stream.flush()
            return True

    def finish_line(self):
        """Move past the status line so later output does not overwrite it."""
        with self._lock:
            self._stream.write("\n")
            self._stream.flush()


class LineRenderer:
    """Single consumer of the merge channel, running on its own thread."""
    def __init__(self, channel: MergeChannel, console: ConsoleManager):
        self.channel = channel
        self.console = console
        self.printed_anything = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.run, name="oneline-renderer", daemon=True)
        self._thread.start()

    def join(self) -> bool:
        if self._thread is not None:
            self._thread.join()
        return self.printed_anything

    def run(self) -> bool:
        broken = False
        for captured in self.channel:
            if broken:
                # Keep draining so the capturers never back up.
                continue
            try:
                if self.console.render(captured.text):
                    self.printed_anything = True
            except (OSError, ValueError) as e:
                logger.debug("Status line write failed, no longer rendering: %s", e)
                broken = True
        self.channel.close()
        return self.printed_anything
