import logging
import os
import subprocess
import sys
import threading
from typing import BinaryIO, Dict, List, Optional, Sequence, TextIO

from console_manager import ConsoleManager, LineRenderer, MergeChannel, print_oneline
from models import DEFAULT_COLOR_ENV, CapturedLine, ChildStatus

logger = logging.getLogger(__name__)


def _uninterrupted(call, what: str):
    """
    Call `call` until it returns without being interrupted.

    There is no cancellation: the child shares our terminal, so a Ctrl-C
    reaches it directly and we keep waiting for it, its pipes and the
    renderer to finish.
    """
    while True:
        try:
            return call()
        except KeyboardInterrupt:
            logger.debug("Interrupted, still waiting for %s", what)


class SpawnError(Exception):
    """The child could not be started at all."""
    NOT_FOUND = "not_found"
    OS_ERROR = "os_error"

    def __init__(self, command: str, kind: str, detail: str = ""):
        self.command = command
        self.kind = kind
        self.detail = detail
        super().__init__(str(self))

    def __str__(self):
        if self.kind == self.NOT_FOUND:
            return f"Command not found: {self.command}"
        return f"Error: {self.detail}"


class StreamHistory:
    """
    Append-only record of one stream's lines.

    The capturer thread is the only writer. Readers should wait until that
    thread has been joined; `lines` returns a copy either way.
    """
    def __init__(self, stream: str):
        self.stream = stream
        self._lines: List[CapturedLine] = []
        self._lock = threading.Lock()

    def append(self, line: CapturedLine):
        with self._lock:
            self._lines.append(line)

    def lines(self) -> List[CapturedLine]:
        with self._lock:
            return list(self._lines)

    def texts(self) -> List[str]:
        return [line.text for line in self.lines()]

    def __len__(self):
        with self._lock:
            return len(self._lines)


class StreamCapturer:
    """
    Drains one pipe of the child line by line into its history and the
    merge channel.
    """
    def __init__(self, stream: str, pipe: BinaryIO, history: StreamHistory, channel: MergeChannel):
        self.stream = stream
        self.pipe = pipe
        self.history = history
        self.channel = channel
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.run, name=f"oneline-{self.stream}", daemon=True)
        self._thread.start()

    def join(self):
        if self._thread is not None:
            self._thread.join()

    def run(self):
        try:
            while True:
                try:
                    raw = self.pipe.readline()
                except (OSError, ValueError) as e:
                    # The pipe is unusable; whatever was captured so far stands.
                    logger.debug("Reading %s stopped due to IO error: %s", self.stream, e)
                    break
                if not raw:
                    break

                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    logger.debug("Skipping undecodable %s line: %s", self.stream, e)
                    continue

                if text.endswith("\n"):
                    text = text[:-1]
                    if text.endswith("\r"):
                        text = text[:-1]

                line = CapturedLine(stream=self.stream, text=text)
                self.history.append(line)
                if not self.channel.send(line):
                    logger.debug("Renderer gone, dropped %s line", self.stream)
        finally:
            self.channel.close_producer()
            try:
                self.pipe.close()
            except OSError:
                pass


class ProcessSupervisor:
    """
    Runs one child command behind the status line.

    Spawning -> Running -> Exited. A spawn failure raises `SpawnError`;
    otherwise `run` returns the child's status after every captured line
    has been rendered, replaying the history first if the child failed.
    """
    def __init__(self, command: Sequence[str], console: ConsoleManager,
                 color_env: Optional[Dict[str, str]] = None,
                 err_stream: Optional[TextIO] = None):
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.console = console
        self.color_env = dict(color_env) if color_env is not None else {}
        self.err_stream = err_stream
        self.stdout_history = StreamHistory("stdout")
        self.stderr_history = StreamHistory("stderr")
        self.popen: Optional[subprocess.Popen] = None

    def _child_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.color_env)
        # The color overrides always win over anything configured.
        env.update(DEFAULT_COLOR_ENV)
        return env

    def spawn(self) -> subprocess.Popen:
        command_name = self.command[0]
        try:
            self.popen = subprocess.Popen(
                self.command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self._child_env(),
            )
        except FileNotFoundError:
            raise SpawnError(command_name, SpawnError.NOT_FOUND)
        except OSError as e:
            raise SpawnError(command_name, SpawnError.OS_ERROR, str(e))

        logger.debug("Started '%s' with PID %s", command_name, self.popen.pid)
        return self.popen

    def _wait(self) -> int:
        return _uninterrupted(self.popen.wait, f"PID {self.popen.pid}")

    def run(self) -> ChildStatus:
        popen = self.spawn()

        channel = MergeChannel()
        capturers = [
            StreamCapturer("stdout", popen.stdout, self.stdout_history, channel),
            StreamCapturer("stderr", popen.stderr, self.stderr_history, channel),
        ]
        # Register both producers before either can hit end-of-stream.
        for _ in capturers:
            channel.open_producer()
        renderer = LineRenderer(channel, self.console)

        for capturer in capturers:
            capturer.start()
        renderer.start()

        returncode = self._wait()

        for capturer in capturers:
            _uninterrupted(capturer.join, f"the {capturer.stream} reader")
        if _uninterrupted(renderer.join, "the renderer"):
            self.console.finish_line()

        status = ChildStatus.from_returncode(returncode)
        logger.debug("PID %s exited: code=%s signal=%s", popen.pid, status.code, status.signal)
        if not status.success:
            self.replay_failure(status)
        return status

    def replay_failure(self, status: ChildStatus):
        """
        Print the failure banner, then the captured stderr in order, or the
        captured stdout when nothing went to stderr.
        """
        stream = self.err_stream if self.err_stream is not None else sys.stderr
        if status.code is None:
            print_oneline(f"Error: Command terminated by signal {status.signal}", level="error", stream=stream)
        else:
            print_oneline(f"Error: Command failed with exit code {status.code}", level="error", stream=stream)
        print_oneline("Error output:", level="error", stream=stream)

        lines = self.stderr_history.texts() or self.stdout_history.texts()
        for text in lines:
            stream.write(text + "\n")
        stream.flush()
