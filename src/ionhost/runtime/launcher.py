from __future__ import annotations

import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Sequence

from ionhost.utils.diagnostics import LaunchError

_logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5.0


class ProcessLauncher:
    """
    Starts the companion executable and supervises it.

    The child is invoked as `[executable, *arguments, address]`. Its stdout
    lines are logged at info level and its stderr lines at error level. When
    the child exits, `on_exit(returncode)` is called from a watcher thread.
    """

    def __init__(
        self,
        executable: Path | str,
        arguments: Sequence[str] = (),
        name: Optional[str] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.executable = str(executable)
        self.arguments = list(arguments)
        self.name = name or Path(self.executable).name
        self.cwd = cwd
        self.env = env
        self.logger = logger or _logger
        self.process: Optional[subprocess.Popen] = None
        self._threads: List[threading.Thread] = []

    def command(self, address: str) -> List[str]:
        return [self.executable, *self.arguments, address]

    def launch(self, address: str, on_exit: Callable[[int], None]) -> subprocess.Popen:
        """Start the child with the rendezvous address as its last argument."""
        command = self.command(address)
        self.logger.debug("Launching %s: %s", self.name, command)
        env = os.environ.copy()
        if self.env:
            env.update(self.env)
        try:
            process = subprocess.Popen(
                command,
                cwd=str(self.cwd) if self.cwd else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise LaunchError(f"Unable to start {self.name}: {exc}") from exc

        self.process = process
        self._threads = [
            self._spawn(self._forward, process.stdout, self.logger.info, "stdout"),
            self._spawn(self._forward, process.stderr, self.logger.error, "stderr"),
        ]
        self._spawn(self._watch, process, on_exit)
        return process

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def terminate(self) -> None:
        """Stop the child if it is still running, killing it after a grace period."""
        process = self.process
        if process is None or process.poll() is not None:
            return
        self.logger.debug("Terminating %s (pid=%s)", self.name, process.pid)
        try:
            process.terminate()
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            self.logger.error("%s did not exit in %.0fs; killing it", self.name, TERMINATE_GRACE_SECONDS)
            process.kill()
        except ProcessLookupError:
            pass

    def _spawn(self, target: Callable[..., None], *args: object) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=f"ionhost-{self.name}", daemon=True)
        thread.start()
        return thread

    def _forward(self, stream: Optional[IO[bytes]], log: Callable[..., None], label: str) -> None:
        if stream is None:
            return
        with stream:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                log("%s %s: %s", self.name, label, line)

    def _watch(self, process: subprocess.Popen, on_exit: Callable[[int], None]) -> None:
        returncode = process.wait()
        for thread in self._threads:
            thread.join(timeout=1.0)
        if returncode != 0:
            self.logger.error("%s exited with code %s", self.name, returncode)
        self.logger.debug("%s stopped", self.name)
        on_exit(returncode)
