from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional

from ionhost.utils.diagnostics import RendezvousError

_logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_CONNECT_TIMEOUT = 30.0


class RendezvousListener:
    """
    One-shot loopback listener the companion process connects back to.

    After `start()`, an accept thread races a timer thread. Exactly one of
    `on_connected`, `on_timeout` or `on_failure` is called; the listening
    socket is closed as soon as the race is decided.
    """

    def __init__(
        self,
        on_connected: Callable[[socket.socket], None],
        on_timeout: Callable[[], None],
        on_failure: Callable[[BaseException], None],
        timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT,
        host: str = LOOPBACK_HOST,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.on_connected = on_connected
        self.on_timeout = on_timeout
        self.on_failure = on_failure
        self.timeout_seconds = timeout_seconds
        self.host = host
        self.logger = logger or _logger

        self._server: Optional[socket.socket] = None
        self._address: Optional[str] = None
        self._lock = threading.Lock()
        self._decided = False
        self._accepted = threading.Event()
        self._accept_thread: Optional[threading.Thread] = None
        self._timer_thread: Optional[threading.Thread] = None

    @property
    def address(self) -> str:
        if self._address is None:
            raise RendezvousError("Rendezvous listener is not open.")
        return self._address

    def open(self) -> str:
        """Bind an OS-assigned port and start listening; returns `host:port`."""
        try:
            server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                server.bind((self.host, 0))
                server.listen(1)
            except OSError:
                server.close()
                raise
        except OSError as exc:
            raise RendezvousError(f"Unable to listen on {self.host}: {exc}") from exc

        self._server = server
        host, port = server.getsockname()[:2]
        self._address = f"{host}:{port}"
        return self._address

    def start(self) -> None:
        """Begin waiting for the connection and for the timeout."""
        if self._server is None:
            raise RendezvousError("Rendezvous listener is not open.")

        self._accept_thread = threading.Thread(target=self._accept, name="ionhost-accept", daemon=True)
        self._timer_thread = threading.Thread(target=self._time_out, name="ionhost-rendezvous-timer", daemon=True)
        self._accept_thread.start()
        self._timer_thread.start()

    def close(self) -> None:
        """Stop listening. A pending accept is abandoned without callbacks."""
        with self._lock:
            self._decided = True
            server, self._server = self._server, None
        self._accepted.set()
        self._close_server(server)

    def _decide(self) -> bool:
        with self._lock:
            if self._decided:
                return False
            self._decided = True
            return True

    def _accept(self) -> None:
        server = self._server
        if server is None:
            return
        try:
            conn, peer = server.accept()
        except OSError as exc:
            if self._decide():
                self.logger.error("Accepting the companion connection failed: %s", exc)
                self._shut_listener()
                self.on_failure(exc)
            return

        if not self._decide():
            conn.close()
            return

        self._accepted.set()
        self.logger.debug("Companion connected from %s:%s", *peer[:2])
        self._shut_listener()
        self.on_connected(conn)

    def _time_out(self) -> None:
        if self._accepted.wait(self.timeout_seconds):
            return
        if self._decide():
            self._shut_listener()
            self.on_timeout()

    def _shut_listener(self) -> None:
        with self._lock:
            server, self._server = self._server, None
        self._close_server(server)

    @staticmethod
    def _close_server(server: Optional[socket.socket]) -> None:
        if server is None:
            return
        try:
            # Wakes a thread blocked in accept() on Linux; close() alone does not.
            server.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        server.close()
