from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from ionhost.core.events import Event
from ionhost.utils.diagnostics import ChannelClosedError

_logger = logging.getLogger(__name__)


def encode_frame(event: Union[Event, Mapping[str, Any]]) -> bytes:
    """Serialize one event as a newline-terminated JSON frame."""
    if not isinstance(event, Event):
        event = Event.model_validate(dict(event))
    return event.model_dump_json().encode("utf-8") + b"\n"


def decode_frame(frame: bytes) -> Event:
    return Event.model_validate_json(frame)


class FramedChannel:
    """
    Newline-delimited JSON events over the companion's socket.

    A single reader thread turns inbound frames into events for `dispatch`.
    Writers are serialized so frames never interleave. End of stream and
    connection resets are reported through `on_closed`.
    """

    def __init__(
        self,
        sock: socket.socket,
        dispatch: Callable[[Event], None],
        on_closed: Callable[[], None],
        cancelled: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.dispatch = dispatch
        self.on_closed = on_closed
        self.cancelled = cancelled or threading.Event()
        self.logger = logger or _logger
        self._sock: Optional[socket.socket] = sock
        self._reader = sock.makefile("rb")
        self._write_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.read_loop, name="ionhost-channel", daemon=True)
        self._thread.start()
        return self._thread

    def read_loop(self) -> None:
        try:
            while not self.cancelled.is_set():
                try:
                    line = self._reader.readline()
                except ConnectionResetError:
                    self._peer_gone("connection reset")
                    return
                except (OSError, ValueError) as exc:
                    if not self.cancelled.is_set():
                        self.logger.error("Channel read failed: %s", exc)
                        self.on_closed()
                    return

                if not line:
                    self._peer_gone("end of stream")
                    return

                frame = line.strip()
                if not frame:
                    continue
                try:
                    event = decode_frame(frame)
                except ValidationError as exc:
                    self.logger.error("Invalid event data: %s", exc)
                    continue
                self.dispatch(event)
        finally:
            self._reader.close()

    def _peer_gone(self, reason: str) -> None:
        if self.cancelled.is_set():
            return
        self.logger.debug("Companion disconnected (%s)", reason)
        self.on_closed()

    def send(self, event: Union[Event, Mapping[str, Any]]) -> None:
        """Write one event frame; concurrent callers are serialized."""
        data = encode_frame(event)
        with self._write_lock:
            if self._sock is None:
                raise ChannelClosedError("No connection to the companion process.")
            try:
                self._sock.sendall(data)
            except OSError as exc:
                raise ChannelClosedError(f"Unable to send event: {exc}") from exc

    def close(self) -> bool:
        """Close the connection; returns False when it was already closed."""
        with self._write_lock:
            sock, self._sock = self._sock, None
        if sock is None:
            return False
        try:
            # Unblocks the reader thread, which then releases its file object.
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()
        return True
