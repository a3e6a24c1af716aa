from __future__ import annotations

from typing import Any, Callable, Dict, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

# Sent by the companion once it has been launched and is ready.
APP_READY = "app.ready"
# Emitted locally when the session shuts down.
APP_SHUTDOWN = "app.shutdown"


class Event(BaseModel):
    """
    One message exchanged with the companion process.

    Only `name` is interpreted; every other field travels through untouched
    and is available from `payload`.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    name: str

    @property
    def payload(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def __str__(self) -> str:
        return f"Event: {self.name}"


@runtime_checkable
class Listener(Protocol):
    def event_fired(self, event: Event) -> None:
        ...


class ListenerFunc:
    """
    Adapts a plain callable into a Listener.

    Keep a reference to the wrapper: removal matches on the wrapper instance,
    not on the wrapped function.
    """

    def __init__(self, func: Callable[[Event], None]) -> None:
        self.func = func

    def event_fired(self, event: Event) -> None:
        self.func(event)

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"ListenerFunc({name})"
