"""Companion process supervision: rendezvous, launch, channel and lifecycle."""

from ionhost.runtime.channel import FramedChannel, decode_frame, encode_frame
from ionhost.runtime.controller import Ion
from ionhost.runtime.launcher import ProcessLauncher
from ionhost.runtime.lifecycle import LifecycleState, transition_lifecycle_state
from ionhost.runtime.rendezvous import DEFAULT_CONNECT_TIMEOUT, LOOPBACK_HOST, RendezvousListener

__all__ = [
	"DEFAULT_CONNECT_TIMEOUT",
	"FramedChannel",
	"Ion",
	"LOOPBACK_HOST",
	"LifecycleState",
	"ProcessLauncher",
	"RendezvousListener",
	"decode_frame",
	"encode_frame",
	"transition_lifecycle_state",
]
