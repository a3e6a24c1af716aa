from __future__ import annotations

import logging
import socket
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ionhost.core.dispatcher import Dispatcher
from ionhost.core.events import APP_SHUTDOWN, Event
from ionhost.core.models import IonSettings
from ionhost.provisioning.provisioner import ProvisionResult, RuntimeBundle, SupportTree
from ionhost.runtime.channel import FramedChannel
from ionhost.runtime.launcher import ProcessLauncher
from ionhost.runtime.lifecycle import LifecycleState, transition_lifecycle_state
from ionhost.runtime.rendezvous import RendezvousListener
from ionhost.utils.diagnostics import (
    ChannelClosedError,
    CompanionExitedError,
    RendezvousError,
    RendezvousTimeoutError,
    StartupError,
)

_logger = logging.getLogger(__name__)


class Ion:
    """
    Runs one session with the companion process.

    `start()` provisions the runtime bundle, launches the companion and waits
    for it to connect back. Events it sends are delivered through
    `dispatcher`; `send()` pushes events to it. `shutdown()` may be triggered
    by the caller, a rendezvous timeout, the companion exiting or the
    connection dropping, and runs once. The host is responsible for calling
    `shutdown()` at process exit.
    """

    def __init__(
        self,
        bundle: RuntimeBundle,
        settings: Optional[IonSettings] = None,
        *,
        support_trees: Sequence[SupportTree] = (),
        provisioning_path: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self.bundle = bundle
        self.settings = settings or IonSettings()
        self.support_trees = list(support_trees)
        path = provisioning_path or Path(self.settings.provisioning.path)
        self.provisioning_path = Path(path).expanduser().resolve()
        self.env = env
        self.logger = logger or _logger
        self.dispatcher = dispatcher or Dispatcher(logger=self.logger)
        self.provision_results: List[ProvisionResult] = []

        self._state = LifecycleState.CREATED
        self._state_lock = threading.Lock()
        self._conn_lock = threading.Lock()
        self._shutdown_lock = threading.Lock()
        self._shutdown_started = False
        self._startup_error: Optional[StartupError] = None
        self._was_connected = False

        self._cancelled = threading.Event()
        self._rendezvous_done = threading.Event()
        self._stopped = threading.Event()

        self._rendezvous: Optional[RendezvousListener] = None
        self._launcher: Optional[ProcessLauncher] = None
        self._channel: Optional[FramedChannel] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._channel is not None

    @property
    def address(self) -> Optional[str]:
        if self._rendezvous is None:
            return None
        return self._rendezvous.address

    def start(self) -> None:
        """
        Provision, launch and wait for the companion to connect.

        Raises a `StartupError` or `ProvisioningError` when any step fails;
        by then the session has been shut down and no child is left running.
        """
        if self._state != LifecycleState.CREATED:
            raise StartupError(f"Session cannot start from state {self._state.value}.")

        try:
            self._advance(LifecycleState.PROVISIONING)
            self._provision()

            self._advance(LifecycleState.LAUNCHING)
            launcher = ProcessLauncher(
                self.bundle.executable_path(self.provisioning_path),
                self.bundle.launch_arguments(self.provisioning_path),
                name=self.bundle.name,
                cwd=self.bundle.bundle_path(self.provisioning_path),
                env=self.env,
                logger=self.logger,
            )
            rendezvous = RendezvousListener(
                on_connected=self._on_connected,
                on_timeout=self._on_rendezvous_timeout,
                on_failure=self._on_rendezvous_failure,
                timeout_seconds=self.settings.runtime.connect_timeout_seconds,
                logger=self.logger,
            )
            address = rendezvous.open()

            # Publishing and launching happen under the state lock so a
            # concurrent shutdown either sees both or prevents the launch.
            with self._state_lock:
                if self._stopping():
                    rendezvous.close()
                    raise StartupError(f"Shut down before {self.bundle.name} was launched.")
                self._rendezvous = rendezvous
                launcher.launch(address, on_exit=self._on_companion_exit)
                self._launcher = launcher
                self._state = transition_lifecycle_state(self._state, LifecycleState.AWAITING_CONNECTION)
                rendezvous.start()
        except StartupError:
            self.shutdown()
            self.wait()
            if self._startup_error is not None:
                raise self._startup_error
            raise
        except Exception:
            self.shutdown()
            self.wait()
            raise

        self._rendezvous_done.wait()
        if not self._was_connected:
            self.shutdown()
            self.wait()
            raise self._startup_error or StartupError(
                f"Shut down before {self.bundle.name} connected."
            )

    def _provision(self) -> None:
        seed = self.settings.ion.app_name
        self.provision_results.append(
            self.bundle.provision(self.provisioning_path, seed=seed, logger=self.logger)
        )
        for tree in self.support_trees:
            self.provision_results.append(tree.deploy(self.provisioning_path, seed=seed, logger=self.logger))

    def _stopping(self) -> bool:
        return self._state in {LifecycleState.SHUTTING_DOWN, LifecycleState.STOPPED}

    def _advance(self, target: LifecycleState) -> None:
        with self._state_lock:
            if self._stopping():
                raise StartupError(f"Shut down before reaching {target.value}.")
            self._state = transition_lifecycle_state(self._state, target)

    def _fail_startup(self, error: StartupError) -> None:
        with self._state_lock:
            if self._startup_error is None and not self._was_connected:
                self._startup_error = error

    def _on_connected(self, sock: socket.socket) -> None:
        channel = FramedChannel(
            sock,
            dispatch=self.dispatcher.dispatch,
            on_closed=self.shutdown,
            cancelled=self._cancelled,
            logger=self.logger,
        )
        with self._conn_lock:
            try:
                self._advance(LifecycleState.CONNECTED)
            except StartupError:
                channel.close()
                return
            self._channel = channel
            self._was_connected = True
        channel.start()
        self._rendezvous_done.set()

    def _on_rendezvous_timeout(self) -> None:
        error = RendezvousTimeoutError(self.settings.runtime.connect_timeout_seconds)
        self.logger.error("Timeout waiting for TCP connection from %s", self.bundle.name)
        self._fail_startup(error)
        self.shutdown()

    def _on_rendezvous_failure(self, exc: BaseException) -> None:
        error = RendezvousError(f"Accepting the {self.bundle.name} connection failed: {exc}")
        error.__cause__ = exc
        self._fail_startup(error)
        self.shutdown()

    def _on_companion_exit(self, returncode: int) -> None:
        self._fail_startup(
            CompanionExitedError(f"{self.bundle.name} exited with code {returncode} before connecting.")
        )
        self.shutdown()

    def send(self, event: Union[Event, Mapping[str, Any]]) -> None:
        """Send one event to the companion."""
        with self._conn_lock:
            channel = self._channel
        if channel is None:
            raise ChannelClosedError("No connection to the companion process.")
        channel.send(event)

    def shutdown(self) -> None:
        """
        Shut the session down. Only the first call does the work; later calls
        return at once, use `wait()` to block until shutdown has completed.
        """
        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True

        with self._state_lock:
            self._state = transition_lifecycle_state(self._state, LifecycleState.SHUTTING_DOWN)

        self.dispatcher.dispatch(Event(name=APP_SHUTDOWN))
        self.dispatcher.shutdown()
        self._cancelled.set()

        with self._conn_lock:
            channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()
        if self._rendezvous is not None:
            self._rendezvous.close()
        if self._launcher is not None:
            self._launcher.terminate()

        with self._state_lock:
            self._state = transition_lifecycle_state(self._state, LifecycleState.STOPPED)
        self.logger.debug("Shutdown complete")
        self._rendezvous_done.set()
        self._stopped.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown has completed; False if `timeout` elapsed first."""
        return self._stopped.wait(timeout)
