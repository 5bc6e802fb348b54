"""
Startup Coordinator - Readiness-gated start of a shared resource.

Bounded Context: Startup gating for servers and aggregators
Responsibilities:
  - Own the RegistrationMap of resolved participants
  - Arm a bounded wait timer (degraded start when it expires)
  - Start the underlying resource exactly once
  - Hand the started resource (or failure) to every waiter via ResourceBroadcaster

State Machine:
    WAITING --(all registered | timeout)--> STARTING --> STARTED
                                                    \\--> FAILED
    any state --(close)--> CLOSED

Threading:
  - register() runs in the participant's thread
  - Timeout callback runs in the threading.Timer thread
  - Both are serialized by one RLock (map listeners fire synchronously
    inside register(), so the lock must be re-entrant)
  - The start procedure runs in its own daemon thread, so a slow start
    only blocks this coordinator's broadcaster

There is no deadline on the start procedure itself: a hang there keeps
the coordinator in STARTING forever.
A start that completes after close() hands its resource to `stop`.
"""

import threading
from enum import Enum
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from hearth_core.broadcaster import ResourceBroadcaster
from hearth_core.config import DEFAULT_STARTUP_TIMEOUT
from hearth_core.registry import (
    ParticipantState,
    RegistrationMap,
    RegistrationSnapshot,
    all_registered,
    pending_participants,
)
from hearth_mqtt.logging import LogEvent, StructuredLogger, create_logger

R = TypeVar("R")

StartProcedure = Callable[[], R]
AttachHook = Callable[[str, Any], None]
TimerFactory = Callable[[float, Callable[[], None]], Any]


class CoordinatorState(str, Enum):
    WAITING = "waiting"
    STARTING = "starting"
    STARTED = "started"
    FAILED = "failed"
    CLOSED = "closed"


class RegistrationOutcome(str, Enum):
    """Result of StartupCoordinator.register()."""

    ACCEPTED = "accepted"    # registered while waiting, attachment attached
    LATE = "late"            # gate already open; attachment (if any) not attached
    DUPLICATE = "duplicate"  # participant had already registered
    UNKNOWN = "unknown"      # id not in the resolved participant set
    REJECTED = "rejected"    # attach hook raised; participant counted as registered


class CoordinatorClosedError(Exception):
    """Raised when registering with a coordinator that has been torn down"""
    pass


class ResourceStartError(Exception):
    """Raised (through the broadcaster) when the underlying resource fails to start"""
    pass


class StartupCoordinator(Generic[R]):
    """
    Generic readiness-gated startup state machine.

    Used by both the server node (participants: standalone accessories,
    aggregators, controllers) and the aggregator node (participants:
    bridged accessories). Participants never touch the resource directly:
    additions flow through register() -> attach hook while WAITING.

    Example:
        coordinator = StartupCoordinator(
            name="server:srv",
            participants=["lamp", "plug"],
            start=server.start_and_return,
            attach=lambda pid, endpoint: server.add_endpoint(endpoint),
            timeout=10.0,
            on_participant_timeout=lambda pid: runtime.warn_node(pid, "unreachable"),
        )

        coordinator.register("lamp", lamp_endpoint)   # ACCEPTED
        coordinator.register("plug", plug_endpoint)   # ACCEPTED -> start launched

        server = coordinator.handle.result(timeout=30.0)
    """

    def __init__(
        self,
        name: str,
        participants: Iterable[str],
        start: StartProcedure,
        attach: Optional[AttachHook] = None,
        stop: Optional[Callable[[R], None]] = None,
        timeout: float = DEFAULT_STARTUP_TIMEOUT,
        on_participant_timeout: Optional[Callable[[str], None]] = None,
        on_failure: Optional[Callable[[BaseException], None]] = None,
        timer_factory: TimerFactory = threading.Timer,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize coordinator and enter WAITING.

        Args:
            name: Coordinator name for logs (e.g. "server:srv")
            participants: Resolved participant ids (see hearth_core.resolver)
            start: Start procedure; returns the started resource handle
            attach: Called with (participant_id, attachment) for each
                registration accepted while WAITING
            stop: Called with the started resource when the start procedure
                completes after close() (nothing else would stop it)
            timeout: Seconds to wait for participants before a degraded start
            on_participant_timeout: Called once per participant still
                pending when the timer expires
            on_failure: Called with the ResourceStartError on FAILED
            timer_factory: threading.Timer compatible factory
            logger: Structured logger (default: "coordinator" component)

        Raises:
            ValueError: If timeout <= 0 or a participant id is duplicated
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        self.name = name
        self.timeout = timeout
        self.handle: ResourceBroadcaster[R] = ResourceBroadcaster(name)
        self.degraded = False

        self._start = start
        self._attach = attach
        self._stop = stop
        self._on_participant_timeout = on_participant_timeout
        self._on_failure = on_failure
        self._timer_factory = timer_factory
        self._logger = logger or create_logger("coordinator")

        self._lock = threading.RLock()
        self._state = CoordinatorState.WAITING
        self._timer = None
        self._start_thread: Optional[threading.Thread] = None

        self._registrations = RegistrationMap(participants)
        self._registrations.add_listener(self._on_registrations_changed)

        self._enter_waiting()

    # ─────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    @property
    def registrations(self) -> RegistrationSnapshot:
        """Immutable snapshot of participant states."""
        return self._registrations.snapshot()

    @property
    def pending(self) -> List[str]:
        return pending_participants(self._registrations.snapshot())

    @property
    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def is_participant(self, participant_id: str) -> bool:
        return participant_id in self._registrations

    # ─────────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────────

    def register(self, participant_id: str, attachment: Any = None) -> RegistrationOutcome:
        """
        Register a participant at its own readiness point.

        Args:
            participant_id: Resolved participant identifier
            attachment: Object handed to the attach hook (endpoint,
                bridged accessory, controller); None for plain readiness

        Returns:
            RegistrationOutcome describing what happened

        Raises:
            CoordinatorClosedError: If the coordinator has been closed
        """
        metadata = {'coordinator': self.name, 'participant_id': participant_id}

        with self._lock:
            if self._state is CoordinatorState.CLOSED:
                raise CoordinatorClosedError(
                    f"Coordinator '{self.name}' is closed; rejecting '{participant_id}'"
                )

            if participant_id not in self._registrations:
                self._logger.warning(
                    event=LogEvent.PARTICIPANT_UNKNOWN,
                    message="Registration from undeclared participant ignored",
                    metadata=metadata,
                )
                return RegistrationOutcome.UNKNOWN

            if self._registrations.get(participant_id) is ParticipantState.REGISTERED:
                self._logger.warning(
                    event=LogEvent.PARTICIPANT_DUPLICATE,
                    message="Duplicate registration ignored",
                    metadata=metadata,
                )
                return RegistrationOutcome.DUPLICATE

            if self._state is not CoordinatorState.WAITING:
                # Audit only: start already happened or is in flight
                self._registrations.mark_registered(participant_id)
                self._logger.warning(
                    event=LogEvent.PARTICIPANT_LATE,
                    message=f"Registration after gate opened ({self._state.value})",
                    metadata={**metadata, 'rejected_attachment': attachment is not None},
                )
                return RegistrationOutcome.LATE

            outcome = RegistrationOutcome.ACCEPTED
            if attachment is not None and self._attach is not None:
                try:
                    self._attach(participant_id, attachment)
                except Exception as e:
                    self._logger.error(
                        event=LogEvent.REGISTRATION_ERROR,
                        message="Attach hook rejected participant",
                        metadata=metadata,
                        exc_info=e,
                    )
                    outcome = RegistrationOutcome.REJECTED

            self._logger.info(
                event=LogEvent.PARTICIPANT_REGISTERED,
                message="Participant registered",
                metadata={**metadata, 'outcome': outcome.value},
            )
            # Fires _on_registrations_changed synchronously (re-entrant lock)
            self._registrations.mark_registered(participant_id)
            return outcome

    # ─────────────────────────────────────────────────────────────────────
    # Gate
    # ─────────────────────────────────────────────────────────────────────

    def _enter_waiting(self) -> None:
        with self._lock:
            if len(self._registrations) == 0:
                self._begin_starting_locked()
                return

            self._timer = self._timer_factory(self.timeout, self._on_timeout)
            if hasattr(self._timer, "daemon"):
                self._timer.daemon = True
            self._timer.start()

            self._logger.info(
                event=LogEvent.COORDINATOR_WAITING,
                message=f"Waiting up to {self.timeout}s for {len(self._registrations)} participant(s)",
                metadata={'coordinator': self.name, 'participants': self._registrations.keys()},
            )

    def _on_registrations_changed(self, snapshot: RegistrationSnapshot) -> None:
        """Map listener. Fires on every mutation; the state check makes it a no-op after WAITING."""
        if not all_registered(snapshot):
            return

        with self._lock:
            if self._state is not CoordinatorState.WAITING:
                return
            self._cancel_timer_locked()
            self._begin_starting_locked()

    def _on_timeout(self) -> None:
        with self._lock:
            if self._state is not CoordinatorState.WAITING:
                return
            self._timer = None

            missing = pending_participants(self._registrations.snapshot())
            self.degraded = bool(missing)

            self._logger.warning(
                event=LogEvent.COORDINATOR_DEGRADED,
                message=f"Timeout after {self.timeout}s, starting without {len(missing)} participant(s)",
                metadata={'coordinator': self.name, 'missing': missing},
            )

            for participant_id in missing:
                self._logger.warning(
                    event=LogEvent.PARTICIPANT_TIMEOUT,
                    message="Participant did not register in time and will be unreachable",
                    metadata={'coordinator': self.name, 'participant_id': participant_id},
                )
                if self._on_participant_timeout is not None:
                    try:
                        self._on_participant_timeout(participant_id)
                    except Exception as e:
                        self._logger.error(
                            event=LogEvent.REGISTRATION_ERROR,
                            message="Timeout notification failed",
                            metadata={'coordinator': self.name, 'participant_id': participant_id},
                            exc_info=e,
                        )

            self._begin_starting_locked()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _begin_starting_locked(self) -> None:
        self._state = CoordinatorState.STARTING
        self._logger.info(
            event=LogEvent.COORDINATOR_STARTING,
            message="Starting resource",
            metadata={'coordinator': self.name, 'degraded': self.degraded},
        )

        self._start_thread = threading.Thread(
            target=self._run_start,
            name=f"Startup-{self.name}",
            daemon=True,
        )
        self._start_thread.start()

    def _run_start(self) -> None:
        """
        Execute the start procedure (startup thread).

        Runs at most once per coordinator.
        """
        try:
            resource = self._start()
        except Exception as e:
            error = ResourceStartError(f"{self.name} failed to start: {e}")
            error.__cause__ = e

            with self._lock:
                if self._state is CoordinatorState.STARTING:
                    self._state = CoordinatorState.FAILED

            self._logger.error(
                event=LogEvent.RESOURCE_START_ERROR,
                message="Resource failed to start",
                metadata={'coordinator': self.name},
                exc_info=e,
            )
            self.handle.fail(error)
            if self._on_failure is not None:
                try:
                    self._on_failure(error)
                except Exception as callback_error:
                    self._logger.error(
                        event=LogEvent.RESOURCE_START_ERROR,
                        message="Failure notification failed",
                        metadata={'coordinator': self.name},
                        exc_info=callback_error,
                    )
            return

        with self._lock:
            closed = self._state is CoordinatorState.CLOSED
            if self._state is CoordinatorState.STARTING:
                self._state = CoordinatorState.STARTED

        if closed:
            self._stop_orphan(resource)
            return

        self._logger.info(
            event=LogEvent.RESOURCE_STARTED,
            message="Resource started",
            metadata={'coordinator': self.name, 'degraded': self.degraded},
        )
        self.handle.resolve(resource)

    def _stop_orphan(self, resource: R) -> None:
        """Start finished after close(): nobody owns the resource any more."""
        self._logger.warning(
            event=LogEvent.RESOURCE_STOPPED,
            message="Resource started after close, stopping it",
            metadata={'coordinator': self.name},
        )
        if self._stop is None:
            return
        try:
            self._stop(resource)
        except Exception as e:
            self._logger.error(
                event=LogEvent.RESOURCE_STOP_ERROR,
                message="Stopping late-started resource failed",
                metadata={'coordinator': self.name},
                exc_info=e,
            )

    def wait_started(self, timeout: Optional[float] = None) -> R:
        """Block until STARTED (returns resource) or FAILED (raises)."""
        return self.handle.result(timeout=timeout)

    # ─────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """
        Tear down the coordinator.

        Cancels the timer, rejects further registrations and fails the
        broadcaster if nothing was resolved yet (so no waiter hangs).

        Safe to call multiple times.
        """
        with self._lock:
            if self._state is CoordinatorState.CLOSED:
                return
            previous = self._state
            self._cancel_timer_locked()
            self._state = CoordinatorState.CLOSED
            self._registrations.remove_listener(self._on_registrations_changed)

        if not self.handle.done():
            self.handle.fail(CoordinatorClosedError(f"Coordinator '{self.name}' closed before start"))

        self._logger.info(
            event=LogEvent.COORDINATOR_CLOSED,
            message="Coordinator closed",
            metadata={'coordinator': self.name, 'previous_state': previous.value},
        )
