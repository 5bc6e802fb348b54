"""
Registration Map - Observable participant registration state.

This module provides the RegistrationMap class which tracks, for one
coordinator, which participants have registered. Every mutation notifies
listeners synchronously with an immutable snapshot.

Invariants:
- Key set is fixed at construction (never grows)
- Values only transition PENDING -> REGISTERED (never revert)

Thread Safety:
- Uses threading.Lock for protecting state mutations
- Snapshot pattern: snapshot taken under lock, listeners called outside it
- Listeners fire on EVERY mutation, so they must be idempotent
"""

import logging
import threading
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)


class ParticipantState(str, Enum):
    """Registration state of a single participant."""

    PENDING = "pending"
    REGISTERED = "registered"


RegistrationSnapshot = Mapping[str, ParticipantState]
RegistrationListener = Callable[[RegistrationSnapshot], None]


def all_registered(snapshot: RegistrationSnapshot) -> bool:
    """True when every entry of the snapshot is REGISTERED (vacuously for empty)."""
    return all(state is ParticipantState.REGISTERED for state in snapshot.values())


def pending_participants(snapshot: RegistrationSnapshot) -> List[str]:
    """Participant ids still PENDING, in insertion order."""
    return [key for key, state in snapshot.items() if state is ParticipantState.PENDING]


class RegistrationMap:
    """
    Observable key -> ParticipantState map with a fixed key set.

    Usage:
        registrations = RegistrationMap(["light_1", "plug_2"])
        registrations.add_listener(on_change)

        registrations.set("light_1", ParticipantState.REGISTERED)
        # on_change({"light_1": REGISTERED, "plug_2": PENDING}) already ran

        registrations.get("plug_2")  # ParticipantState.PENDING
    """

    def __init__(self, participant_ids: Iterable[str]):
        """
        Initialize map with every participant seeded PENDING.

        Args:
            participant_ids: Resolved participant identifiers

        Raises:
            ValueError: If an identifier appears twice
        """
        self._states: Dict[str, ParticipantState] = {}
        for participant_id in participant_ids:
            if participant_id in self._states:
                raise ValueError(f"Participant '{participant_id}' declared twice")
            self._states[participant_id] = ParticipantState.PENDING

        self._listeners: List[RegistrationListener] = []
        self._lock = threading.Lock()

    def set(self, key: str, value: ParticipantState) -> None:
        """
        Store a state and notify every listener before returning.

        Args:
            key: Participant identifier
            value: New state

        Raises:
            KeyError: If key is not part of the resolved participant set
            ValueError: If the transition would revert REGISTERED -> PENDING

        Thread-safe: Acquires lock for write, notifies outside lock.
        """
        value = ParticipantState(value)

        with self._lock:
            if key not in self._states:
                raise KeyError(f"Participant '{key}' is not part of this registration map")

            current = self._states[key]
            if current is ParticipantState.REGISTERED and value is ParticipantState.PENDING:
                raise ValueError(f"Participant '{key}' cannot revert to pending")

            self._states[key] = value
            snapshot = self._snapshot_locked()
            listeners = list(self._listeners)

        for listener in listeners:
            listener(snapshot)

    def mark_registered(self, key: str) -> None:
        """Shorthand for set(key, REGISTERED)."""
        self.set(key, ParticipantState.REGISTERED)

    def get(self, key: str) -> ParticipantState:
        """
        Look up a participant state.

        Raises:
            KeyError: If key does not exist
        """
        with self._lock:
            return self._states[key]

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def keys(self) -> List[str]:
        """Participant identifiers in declaration order."""
        return list(self._states)

    def snapshot(self) -> RegistrationSnapshot:
        """
        Get an immutable view of the current states.

        Thread-safe: Acquires lock briefly.
        """
        with self._lock:
            return self._snapshot_locked()

    def add_listener(self, listener: RegistrationListener) -> None:
        """Register a listener (called in registration order)."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: RegistrationListener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _snapshot_locked(self) -> RegistrationSnapshot:
        return MappingProxyType(dict(self._states))
