"""
CommandRegistry - Explicit command registration for the bridge control plane

Bounded Context: Command registration and validation
Responsibilities:
  - Register commands with handlers and their required payload fields
  - Reject unknown commands and incomplete payloads before execution
  - Provide introspection (available_commands, get_help)

Threading: Thread-safe (uses lock for write operations)
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set, Tuple
import threading


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandValidationError(Exception):
    """Raised when a command payload misses a required field"""
    pass


@dataclass(frozen=True)
class CommandSpec:
    """One registered command."""

    name: str
    handler: Callable[[Dict[str, Any]], Any]
    description: str
    required_fields: Tuple[str, ...] = ()


class CommandRegistry:
    """
    Registry for MQTT commands with explicit registration.

    Handlers always receive the full command payload (a dict) and may
    return a result, which the control plane publishes on the status topic.

    Example:
        registry = CommandRegistry()
        registry.register(
            'pairing_info', handlers.pairing_info,
            "Pairing code of a device or aggregator",
            required_fields=('node_id',),
        )

        try:
            result = registry.execute('pairing_info', {'node_id': 'lamp_1'})
        except CommandNotAvailableError as e:
            print(f"Command not available: {e}")
    """

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}
        self._lock = threading.Lock()

    def register(
        self,
        command: str,
        handler: Callable[[Dict[str, Any]], Any],
        description: str,
        required_fields: Tuple[str, ...] = (),
    ) -> None:
        """
        Register a command with its handler function.

        Args:
            command: Command name (lowercase, no spaces)
            handler: Callable receiving the command payload
            description: Human-readable description for help text
            required_fields: Payload keys that must be present

        Raises:
            ValueError: If command already registered (double registration)
        """
        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")

            self._commands[command] = CommandSpec(
                name=command,
                handler=handler,
                description=description,
                required_fields=tuple(required_fields),
            )

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None) -> Any:
        """
        Execute a registered command.

        Args:
            command: Command name to execute
            command_data: Command payload (full JSON message)

        Returns:
            Whatever the handler returns

        Raises:
            CommandNotAvailableError: If command not registered
            CommandValidationError: If a required field is missing
        """
        spec = self._commands.get(command)
        if spec is None:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        command_data = command_data or {}
        missing = [f for f in spec.required_fields if command_data.get(f) in (None, "")]
        if missing:
            raise CommandValidationError(
                f"Command '{command}' requires: {', '.join(missing)}"
            )

        return spec.handler(command_data)

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """Command name -> description (snapshot)."""
        return {name: spec.description for name, spec in self._commands.items()}

    def count(self) -> int:
        return len(self._commands)
