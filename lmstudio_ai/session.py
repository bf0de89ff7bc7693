"""
Session overrides for preference values.

A session override is a process-lifetime value that wins over the persisted
preference but never over an explicit argument. The state lives in a
``SessionState`` object that callers pass around, not in module globals.
"""

from enum import Enum
from typing import Any, Dict, Iterator, Optional

from .logging_setup import get_logger

logger = get_logger(__name__)


class SessionMode(Enum):
    """How a preference read or write treats the session overrides."""
    DEFAULT = "default"
    SESSION_ONLY = "session_only"
    SKIP_SESSION = "skip_session"
    CLEAR_SESSION = "clear_session"

    @classmethod
    def from_flags(cls, session_only: bool = False, skip_session: bool = False,
                   clear_session: bool = False) -> 'SessionMode':
        """
        Build a mode from the three command-line switches.

        ``clear_session`` short-circuits the other two.

        Raises:
            ValueError: If both ``session_only`` and ``skip_session`` are set
        """
        if clear_session:
            return cls.CLEAR_SESSION
        if session_only and skip_session:
            raise ValueError("session_only and skip_session cannot be combined")
        if session_only:
            return cls.SESSION_ONLY
        if skip_session:
            return cls.SKIP_SESSION
        return cls.DEFAULT


class SessionState:
    """Mutable map of preference name to session override."""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})

    def get(self, name: str) -> Optional[Any]:
        return self._values.get(name)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value
        logger.debug(f"Session setting stored: {name}")

    def clear(self, name: str) -> None:
        """Remove a session override; absent names are ignored."""
        if self._values.pop(name, None) is not None:
            logger.debug(f"Cleared session setting: {name}")

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
