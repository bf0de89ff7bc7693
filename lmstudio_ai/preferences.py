"""
Preference resolution cascade.

Every preference read follows the same order: explicit argument, session
override, persisted preference, default. Writes go to the session, the
store, or both, depending on the ``SessionMode``.
"""

import json
import sqlite3
from typing import Any, Optional

from .config import AppConfig
from .logging_setup import get_logger
from .preference_store import PreferenceStore
from .session import SessionMode, SessionState

logger = get_logger(__name__)


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections count as "no value"."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def serialize_value(value: Any) -> str:
    """Store representation: strings verbatim, everything else compact JSON."""
    if isinstance(value, str):
        return value
    if isinstance(value, tuple):
        value = list(value)
    return json.dumps(value, separators=(",", ":"))


class PreferenceResolver:
    """Resolves and assigns preference values across session and store."""

    def __init__(self, session: Optional[SessionState] = None, config: Optional[AppConfig] = None,
                 preferences_db_path: Optional[str] = None):
        """
        Initialize the resolver.

        Args:
            session: Session overrides; a fresh empty session when omitted
            config: Application configuration
            preferences_db_path: Default preferences database location,
                falls back to ``config.preferences_db_path``
        """
        self.session = session if session is not None else SessionState()
        self.config = config or AppConfig()
        self.preferences_db_path = preferences_db_path or self.config.preferences_db_path

    def store(self, preferences_db_path: Optional[str] = None) -> PreferenceStore:
        """Preference store for a per-call override path or the default one."""
        return PreferenceStore(
            preferences_db_path or self.preferences_db_path,
            busy_timeout=self.config.db_busy_timeout,
            max_retries=self.config.max_retries
        )

    def resolve(self, name: str, requested: Any = None, mode: SessionMode = SessionMode.DEFAULT,
                default: Any = None, preferences_db_path: Optional[str] = None) -> Any:
        """
        Produce the effective value of a preference.

        Args:
            name: Preference name
            requested: Explicit value; wins over everything when not empty
            mode: Session handling. ``CLEAR_SESSION`` drops the session copy
                first and then reads like ``SKIP_SESSION``.
            default: Returned when no other tier has a value
            preferences_db_path: Store location for this call

        Returns:
            The explicit value, the session value (any type), the stored string
            or ``default``
        """
        if not is_empty(requested):
            return requested

        if mode is SessionMode.CLEAR_SESSION:
            self.session.clear(name)
        elif mode is not SessionMode.SKIP_SESSION:
            session_value = self.session.get(name)
            if not is_empty(session_value):
                logger.debug(f"Using session value for {name}")
                return session_value

        if mode is not SessionMode.SESSION_ONLY:
            try:
                stored = self.store(preferences_db_path).get(name)
            except (sqlite3.Error, OSError) as e:
                logger.warning(f"Could not read preference {name}, using default: {str(e)}")
                stored = None
            if not is_empty(stored):
                logger.debug(f"Using stored preference for {name}")
                return stored

        return default

    def assign(self, name: str, value: Any, mode: SessionMode = SessionMode.DEFAULT,
               preferences_db_path: Optional[str] = None) -> None:
        """
        Write a preference value.

        Args:
            name: Preference name
            value: Value to write; ignored for ``CLEAR_SESSION``
            mode: ``CLEAR_SESSION`` removes the session copy only,
                ``SESSION_ONLY`` writes the session only, ``SKIP_SESSION``
                writes the store only and ``DEFAULT`` writes the store and
                mirrors the value into the session
            preferences_db_path: Store location for this call

        Raises:
            sqlite3.Error, OSError: If the store write fails
        """
        if mode is SessionMode.CLEAR_SESSION:
            self.session.clear(name)
            return

        if mode is SessionMode.SESSION_ONLY:
            self.session.set(name, value)
            return

        self.store(preferences_db_path).set(name, serialize_value(value))
        logger.info(f"Preference {name} saved")

        if mode is not SessionMode.SKIP_SESSION:
            self.session.set(name, value)
