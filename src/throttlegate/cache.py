"""
Script: cache.py
Created: 2026-10-18
Purpose: Tagged cache state (Uninitialized | Loaded) for persisted singletons
Keywords: cache, stale-state, warning, tagged-variant
Status: active
Prerequisites:
  - loguru
Changelog:
  - 2026-10-18: Initial version
See-Also: config_store.py, maintenance.py
"""

import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar, Union

from loguru import logger


T = TypeVar("T")


class StaleStateWarning(RuntimeWarning):
    """A cached value was read before it was confirmed against the store."""


@dataclass(frozen=True)
class Uninitialized(Generic[T]):
    """Value not confirmed in the current execution context (default or carried over)."""
    value: T


@dataclass(frozen=True)
class Loaded(Generic[T]):
    """Value confirmed by a successful load or save."""
    value: T
    loaded_at: datetime


CacheState = Union[Uninitialized[T], Loaded[T]]


class CachedValue(Generic[T]):
    """Holds one cached singleton and its confirmation state."""

    def __init__(self, name: str, default: T):
        self.name = name
        self._state: CacheState = Uninitialized(default)
        self._warned = False

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    def peek(self) -> T:
        """Return the value without any stale-state check."""
        return self._state.value

    def get(self) -> T:
        """Return the value, warning once per context if it was never confirmed."""
        if isinstance(self._state, Uninitialized) and not self._warned:
            self._warned = True
            logger.warning(
                f"[{self.name}] read before a successful load in this context; "
                f"using unconfirmed value"
            )
            warnings.warn(
                f"{self.name} read before load(); value may be stale",
                StaleStateWarning,
                stacklevel=3,
            )
        return self._state.value

    def confirm(self, value: T, now: datetime) -> None:
        self._state = Loaded(value, now)

    def replace_unconfirmed(self, value: T) -> None:
        """Install a value that has not been persisted."""
        if isinstance(self._state, Loaded):
            self._state = Loaded(value, self._state.loaded_at)
        else:
            self._state = Uninitialized(value)

    def begin_context(self) -> None:
        """Start a new execution context: keep the value, drop the confirmation."""
        self._state = Uninitialized(self._state.value)
        self._warned = False
