"""Exceptions raised by the allocation engine and its collaborators."""
from __future__ import annotations


class InvalidInput(ValueError):
    """Subject attributes cannot be mapped to a stratum."""


class ConfigurationError(ValueError):
    """Allocation settings would break the balance guarantee."""


class UnknownStrataError(KeyError):
    """A derived stratum has no pre-initialized queue."""


class PersistenceError(OSError):
    """Writing the assignment log failed; the in-memory history is kept."""
