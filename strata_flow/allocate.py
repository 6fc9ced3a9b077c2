from __future__ import annotations

import logging
import numbers
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .balance import BalanceCounts, BalanceTracker
from .blocks import PRIORITY_MODES, PriorityMode, StrataQueue, validate_block_settings
from .errors import ConfigurationError, UnknownStrataError
from .history import History
from .strata import DEFAULT_SCHEME, StrataKey, StrataScheme

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationConfig:
    """Settings for stratified permuted-block allocation.

    Attributes:
        groups: Arm labels, in the order used to compose blocks
        block_size: Allocations per block; also sets the rebalancing threshold
        rebalance: If False, plain per-stratum block randomization is used
        priority_mode: How a priority block favors the lagging arm
            ("neutral" keeps block composition unchanged, "weighted" adds
            one extra slot for the lagging arm)
        seed: Seed for the random generator shared by all strata queues
    """

    groups: Tuple[str, ...] = ("A", "B")
    block_size: int = 4
    rebalance: bool = True
    priority_mode: PriorityMode = "neutral"
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict | None) -> "AllocationConfig":
        """Build a config from the ``allocation`` section.

        Values may arrive as strings after environment expansion; anything
        that is not a recognisable int or boolean raises ConfigurationError.
        """
        if not raw:
            return cls()
        groups = raw.get("groups", ("A", "B"))
        if isinstance(groups, str) or not isinstance(groups, (list, tuple)):
            raise ConfigurationError(f"groups must be a list, got {groups!r}")
        seed = raw.get("seed")
        return cls(
            groups=tuple(str(g) for g in groups),
            block_size=_parse_int("block_size", raw.get("block_size", 4)),
            rebalance=_parse_bool("rebalance", raw.get("rebalance", True)),
            priority_mode=raw.get("priority_mode", "neutral"),
            seed=None if seed in (None, "") else _parse_int("seed", seed),
        )


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ConfigurationError(f"{name} must be true or false, got {value!r}")


def _parse_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ConfigurationError(f"{name} must be an integer, got {value!r}")


class AllocationEngine:
    """Assigns each new subject to an arm from its stratum's block queue.

    The engine reads ``history`` but never writes to it. Callers append the
    record for each returned group before requesting the next allocation, so
    every decision sees the counts as of the last completed assignment.
    """

    def __init__(
        self,
        config: Optional[AllocationConfig] = None,
        scheme: StrataScheme = DEFAULT_SCHEME,
        history: Optional[History] = None,
    ):
        self.config = config or AllocationConfig()
        self._validate_config()
        self.scheme = scheme
        self.history = history if history is not None else History()
        self.tracker = BalanceTracker(self.config.groups)
        self.rng = np.random.default_rng(self.config.seed)
        self._block_size = self.config.block_size
        self._lock = threading.RLock()
        self.queues: Dict[StrataKey, StrataQueue] = {}
        for key in scheme.keys():
            queue = StrataQueue(
                self.config.groups,
                self._block_size,
                rng=self.rng,
                priority_mode=self.config.priority_mode,
            )
            queue.ensure_non_empty()
            self.queues[key] = queue

    # ------------------------------------------------------------------ #
    # Allocation
    # ------------------------------------------------------------------ #
    def assign_next(self, gender: str, age: int) -> str:
        """Draw the arm for a subject of the given gender and age."""
        return self.assign_attributes(gender=gender, age=age)

    def assign_attributes(self, **attributes) -> str:
        key = self.scheme.derive(**attributes)
        return self.assign_key(key)

    def assign_key(self, key: StrataKey, counts: Optional[BalanceCounts] = None) -> str:
        """Draw the next arm for ``key``.

        When ``counts`` is omitted they are tallied from the full history.
        """
        with self._lock:
            queue = self.queue_for(key)
            if counts is None:
                counts = self.tracker.counts(self.history)
            priority = self.decide_priority(key, counts) if self.config.rebalance else None
            if priority is not None:
                logger.info(
                    "Imbalance reached %d; regenerating %s block with priority %s",
                    self.half_block,
                    self.scheme.label(key),
                    priority,
                )
                queue.regenerate(priority)
            group = queue.assign()
        logger.debug("Assigned %s to stratum %s", group, self.scheme.label(key))
        return group

    def decide_priority(self, key: StrataKey, counts: BalanceCounts) -> Optional[str]:
        """Return the arm to favor, or None when imbalance is below half a block.

        Global imbalance takes precedence over imbalance within the stratum.
        """
        threshold = self.half_block
        if counts.difference() >= threshold:
            return counts.under_represented()
        if counts.difference(key) >= threshold:
            return counts.under_represented(key)
        return None

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #
    @property
    def groups(self) -> Tuple[str, ...]:
        return self.config.groups

    @property
    def block_size(self) -> int:
        return self._block_size

    @block_size.setter
    def block_size(self, value: int) -> None:
        validate_block_settings(self.config.groups, value)
        with self._lock:
            for queue in self.queues.values():
                queue.block_size = value
            self._block_size = value
        logger.info("Block size changed to %d", value)

    @property
    def half_block(self) -> int:
        return self._block_size // 2

    def queue_for(self, key: StrataKey) -> StrataQueue:
        try:
            return self.queues[key]
        except KeyError:
            raise UnknownStrataError(key) from None

    def _validate_config(self) -> None:
        cfg = self.config
        validate_block_settings(cfg.groups, cfg.block_size)
        if cfg.priority_mode not in PRIORITY_MODES:
            raise ConfigurationError(f"Unsupported priority mode: {cfg.priority_mode}")
        if cfg.seed is not None and (
            isinstance(cfg.seed, bool) or not isinstance(cfg.seed, numbers.Integral) or cfg.seed < 0
        ):
            raise ConfigurationError(f"seed must be a non-negative integer or null, got {cfg.seed!r}")
        if not isinstance(cfg.rebalance, bool):
            raise ConfigurationError(f"rebalance must be true or false, got {cfg.rebalance!r}")
