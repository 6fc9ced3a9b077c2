from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Literal, Optional, Sequence

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PriorityMode = Literal["neutral", "weighted"]
PRIORITY_MODES = ("neutral", "weighted")


def validate_block_settings(groups: Sequence[str], block_size: int) -> None:
    if not groups:
        raise ConfigurationError("At least one group must be provided.")
    if len(set(groups)) != len(groups):
        raise ConfigurationError(f"Groups must be unique, got {list(groups)}")
    if isinstance(block_size, bool) or not isinstance(block_size, int):
        raise ConfigurationError(f"Block size must be an integer, got {block_size!r}")
    if block_size <= 0:
        raise ConfigurationError(f"Block size must be positive, got {block_size}")
    if block_size < len(groups):
        raise ConfigurationError(
            f"Block size {block_size} is smaller than the number of groups ({len(groups)})."
        )


def generate_block(
    groups: Sequence[str],
    block_size: int,
    priority: Optional[str] = None,
    rng: Optional[np.random.Generator] = None,
    priority_mode: PriorityMode = "neutral",
) -> List[str]:
    """Build one permuted block of group labels.

    Composition cycles through ``groups`` in order until ``block_size`` labels
    are collected. When ``block_size`` is not a multiple of ``len(groups)`` the
    earliest groups receive the extra slots, e.g. size 5 over (A, B) always
    holds three A and two B.

    With ``priority_mode="neutral"`` a priority group is sorted to the front
    and the block is then shuffled, so the delivered block is distributed
    exactly like an unbiased one. ``priority_mode="weighted"`` replaces one
    non-priority slot with the priority group before shuffling, which raises
    its frequency in the block by one.
    """
    validate_block_settings(groups, block_size)
    if priority is not None and priority not in groups:
        raise ConfigurationError(f"Priority group '{priority}' is not one of {list(groups)}")
    if priority_mode not in PRIORITY_MODES:
        raise ConfigurationError(f"Unsupported priority mode: {priority_mode}")

    rng = rng if rng is not None else np.random.default_rng()
    block = [groups[i % len(groups)] for i in range(block_size)]

    if priority is not None:
        if priority_mode == "weighted":
            for idx, label in enumerate(block):
                if label != priority:
                    block[idx] = priority
                    break
        else:
            block.sort(key=lambda label: label != priority)

    order = rng.permutation(block_size)
    return [block[i] for i in order]


class StrataQueue:
    """FIFO of pending group labels for one stratum."""

    def __init__(
        self,
        groups: Sequence[str],
        block_size: int,
        rng: Optional[np.random.Generator] = None,
        priority_mode: PriorityMode = "neutral",
    ):
        validate_block_settings(groups, block_size)
        self.groups = tuple(groups)
        self._block_size = block_size
        self.rng = rng if rng is not None else np.random.default_rng()
        self.priority_mode = priority_mode
        self._buffer: Deque[str] = deque()
        self.blocks_generated = 0

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def state(self) -> str:
        return "LOADED" if self._buffer else "EMPTY"

    @property
    def block_size(self) -> int:
        return self._block_size

    @block_size.setter
    def block_size(self, value: int) -> None:
        # Only blocks generated after the change use the new size.
        validate_block_settings(self.groups, value)
        self._block_size = value

    def pending(self) -> List[str]:
        return list(self._buffer)

    def regenerate(self, priority: Optional[str] = None) -> List[str]:
        """Append a freshly generated block to the tail of the queue."""
        block = generate_block(
            self.groups,
            self._block_size,
            priority=priority,
            rng=self.rng,
            priority_mode=self.priority_mode,
        )
        self._buffer.extend(block)
        self.blocks_generated += 1
        logger.debug(
            "Generated block #%d (size=%d, priority=%s)",
            self.blocks_generated,
            self._block_size,
            priority,
        )
        return block

    def ensure_non_empty(self, priority: Optional[str] = None) -> None:
        if not self._buffer:
            self.regenerate(priority)

    def assign(self, priority: Optional[str] = None) -> str:
        self.ensure_non_empty(priority)
        return self._buffer.popleft()
