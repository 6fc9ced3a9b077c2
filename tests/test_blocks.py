from collections import Counter

import numpy as np
import pytest

from strata_flow.blocks import StrataQueue, generate_block
from strata_flow.errors import ConfigurationError

GROUPS = ("A", "B")


@pytest.mark.parametrize("block_size", [2, 4, 6, 8])
def test_even_blocks_are_balanced(block_size):
    block = generate_block(GROUPS, block_size, rng=np.random.default_rng(1))
    assert len(block) == block_size
    assert Counter(block) == {"A": block_size // 2, "B": block_size // 2}


def test_odd_block_gives_extra_slot_to_first_group():
    block = generate_block(GROUPS, 5, rng=np.random.default_rng(2))
    assert Counter(block) == {"A": 3, "B": 2}


def test_neutral_priority_keeps_composition():
    for seed in range(20):
        block = generate_block(GROUPS, 4, priority="B", rng=np.random.default_rng(seed))
        assert Counter(block) == {"A": 2, "B": 2}


def test_weighted_priority_adds_one_slot():
    block = generate_block(
        GROUPS, 4, priority="B", rng=np.random.default_rng(3), priority_mode="weighted"
    )
    assert Counter(block) == {"A": 1, "B": 3}


def test_same_seed_gives_same_block():
    first = generate_block(GROUPS, 8, rng=np.random.default_rng(42))
    second = generate_block(GROUPS, 8, rng=np.random.default_rng(42))
    assert first == second


@pytest.mark.parametrize(
    "groups, block_size",
    [((), 4), (GROUPS, 0), (GROUPS, -2), (GROUPS, 1), (("A", "A"), 4)],
)
def test_invalid_block_settings(groups, block_size):
    with pytest.raises(ConfigurationError):
        generate_block(groups, block_size)


def test_unknown_priority_group():
    with pytest.raises(ConfigurationError):
        generate_block(GROUPS, 4, priority="C")


def test_queue_regenerates_only_when_empty():
    queue = StrataQueue(GROUPS, 4, rng=np.random.default_rng(5))
    assert queue.state == "EMPTY"
    assert len(queue) == 0

    queue.assign()
    assert queue.state == "LOADED"
    assert len(queue) == 3

    for expected in (2, 1, 0):
        queue.assign()
        assert len(queue) == expected
    assert queue.state == "EMPTY"

    queue.assign()
    assert len(queue) == 3
    assert queue.blocks_generated == 2


def test_unbiased_draws_balance_every_block():
    queue = StrataQueue(GROUPS, 4, rng=np.random.default_rng(9))
    draws = [queue.assign() for _ in range(40)]
    for start in range(0, 40, 4):
        assert Counter(draws[start:start + 4]) == {"A": 2, "B": 2}


def test_block_size_change_applies_to_next_block():
    queue = StrataQueue(GROUPS, 4, rng=np.random.default_rng(11))
    queue.assign()
    pending = queue.pending()

    queue.block_size = 6
    assert queue.pending() == pending

    for _ in range(3):
        queue.assign()
    queue.assign()
    assert len(queue) == 5


def test_rejected_block_size_keeps_previous_value():
    queue = StrataQueue(GROUPS, 4)
    with pytest.raises(ConfigurationError):
        queue.block_size = 1
    assert queue.block_size == 4


def test_regenerate_appends_behind_pending_labels():
    queue = StrataQueue(GROUPS, 4, rng=np.random.default_rng(13))
    queue.ensure_non_empty()
    before = queue.pending()

    queue.regenerate("A")
    assert len(queue) == 8
    assert queue.pending()[:4] == before
