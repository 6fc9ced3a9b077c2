import pytest

from strata_flow.balance import BalanceCounts, BalanceTracker, balance_table
from strata_flow.history import AssignmentRecord, History

YOUNG_MEN = ("Male", "<55")
OLD_WOMEN = ("Female", "≥55")


def _record(subject_id, strata, group):
    return AssignmentRecord(subject_id=subject_id, strata=strata, group=group)


@pytest.fixture
def history():
    return History(
        [
            _record("S1", YOUNG_MEN, "A"),
            _record("S2", YOUNG_MEN, "A"),
            _record("S3", OLD_WOMEN, "B"),
            _record("S4", YOUNG_MEN, "B"),
            _record("S5", OLD_WOMEN, "A"),
        ]
    )


def test_counts_by_stratum_and_total(history):
    counts = BalanceTracker(("A", "B")).counts(history)
    assert counts.strata == {YOUNG_MEN: (2, 1), OLD_WOMEN: (1, 1)}
    assert counts.totals == (3, 2)
    assert counts.for_key(("Female", "<55")) == (0, 0)
    assert counts.count("A") == 3
    assert counts.count("B", YOUNG_MEN) == 1


def test_counts_are_idempotent(history):
    tracker = BalanceTracker(("A", "B"))
    assert tracker.counts(history) == tracker.counts(history)


def test_incremental_counts_match_rescan(history):
    tracker = BalanceTracker(("A", "B"))
    tracker.refresh(history)

    new_record = _record("S6", OLD_WOMEN, "B")
    history.append(new_record)
    incremental = tracker.add(new_record)

    assert incremental == BalanceTracker(("A", "B")).counts(history)
    assert incremental.totals == (3, 3)


def test_empty_history_counts():
    counts = BalanceTracker(("A", "B")).counts(History())
    assert counts.strata == {}
    assert counts.totals == (0, 0)
    assert counts.difference() == 0


def test_unknown_group_is_rejected():
    tracker = BalanceTracker(("A", "B"))
    with pytest.raises(ValueError):
        tracker.counts([_record("S1", YOUNG_MEN, "C")])


def test_difference_and_under_represented_arm():
    counts = BalanceCounts(groups=("A", "B"), strata={OLD_WOMEN: (0, 2)}, totals=(6, 2))
    assert counts.difference() == 4
    assert counts.under_represented() == "B"
    assert counts.difference(OLD_WOMEN) == 2
    assert counts.under_represented(OLD_WOMEN) == "A"


def test_balance_table_lists_every_stratum(history):
    counts = BalanceTracker(("A", "B")).counts(history)
    table = balance_table(counts)
    assert list(table.columns) == ["strata", "A", "B", "delta"]
    assert len(table) == 5
    row = table.set_index("strata").loc["Male / <55"]
    assert (row["A"], row["B"], row["delta"]) == (2, 1, 1)
    total = table.set_index("strata").loc["Total"]
    assert (total["A"], total["B"], total["delta"]) == (3, 2, 1)
