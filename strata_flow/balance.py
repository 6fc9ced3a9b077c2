from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

import pandas as pd

from .history import AssignmentRecord
from .strata import DEFAULT_SCHEME, StrataKey, StrataScheme

Counts = Tuple[int, ...]


@dataclass(frozen=True)
class BalanceCounts:
    """Arm counts per stratum and overall, ordered like ``groups``.

    Strata that have no assignments yet are absent from ``strata``;
    :meth:`for_key` reports zeros for them.
    """

    groups: Tuple[str, ...]
    strata: Dict[StrataKey, Counts] = field(default_factory=dict)
    totals: Counts = ()

    def for_key(self, key: StrataKey) -> Counts:
        return self.strata.get(key, (0,) * len(self.groups))

    def count(self, group: str, key: Optional[StrataKey] = None) -> int:
        counts = self.totals if key is None else self.for_key(key)
        return counts[self.groups.index(group)]

    def difference(self, key: Optional[StrataKey] = None) -> int:
        """Spread between the most and least represented arm."""
        counts = self.totals if key is None else self.for_key(key)
        return max(counts) - min(counts)

    def under_represented(self, key: Optional[StrataKey] = None) -> str:
        counts = self.totals if key is None else self.for_key(key)
        return self.groups[counts.index(min(counts))]


class BalanceTracker:
    """Derives arm counts from the assignment history and nothing else."""

    def __init__(self, groups: Sequence[str]):
        self.groups = tuple(groups)
        self._strata: Dict[StrataKey, list] = {}
        self._totals = [0] * len(self.groups)

    def _index(self, record: AssignmentRecord) -> int:
        try:
            return self.groups.index(record.group)
        except ValueError as exc:
            raise ValueError(
                f"Subject '{record.subject_id}' has group '{record.group}', "
                f"expected one of {list(self.groups)}"
            ) from exc

    def counts(self, history: Iterable[AssignmentRecord]) -> BalanceCounts:
        """Tally the full history; does not touch the incremental state."""
        strata: Dict[StrataKey, list] = {}
        totals = [0] * len(self.groups)
        for record in history:
            idx = self._index(record)
            strata.setdefault(record.strata, [0] * len(self.groups))[idx] += 1
            totals[idx] += 1
        return self._freeze(strata, totals)

    def refresh(self, history: Iterable[AssignmentRecord]) -> BalanceCounts:
        """Rebuild the incremental state from a full rescan."""
        self._strata = {}
        self._totals = [0] * len(self.groups)
        for record in history:
            self.add(record)
        return self.current

    def add(self, record: AssignmentRecord) -> BalanceCounts:
        idx = self._index(record)
        self._strata.setdefault(record.strata, [0] * len(self.groups))[idx] += 1
        self._totals[idx] += 1
        return self.current

    @property
    def current(self) -> BalanceCounts:
        return self._freeze(self._strata, self._totals)

    def _freeze(self, strata: Dict[StrataKey, list], totals: list) -> BalanceCounts:
        return BalanceCounts(
            groups=self.groups,
            strata={key: tuple(values) for key, values in strata.items()},
            totals=tuple(totals),
        )


def balance_table(
    counts: BalanceCounts,
    scheme: StrataScheme = DEFAULT_SCHEME,
    include_total: bool = True,
) -> pd.DataFrame:
    """Per-stratum arm counts with their spread, one row per stratum."""
    records = []
    keys = scheme.keys() + [k for k in counts.strata if k not in set(scheme.keys())]
    for key in keys:
        row = {"strata": scheme.label(key)}
        row.update(dict(zip(counts.groups, counts.for_key(key))))
        row["delta"] = counts.difference(key)
        records.append(row)
    if include_total:
        row = {"strata": "Total"}
        row.update(dict(zip(counts.groups, counts.totals)))
        row["delta"] = counts.difference()
        records.append(row)
    return pd.DataFrame.from_records(records, columns=["strata", *counts.groups, "delta"])
