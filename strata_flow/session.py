"""Enrollment workflow around the allocation engine.

A session owns one engine for its lifetime, loads the assignment log at
startup and persists every new assignment after it has been added to the
in-memory history.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from .allocate import AllocationConfig, AllocationEngine
from .balance import BalanceCounts, balance_table
from .errors import PersistenceError
from .history import AssignmentRecord, History, export_excel, load_history, save_record
from .strata import DEFAULT_SCHEME, Dimension, StrataScheme, ThresholdDimension

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    csv_path: Optional[Path] = Path("assignments.csv")
    excel_path: Optional[Path] = Path("assignments.xlsx")

    @classmethod
    def from_dict(cls, raw: dict | None) -> "StorageConfig":
        if not raw:
            return cls()
        csv_path = raw.get("csv_path", "assignments.csv")
        excel_path = raw.get("excel_path", "assignments.xlsx")
        return cls(
            csv_path=Path(csv_path) if csv_path else None,
            excel_path=Path(excel_path) if excel_path else None,
        )


class RandomizationSession:
    def __init__(
        self,
        config: Optional[AllocationConfig] = None,
        scheme: StrataScheme = DEFAULT_SCHEME,
        storage: Optional[StorageConfig] = None,
        history: Optional[History] = None,
    ):
        self.config = config or AllocationConfig()
        self.scheme = scheme
        self.storage = storage if storage is not None else StorageConfig(None, None)
        if history is None:
            history = History()
            if self.storage.csv_path is not None:
                history = load_history(self.storage.csv_path, scheme, self.config.groups)
                logger.info("Loaded %d assignments from %s", len(history), self.storage.csv_path)
        self.history = history
        self._lock = threading.RLock()
        self.engine = AllocationEngine(self.config, scheme=scheme, history=self.history)
        self.counts = self.engine.tracker.refresh(self.history)

    def enroll(
        self,
        subject_id: str,
        gender: str,
        age: int,
        name: Optional[str] = None,
        **attributes,
    ) -> AssignmentRecord:
        """Assign, record and persist one subject.

        Strata dimensions beyond gender and age are passed as keyword
        attributes named after the dimension, e.g. ``site="north"``.
        Concurrent calls on one session run one at a time.

        Raises:
            ValueError: If the subject ID is blank or already assigned
            PersistenceError: If the log could not be written; the record is
                still part of ``history``
        """
        subject_id = str(subject_id).strip()
        if not subject_id:
            raise ValueError("Subject ID must not be blank.")

        with self._lock:
            if subject_id in self.history.subject_ids():
                raise ValueError(f"Subject '{subject_id}' has already been assigned.")

            key = self.scheme.derive(gender=gender, age=age, **attributes)
            group = self.engine.assign_key(key)
            record = AssignmentRecord(
                subject_id=subject_id,
                strata=key,
                group=group,
                name=(name or "").strip() or None,
                gender=gender,
                age=int(age),
            )
            self.history.append(record)
            self.counts = self.engine.tracker.add(record)
            logger.info("Assigned %s [%s] to %s", subject_id, self.scheme.label(key), group)
            self._persist(record)
        return record

    @property
    def extra_dimensions(self) -> List[Dimension]:
        """Strata dimensions other than gender and age."""
        return [dim for dim in self.scheme.dimensions if dim.name not in ("gender", "age")]

    def parse_attributes(self, raw: Dict[str, str]) -> Dict[str, object]:
        """Convert text values for the extra dimensions, e.g. from a CSV row."""
        attributes: Dict[str, object] = {}
        for dim in self.extra_dimensions:
            if dim.name not in raw:
                raise ValueError(f"Missing value for strata dimension '{dim.name}'")
            value = str(raw[dim.name]).strip()
            if isinstance(dim, ThresholdDimension):
                try:
                    attributes[dim.name] = int(value)
                except ValueError as exc:
                    raise ValueError(f"{dim.name} must be an integer, got '{value}'") from exc
            else:
                attributes[dim.name] = value
        return attributes

    def _persist(self, record: AssignmentRecord) -> None:
        try:
            if self.storage.csv_path is not None:
                save_record(self.storage.csv_path, record, self.scheme)
            if self.storage.excel_path is not None:
                export_excel(self.history, self.storage.excel_path, self.scheme)
        except OSError as exc:
            logger.error("Could not persist assignment for %s: %s", record.subject_id, exc)
            raise PersistenceError(
                f"Assignment {record.subject_id} -> {record.group} was not saved: {exc}"
            ) from exc

    def set_block_size(self, block_size: int) -> None:
        self.engine.block_size = block_size

    def balance(self) -> BalanceCounts:
        return self.counts

    def balance_table(self) -> pd.DataFrame:
        return balance_table(self.counts, self.scheme)

    def log_frame(self) -> pd.DataFrame:
        return self.history.to_frame(self.scheme)

    def export(self, path: Union[str, Path]) -> Path:
        return export_excel(self.history, path, self.scheme)
