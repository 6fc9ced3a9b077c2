"""Assignment records, the append-only history, and its on-disk formats.

The CSV log carries a header row and one row per assignment in
chronological order. The spreadsheet is a full mirror rewritten after every
assignment.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .errors import InvalidInput
from .strata import DEFAULT_SCHEME, StrataKey, StrataScheme

COLUMNS = ["Subject ID", "Name", "Gender", "Age", "Strata", "Group"]
REQUIRED_COLUMNS = ["Subject ID", "Strata", "Group"]


@dataclass(frozen=True)
class AssignmentRecord:
    subject_id: str
    strata: StrataKey
    group: str
    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None

    def to_row(self, scheme: StrataScheme = DEFAULT_SCHEME) -> dict:
        return {
            "Subject ID": self.subject_id,
            "Name": self.name or "",
            "Gender": self.gender or "",
            "Age": "" if self.age is None else self.age,
            "Strata": scheme.label(self.strata),
            "Group": self.group,
        }


class History:
    """Append-only sequence of assignment records."""

    def __init__(self, records: Sequence[AssignmentRecord] = ()):
        self._records: List[AssignmentRecord] = list(records)

    def append(self, record: AssignmentRecord) -> None:
        if not isinstance(record, AssignmentRecord):
            raise TypeError(f"Expected AssignmentRecord, got {type(record).__name__}")
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AssignmentRecord]:
        return iter(tuple(self._records))

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._records[index])
        return self._records[index]

    @property
    def records(self) -> Tuple[AssignmentRecord, ...]:
        return tuple(self._records)

    def subject_ids(self) -> set:
        return {record.subject_id for record in self._records}

    def to_frame(self, scheme: StrataScheme = DEFAULT_SCHEME) -> pd.DataFrame:
        rows = [record.to_row(scheme) for record in self._records]
        return pd.DataFrame(rows, columns=COLUMNS)


def _parse_age(raw: str, row_number: int) -> Optional[int]:
    raw = str(raw).strip()
    if not raw:
        return None
    try:
        age = int(float(raw))
    except ValueError as exc:
        raise ValueError(f"Row {row_number}: invalid age '{raw}'") from exc
    if age < 0:
        raise ValueError(f"Row {row_number}: age must be non-negative, got {age}")
    return age


def load_history(
    path: Union[str, Path],
    scheme: StrataScheme = DEFAULT_SCHEME,
    groups: Optional[Sequence[str]] = None,
) -> History:
    """Load the CSV log, returning an empty history when the file is missing.

    Files written by the older three-column format (``Subject ID, Strata,
    Group``) are accepted; name, gender and age are then left empty.
    """
    path = Path(path)
    if not path.exists():
        return History()

    df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8")
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing required columns: {', '.join(missing)}")

    history = History()
    for offset, row in enumerate(df.to_dict("records")):
        row_number = offset + 2  # header is line 1
        group = row["Group"].strip()
        if groups is not None and group not in groups:
            raise ValueError(f"Row {row_number}: unknown group '{group}'")
        try:
            strata = scheme.parse_label(row["Strata"])
        except InvalidInput as exc:
            raise ValueError(f"Row {row_number}: {exc}") from exc
        history.append(
            AssignmentRecord(
                subject_id=row["Subject ID"].strip(),
                strata=strata,
                group=group,
                name=row.get("Name", "").strip() or None,
                gender=row.get("Gender", "").strip() or None,
                age=_parse_age(row.get("Age", ""), row_number),
            )
        )
    return history


def save_record(
    path: Union[str, Path],
    record: AssignmentRecord,
    scheme: StrataScheme = DEFAULT_SCHEME,
) -> None:
    """Append one record to the CSV log, writing the header on first use."""
    path = Path(path)
    write_header = not path.exists() or path.stat().st_size == 0
    columns = COLUMNS
    if write_header:
        path.parent.mkdir(parents=True, exist_ok=True)
    else:
        # keep appending in the layout the file was created with
        columns = list(pd.read_csv(path, nrows=0, encoding="utf-8").columns)
    pd.DataFrame([record.to_row(scheme)], columns=columns).to_csv(
        path, mode="a", header=write_header, index=False, encoding="utf-8"
    )


def export_excel(
    history: History,
    path: Union[str, Path],
    scheme: StrataScheme = DEFAULT_SCHEME,
) -> Path:
    path = Path(path)
    history.to_frame(scheme).to_excel(path, index=False, sheet_name="Assignments")
    return path
