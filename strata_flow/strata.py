from __future__ import annotations

import itertools
import numbers
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import ConfigurationError, InvalidInput


StrataKey = Tuple[str, ...]

GENDERS: Tuple[str, ...] = ("Male", "Female")
AGE_THRESHOLD = 55
LABEL_SEPARATOR = " / "


@dataclass(frozen=True)
class CategoricalDimension:
    """A stratification factor with a closed set of levels."""

    name: str
    levels: Tuple[str, ...]

    def derive(self, value) -> str:
        if value not in self.levels:
            raise InvalidInput(
                f"Unknown {self.name} '{value}'. Expected one of: {', '.join(self.levels)}"
            )
        return value

    def labels(self) -> Tuple[str, ...]:
        return self.levels


@dataclass(frozen=True)
class ThresholdDimension:
    """A numeric factor banded by cut-points.

    A value equal to a cut-point belongs to the upper band, so with the
    single cut-point 55 the bands are ``<55`` and ``≥55``.
    """

    name: str
    cutpoints: Tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.cutpoints:
            raise ConfigurationError(f"Dimension '{self.name}' needs at least one cut-point.")
        if list(self.cutpoints) != sorted(set(self.cutpoints)):
            raise ConfigurationError(f"Cut-points for '{self.name}' must be strictly increasing.")

    def derive(self, value) -> str:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise InvalidInput(f"{self.name} must be an integer, got {value!r}")
        if value < 0:
            raise InvalidInput(f"{self.name} must be non-negative, got {value}")
        for cut in self.cutpoints:
            if value < cut:
                return self._band_below(cut)
        return f"≥{self.cutpoints[-1]}"

    def _band_below(self, cut: int) -> str:
        idx = self.cutpoints.index(cut)
        if idx == 0:
            return f"<{cut}"
        return f"{self.cutpoints[idx - 1]}-{cut - 1}"

    def labels(self) -> Tuple[str, ...]:
        bands = [self._band_below(cut) for cut in self.cutpoints]
        bands.append(f"≥{self.cutpoints[-1]}")
        return tuple(bands)


Dimension = Union[CategoricalDimension, ThresholdDimension]


@dataclass(frozen=True)
class StrataScheme:
    """Ordered stratification dimensions; a key holds one label per dimension."""

    dimensions: Tuple[Dimension, ...]

    def __post_init__(self) -> None:
        names = [dim.name for dim in self.dimensions]
        if not names:
            raise ConfigurationError("A strata scheme needs at least one dimension.")
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate strata dimension names: {names}")

    @property
    def names(self) -> List[str]:
        return [dim.name for dim in self.dimensions]

    def dimension(self, name: str) -> Dimension:
        for dim in self.dimensions:
            if dim.name == name:
                return dim
        raise ConfigurationError(f"No strata dimension named '{name}'")

    def derive(self, **attributes) -> StrataKey:
        missing = [name for name in self.names if name not in attributes]
        if missing:
            raise InvalidInput(f"Missing strata attributes: {', '.join(missing)}")
        return tuple(dim.derive(attributes[dim.name]) for dim in self.dimensions)

    def keys(self) -> List[StrataKey]:
        return list(itertools.product(*(dim.labels() for dim in self.dimensions)))

    def label(self, key: StrataKey) -> str:
        return LABEL_SEPARATOR.join(key)

    def parse_label(self, text: str) -> StrataKey:
        parts = tuple(part.strip() for part in str(text).split("/"))
        if parts not in set(self.keys()):
            raise InvalidInput(f"Unknown strata label '{text}'")
        return parts


DEFAULT_SCHEME = StrataScheme(
    dimensions=(
        CategoricalDimension("gender", GENDERS),
        ThresholdDimension("age", (AGE_THRESHOLD,)),
    )
)


def derive_key(gender: str, age: int) -> StrataKey:
    """Map gender and age to the (gender, age band) stratum."""
    return DEFAULT_SCHEME.derive(gender=gender, age=age)


def build_strata_scheme(raw: Optional[Iterable[Dict]]) -> StrataScheme:
    """Build a scheme from the ``strata`` section of the project config."""
    if not raw:
        return DEFAULT_SCHEME
    dims: List[Dimension] = []
    for entry in raw:
        name = entry["name"]
        if "levels" in entry:
            dims.append(CategoricalDimension(name, tuple(str(v) for v in entry["levels"])))
        elif "cutpoints" in entry:
            cutpoints = tuple(int(v) for v in entry["cutpoints"])
            if name == "age" and cutpoints != (AGE_THRESHOLD,):
                raise ConfigurationError(
                    f"The age dimension is fixed at cutpoints [{AGE_THRESHOLD}], got {list(cutpoints)}; "
                    "use another dimension name for a different split."
                )
            dims.append(ThresholdDimension(name, cutpoints))
        else:
            raise ConfigurationError(f"Strata dimension '{name}' needs 'levels' or 'cutpoints'.")
    return StrataScheme(dimensions=tuple(dims))
