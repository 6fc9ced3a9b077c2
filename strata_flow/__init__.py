from .allocate import AllocationConfig, AllocationEngine
from .balance import BalanceCounts, BalanceTracker, balance_table
from .blocks import StrataQueue, generate_block
from .errors import ConfigurationError, InvalidInput, PersistenceError, UnknownStrataError
from .history import AssignmentRecord, History, export_excel, load_history, save_record
from .session import RandomizationSession, StorageConfig
from .simulate import SimulationResult, simulate_enrollment
from .strata import (
    DEFAULT_SCHEME,
    CategoricalDimension,
    StrataScheme,
    ThresholdDimension,
    build_strata_scheme,
    derive_key,
)

__all__ = [
    "AllocationConfig",
    "AllocationEngine",
    "AssignmentRecord",
    "BalanceCounts",
    "BalanceTracker",
    "CategoricalDimension",
    "ConfigurationError",
    "DEFAULT_SCHEME",
    "History",
    "InvalidInput",
    "PersistenceError",
    "RandomizationSession",
    "SimulationResult",
    "StorageConfig",
    "StrataQueue",
    "StrataScheme",
    "ThresholdDimension",
    "UnknownStrataError",
    "balance_table",
    "build_strata_scheme",
    "derive_key",
    "export_excel",
    "generate_block",
    "load_history",
    "save_record",
    "simulate_enrollment",
]
__version__ = "0.1.0"
