from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .allocate import AllocationConfig
from .session import RandomizationSession
from .strata import AGE_THRESHOLD, GENDERS


@dataclass
class SimulationResult:
    """Imbalance observed across repeated simulated enrollments.

    Attributes:
        runs: One row per simulation with final and peak imbalance
        summary_stats: Mean and worst case of each imbalance measure
        warnings: Messages for runs whose final imbalance exceeded a block
    """

    runs: pd.DataFrame
    summary_stats: Dict
    warnings: List[str] = field(default_factory=list)


def _covariate_seed(seed: Optional[int]) -> Optional[List[int]]:
    return None if seed is None else [seed, 1]


def simulate_enrollment(
    config: Optional[AllocationConfig] = None,
    n_subjects: int = 100,
    n_simulations: int = 200,
    base_seed: Optional[int] = None,
    female_share: float = 0.5,
    age_range: Tuple[int, int] = (18, 90),
    verbose: bool = False,
) -> SimulationResult:
    """Run the allocation engine over synthetic enrollment streams.

    Each simulation draws ``n_subjects`` subjects with random gender and age,
    enrolls them one at a time and records how far the arms drifted apart,
    overall and within the worst stratum.

    Args:
        config: Allocation settings; its seed is replaced per simulation
        n_subjects: Subjects enrolled per simulation
        n_simulations: Number of independent simulations
        base_seed: Simulation ``i`` uses seed ``base_seed + i``
        female_share: Probability that a simulated subject is female
        age_range: Inclusive bounds for uniformly drawn ages
        verbose: If True, print progress

    Returns:
        SimulationResult with per-run imbalance and summary statistics
    """
    config = config or AllocationConfig()
    if n_subjects < 1 or n_simulations < 1:
        raise ValueError("n_subjects and n_simulations must be at least 1.")
    if not 0.0 <= female_share <= 1.0:
        raise ValueError(f"female_share must be between 0 and 1, got {female_share}")
    low, high = age_range
    if low < 0 or high < low:
        raise ValueError(f"Invalid age range: {age_range}")

    records = []
    for i in range(n_simulations):
        seed = None if base_seed is None else base_seed + i
        session = RandomizationSession(dataclasses.replace(config, seed=seed))
        rng = np.random.default_rng(_covariate_seed(seed))
        genders = rng.choice(GENDERS, size=n_subjects, p=[1 - female_share, female_share])
        ages = rng.integers(low, high + 1, size=n_subjects)

        peak_total = 0
        peak_strata = 0
        for n, (gender, age) in enumerate(zip(genders, ages)):
            record = session.enroll(f"sim{i}-{n}", str(gender), int(age))
            counts = session.counts
            peak_total = max(peak_total, counts.difference())
            peak_strata = max(peak_strata, counts.difference(record.strata))

        counts = session.counts
        records.append(
            {
                "simulation": i,
                "seed": seed,
                "final_imbalance": counts.difference(),
                "peak_imbalance": peak_total,
                "final_strata_imbalance": max(counts.difference(k) for k in counts.strata),
                "peak_strata_imbalance": peak_strata,
                "share_older": float(np.mean(ages >= AGE_THRESHOLD)),
            }
        )
        if verbose and (i + 1) % max(1, n_simulations // 10) == 0:
            print(f"  Completed {i + 1}/{n_simulations} simulations")

    runs = pd.DataFrame.from_records(records)
    summary_stats = {}
    for column in ("final_imbalance", "peak_imbalance", "final_strata_imbalance", "peak_strata_imbalance"):
        summary_stats[column] = {
            "mean": float(runs[column].mean()),
            "max": int(runs[column].max()),
        }

    warnings_list = []
    over = runs[runs["final_imbalance"] > config.block_size]
    if not over.empty:
        warnings_list.append(
            f"{len(over)} of {n_simulations} simulations ended with an overall imbalance "
            f"larger than one block ({config.block_size})"
        )

    if verbose:
        print("\nSimulation summary:")
        for column, stats in summary_stats.items():
            print(f"  {column}: mean={stats['mean']:.2f}, max={stats['max']}")

    return SimulationResult(runs=runs, summary_stats=summary_stats, warnings=warnings_list)
