"""Tests for the enrollment simulation."""
import pandas as pd
import pytest

from strata_flow.allocate import AllocationConfig
from strata_flow.simulate import SimulationResult, simulate_enrollment


def test_simulation_result_structure():
    result = simulate_enrollment(n_subjects=20, n_simulations=5, base_seed=3)
    assert isinstance(result, SimulationResult)
    assert len(result.runs) == 5
    assert {"final_imbalance", "peak_imbalance", "peak_strata_imbalance"} <= set(result.runs.columns)
    assert result.runs["seed"].tolist() == [3, 4, 5, 6, 7]
    assert set(result.summary_stats) == {
        "final_imbalance",
        "peak_imbalance",
        "final_strata_imbalance",
        "peak_strata_imbalance",
    }


def test_simulation_is_reproducible_with_seed():
    first = simulate_enrollment(n_subjects=30, n_simulations=4, base_seed=100)
    second = simulate_enrollment(n_subjects=30, n_simulations=4, base_seed=100)
    pd.testing.assert_frame_equal(first.runs, second.runs)


@pytest.mark.parametrize("rebalance", [True, False])
def test_stratum_imbalance_bounded_by_half_block(rebalance):
    config = AllocationConfig(block_size=4, rebalance=rebalance)
    result = simulate_enrollment(config, n_subjects=40, n_simulations=10, base_seed=7)
    assert result.summary_stats["peak_strata_imbalance"]["max"] <= 2


def test_single_gender_population_stays_within_two_strata():
    result = simulate_enrollment(n_subjects=24, n_simulations=3, base_seed=1, female_share=1.0)
    assert result.summary_stats["final_imbalance"]["max"] <= 4
    assert result.summary_stats["final_strata_imbalance"]["max"] <= 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_subjects": 0},
        {"n_simulations": 0},
        {"female_share": 1.5},
        {"age_range": (60, 20)},
    ],
)
def test_invalid_simulation_arguments(kwargs):
    with pytest.raises(ValueError):
        simulate_enrollment(**kwargs)
