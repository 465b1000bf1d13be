import math

import numpy as np
import pandas as pd
import pytest

from isdbayes.diagnostics import (
    compute_effective_sample_size,
    compute_split_rhat,
    credible_interval,
    equal_tailed_interval,
    highest_density_interval,
    max_rhat,
    summarize_chains,
)


def test_rhat_near_one_for_iid_chains():
    chains = np.random.default_rng(0).normal(size=(4, 2000))
    assert compute_split_rhat(chains) == pytest.approx(1.0, abs=0.01)


def test_rhat_flags_disagreeing_chains():
    rng = np.random.default_rng(1)
    chains = rng.normal(size=(4, 500)) + np.array([0.0, 0.0, 3.0, 3.0])[:, None]
    assert compute_split_rhat(chains) > 1.5


def test_rhat_flags_drift_within_single_chain():
    trend = np.linspace(0.0, 10.0, 1000)[None, :]
    chains = trend + np.random.default_rng(2).normal(scale=0.1, size=(1, 1000))
    assert compute_split_rhat(chains) > 1.1


def test_rhat_undefined_for_short_chains():
    assert math.isnan(compute_split_rhat(np.zeros((2, 3))))


def test_ess_iid_close_to_draws():
    chains = np.random.default_rng(3).normal(size=(4, 1000))
    ess = compute_effective_sample_size(chains)
    assert 2500 < ess < 6000


def test_ess_drops_with_autocorrelation():
    rng = np.random.default_rng(4)
    chains = np.zeros((4, 2000))
    for t in range(1, 2000):
        chains[:, t] = 0.95 * chains[:, t - 1] + rng.normal(size=4)
    assert compute_effective_sample_size(chains) < 800


def test_intervals():
    samples = np.random.default_rng(5).normal(size=200000)
    lo, hi = equal_tailed_interval(samples, 0.95)
    assert lo == pytest.approx(-1.96, abs=0.03)
    assert hi == pytest.approx(1.96, abs=0.03)
    hlo, hhi = highest_density_interval(samples, 0.95)
    assert hlo == pytest.approx(-1.96, abs=0.03)
    assert hhi == pytest.approx(1.96, abs=0.03)


def test_hdi_is_narrower_for_skewed_draws():
    samples = np.random.default_rng(6).exponential(size=50000)
    elo, ehi = credible_interval(samples, 0.9, "eti")
    hlo, hhi = credible_interval(samples, 0.9, "hdi")
    assert hhi - hlo < ehi - elo
    assert hlo == pytest.approx(0.0, abs=0.01)


def test_credible_interval_rejects_bad_input():
    with pytest.raises(ValueError):
        credible_interval(np.arange(10.0), 1.5)
    with pytest.raises(ValueError):
        credible_interval(np.arange(10.0), 0.9, "mode")


def test_summarize_chains_and_max_rhat():
    rng = np.random.default_rng(7)
    summary = summarize_chains([("a", rng.normal(-1.8, 0.05, size=(4, 500))), ("b", rng.normal(size=(4, 500)))])
    assert list(summary["parameter"]) == ["a", "b"]
    row = summary.set_index("parameter").loc["a"]
    assert row["median"] == pytest.approx(-1.8, abs=0.01)
    assert row["lower"] < -1.8 < row["upper"]
    assert max_rhat(summary) < 1.02
    assert max_rhat(summary, ["a"]) == pytest.approx(row["rhat"])


def test_max_rhat_treats_nan_as_unconverged():
    summary = pd.DataFrame({"parameter": ["a", "b"], "rhat": [1.001, float("nan")]})
    assert max_rhat(summary) == math.inf
