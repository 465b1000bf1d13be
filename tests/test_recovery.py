import numpy as np
import pandas as pd
import pytest

from isdbayes.data import prepare_model_data
from isdbayes.errors import ConfigurationError, ConvergenceFailure
from isdbayes.experiments.registry import build_scenario_config
from isdbayes.models import ModelSpec, PriorSpec
from isdbayes.recovery import (
    STATUS_FAILED,
    STATUS_NOT_CONVERGED,
    STATUS_OK,
    STATUS_TIMEOUT,
    RecoveryConfig,
    TrueParameters,
    run_recovery,
    run_trial,
    select_sampler,
    trial_seeds,
)
from isdbayes.sampler import MetropolisSampler, PosteriorDraws, SamplerConfig
from isdbayes.pymc_backend import PyMCSampler
from isdbayes.simulate import aggregate_counts, rplb


def test_intercept_only_end_to_end():
    x = rplb(1000, -1.8, 1.0, 1000.0, np.random.default_rng(3))
    agg = aggregate_counts(x, precision=0.001)
    data = prepare_model_data(agg, group_cols=None)
    cfg = SamplerConfig(chains=4, warmup=1000, draws=2000)
    draws = MetropolisSampler().sample(ModelSpec("intercept"), data, PriorSpec(), cfg, seed=2024)
    row = draws.summary().set_index("parameter").loc["a"]
    assert abs(row["median"] - (-1.8)) < 0.05
    assert row["rhat"] <= 1.01


@pytest.mark.parametrize(
    "kind, engine, expected",
    [
        ("intercept", "auto", MetropolisSampler),
        ("varying_intercept", "auto", PyMCSampler),
        ("regression", "auto", PyMCSampler),
        ("varying_intercept", "metropolis", MetropolisSampler),
        ("intercept", "nuts", PyMCSampler),
    ],
)
def test_select_sampler_routes_grouped_models_to_nuts(kind, engine, expected):
    assert isinstance(select_sampler(ModelSpec(kind), SamplerConfig(engine=engine)), expected)


def test_intercept_only_trials():
    cfg = RecoveryConfig(
        scenario_name="intercept_test",
        n_trials=3,
        n_per_group=1000,
        truth=TrueParameters(a=-1.8),
        sampler=SamplerConfig(chains=4, warmup=1000, draws=1500),
        base_seed=11,
    )
    summary = run_recovery(cfg)
    assert summary.status_counts[STATUS_OK] == 3
    assert list(summary.trials["seed"]) == trial_seeds(11, 3)
    agg = summary.aggregates.set_index("parameter").loc["a"]
    assert agg["n_converged"] == 3
    assert abs(agg["bias_mean"]) < 0.05
    for p in summary.parameters.itertuples():
        assert abs(p.median - (-1.8)) < 0.1
        assert p.rhat <= 1.01


def test_trials_are_deterministic_by_seed():
    cfg = RecoveryConfig(
        n_trials=2,
        n_per_group=200,
        sampler=SamplerConfig(chains=2, warmup=300, draws=300),
        rhat_threshold=1.1,
        base_seed=5,
    )
    first = run_recovery(cfg)
    second = run_recovery(cfg)
    pd.testing.assert_frame_equal(first.parameters, second.parameters)
    assert trial_seeds(5, 2) != trial_seeds(6, 2)


class _DisagreeingChainsSampler:
    """Two pairs of chains centred 0.2 apart."""

    def sample(self, model, data, priors, config, seed):
        rng = np.random.default_rng(seed)
        centres = np.array([-1.9, -1.9, -1.7, -1.7])[:, None, None]
        samples = centres + 0.01 * rng.normal(size=(4, 200, 1))
        return PosteriorDraws.from_array(samples, model.parameter_names(data.n_groups))


def test_unconverged_trials_are_excluded_from_aggregates():
    cfg = RecoveryConfig(n_trials=2, n_per_group=200, base_seed=3)
    summary = run_recovery(cfg, sampler=_DisagreeingChainsSampler())
    assert summary.status_counts[STATUS_NOT_CONVERGED] == 2
    agg = summary.aggregates.set_index("parameter").loc["a"]
    assert agg["n_converged"] == 0
    assert np.isnan(agg["coverage"])
    # Per-trial rows are still reported.
    assert len(summary.parameters) == 2


def test_fail_fast_raises_convergence_failure():
    cfg = RecoveryConfig(n_trials=1, n_per_group=200, fail_fast=True)
    with pytest.raises(ConvergenceFailure):
        run_trial(cfg, 0, 123, sampler=_DisagreeingChainsSampler())


def test_timeout_is_recorded_not_raised():
    cfg = RecoveryConfig(
        n_trials=1,
        n_per_group=200,
        sampler=SamplerConfig(chains=1, warmup=500, draws=500, time_budget_s=1e-9),
    )
    outcome = run_trial(cfg, 0, 77)
    assert outcome.status == STATUS_TIMEOUT
    assert not outcome.converged
    assert "SMP-TIMEOUT" in outcome.error


def test_degenerate_simulation_is_marked_failed():
    # A precision coarser than the support rounds every draw to zero.
    cfg = RecoveryConfig(n_trials=1, n_per_group=50, xmin=1.0, xmax=1.2, precision=10.0)
    outcome = run_trial(cfg, 0, 1)
    assert outcome.status == STATUS_FAILED
    assert outcome.error is not None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_trials": 0},
        {"level": 1.0},
        {"interval_kind": "mode"},
        {"rhat_threshold": 0.9},
        {"truth": TrueParameters(a=-1.5, sigma_group=0.3), "n_groups": 1},
        {"truth": TrueParameters(a=-1.5, beta=-0.1, sigma_group=0.3), "n_groups": 2},
    ],
)
def test_recovery_config_validation(kwargs):
    with pytest.raises(ConfigurationError):
        RecoveryConfig(**kwargs)


@pytest.mark.slow
def test_regression_coverage():
    cfg = build_scenario_config(
        "REGRESSION",
        {
            "n_trials": 20,
            "sampler": {"chains": 4, "warmup": 1000, "draws": 1000, "time_budget_s": None},
        },
    )
    assert cfg.truth == TrueParameters(a=-1.5, beta=-0.1, sigma_group=0.3)
    assert cfg.n_groups == 3
    summary = run_recovery(cfg)
    assert summary.status_counts[STATUS_OK] >= 18, summary.status_counts
    for name in ("a", "beta", "sigma_group"):
        assert summary.n_covered(name) >= 18, summary.aggregates.to_string()
