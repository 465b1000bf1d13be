import logging

import numpy as np
import pytest

from isdbayes.data import prepare_model_data
from isdbayes.errors import ConfigurationError, SamplerTimeout
from isdbayes.models import ModelSpec, PriorSpec
from isdbayes.sampler import MetropolisSampler, PosteriorDraws, SamplerConfig
from isdbayes.simulate import simulate_groups


def _intercept_data(seed=0, n=1000, lam=-1.8):
    sim = simulate_groups(np.random.default_rng(seed), 1, n, lam, 1.0, 1000.0, precision=0.001)
    return prepare_model_data(sim.data)


def test_metropolis_recovers_intercept():
    data = _intercept_data()
    cfg = SamplerConfig(chains=4, warmup=1000, draws=2000)
    draws = MetropolisSampler().sample(ModelSpec("intercept"), data, PriorSpec(), cfg, seed=42)
    summary = draws.summary().set_index("parameter")
    assert summary.loc["a", "median"] == pytest.approx(-1.8, abs=0.1)
    assert summary.loc["a", "rhat"] < 1.01
    assert summary.loc["a", "ess"] > 400
    for stats in draws.sampler_stats["chains"]:
        assert 0.1 < stats["accept_rate"] < 0.7


def test_metropolis_is_deterministic_by_seed():
    data = _intercept_data(n=200)
    cfg = SamplerConfig(chains=2, warmup=200, draws=100)
    first = MetropolisSampler().sample(ModelSpec("intercept"), data, PriorSpec(), cfg, seed=9)
    second = MetropolisSampler().sample(ModelSpec("intercept"), data, PriorSpec(), cfg, seed=9)
    assert np.array_equal(first.values("a"), second.values("a"))


def test_varying_intercept_draws_layout(caplog):
    sim = simulate_groups(np.random.default_rng(3), 3, 300, -1.5, 1.0, 1000.0, sigma_group=0.3, precision=0.001)
    data = prepare_model_data(sim.data)
    cfg = SamplerConfig(chains=2, warmup=300, draws=200)
    with caplog.at_level(logging.WARNING, logger="isdbayes.sampler"):
        draws = MetropolisSampler().sample(ModelSpec("varying_intercept"), data, PriorSpec(), cfg, seed=1)
    assert "use the NUTS engine" in caplog.text
    assert draws.parameter_names == ["a", "sigma_group", "raw_group[0]", "raw_group[1]", "raw_group[2]"]
    assert list(draws.frame.columns[:3]) == [".chain", ".iteration", ".draw"]
    assert draws.n_chains == 2
    assert draws.n_draws == 200
    assert draws.chains("a").shape == (2, 200)
    assert (draws.values("sigma_group") > 0.0).all()
    assert draws.frame[".draw"].is_unique


def test_sampler_timeout():
    data = _intercept_data(n=200)
    cfg = SamplerConfig(chains=1, warmup=500, draws=500, time_budget_s=1e-9)
    with pytest.raises(SamplerTimeout) as excinfo:
        MetropolisSampler().sample(ModelSpec("intercept"), data, PriorSpec(), cfg, seed=0)
    assert excinfo.value.error_id == "SMP-TIMEOUT"


@pytest.mark.parametrize("kwargs", [{"chains": 0}, {"draws": 0}, {"warmup": -1}, {"time_budget_s": 0.0}, {"engine": "gibbs"}])
def test_sampler_config_validation(kwargs):
    with pytest.raises(ConfigurationError):
        SamplerConfig(**kwargs)


def test_posterior_draws_from_array_shape_check():
    with pytest.raises(ValueError):
        PosteriorDraws.from_array(np.zeros((2, 5, 2)), ["a"])
