import numpy as np
import pandas as pd
import pytest

from isdbayes.data import prepare_model_data
from isdbayes.models import ModelSpec, PriorSpec
from isdbayes.posterior import (
    cumulative_proportions,
    exceedance_curves,
    group_exponent_draws,
    lseq,
    posterior_predictive,
    prior_predictive,
    summarize_groups,
)
from isdbayes.sampler import PosteriorDraws
from isdbayes.simulate import simulate_groups


def _regression_fixture():
    sim = simulate_groups(np.random.default_rng(8), 3, 100, -1.5, 1.0, 1000.0, beta=-0.1, sigma_group=0.3, precision=0.001)
    data = prepare_model_data(sim.data, predictor_col="predictor")
    model = ModelSpec("regression")
    # Two draws per chain, two chains.
    samples = np.array(
        [
            [[-1.5, -0.1, 0.2, 1.0, 0.0, -1.0], [-1.4, -0.2, 0.1, 0.0, 0.0, 0.0]],
            [[-1.6, 0.0, 0.3, -1.0, 1.0, 0.0], [-1.5, -0.1, 0.2, 0.5, 0.5, 0.5]],
        ]
    )
    draws = PosteriorDraws.from_array(samples, model.parameter_names(data.n_groups))
    return data, model, draws


def test_lseq():
    seq = lseq(1.0, 1000.0, 4)
    assert np.allclose(seq, [1.0, 10.0, 100.0, 1000.0])
    with pytest.raises(ValueError):
        lseq(0.0, 10.0)


def test_group_exponent_draws():
    data, model, draws = _regression_fixture()
    long = group_exponent_draws(draws, model, data)
    assert len(long) == 4 * 3
    assert set(long.columns) == {".draw", "group", "lam", "predictor"}
    first = long.loc[(long[".draw"] == 1)].set_index("group")["lam"]
    pred = data.group_predictor
    assert first["g00"] == pytest.approx(-1.5 - 0.1 * pred[0] + 0.2 * 1.0)
    assert first["g02"] == pytest.approx(-1.5 - 0.1 * pred[2] + 0.2 * -1.0)

    line = group_exponent_draws(draws, model, data, include_offsets=False)
    first_line = line.loc[line[".draw"] == 1].set_index("group")["lam"]
    assert first_line["g01"] == pytest.approx(-1.5 - 0.1 * pred[1])


def test_summaries_and_exceedance_curves():
    data, model, draws = _regression_fixture()
    groups = summarize_groups(group_exponent_draws(draws, model, data), level=0.9)
    assert groups["group"].tolist() == list(data.group_labels)
    assert (groups["lower"] <= groups["lam"]).all()
    assert (groups["lam"] <= groups["upper"]).all()

    curves = exceedance_curves(groups, data, n_points=50)
    assert set(curves["group"]) == set(data.group_labels)
    assert (curves["y_plb_med"] > 0.0).all()
    assert (curves["y_plb_med"] <= 1.0).all()
    g0 = curves.loc[curves["group"] == "g00"]
    assert g0["y_plb_med"].is_monotonic_decreasing
    assert g0["x"].iloc[0] == pytest.approx(data.group_xmin[0])


def test_posterior_predictive_matches_group_totals():
    data, model, draws = _regression_fixture()
    lam = pd.Series({label: -1.5 for label in data.group_labels})
    reps = posterior_predictive(np.random.default_rng(0), data, lam, n_sims=3)
    assert list(reps.columns) == ["sim", "group", "x", "counts"]
    totals = reps.groupby(["sim", "group"])["counts"].sum()
    assert (totals == 100.0).all()
    for g, label in enumerate(data.group_labels):
        sub = reps.loc[reps["group"] == label, "x"]
        assert sub.min() >= data.group_xmin[g] - 1e-5
        assert sub.max() <= data.group_xmax[g] + 1e-5


def test_prior_predictive():
    out = prior_predictive(np.random.default_rng(1), PriorSpec(), n_draws=2000, predictor_grid=[-1.0, 0.0, 1.0])
    assert len(out) == 6000
    at_zero = out.loc[out["predictor"] == 0.0, "lam"]
    assert at_zero.mean() == pytest.approx(-1.5, abs=0.1)
    no_groups = prior_predictive(np.random.default_rng(1), PriorSpec(), n_draws=2000, include_groups=False)
    assert no_groups["predictor"].nunique() == 20


def test_cumulative_proportions():
    df = pd.DataFrame({"group": ["a", "a", "a", "b"], "x": [1.0, 2.0, 2.0, 5.0], "counts": [1.0, 2.0, 1.0, 4.0]})
    out = cumulative_proportions(df)
    a = out.loc[out["group"] == "a"]
    assert a["x"].tolist() == [2.0, 1.0]
    assert a["cum_sum"].tolist() == [3.0, 4.0]
    assert a["cum_prop"].tolist() == [0.75, 1.0]
    assert out.loc[out["group"] == "b", "cum_prop"].tolist() == [1.0]
