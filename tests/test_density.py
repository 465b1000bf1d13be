import math

import numpy as np
import pytest
from scipy import integrate

from isdbayes.density import (
    log_normalizer,
    pareto_log_likelihood,
    pareto_lpdf,
    paretocounts_lpdf,
    plb_cdf,
    plb_exceedance,
    source_neg_one_log_norm,
)
from isdbayes.errors import DomainError


@pytest.mark.parametrize("lam", [-2.5, -1.8, -1.0, -0.5, 0.5, 2.5])
def test_density_integrates_to_one(lam):
    xmin, xmax = 1.0, 100.0
    total, _ = integrate.quad(lambda v: math.exp(pareto_lpdf(v, lam, xmin, xmax)), xmin, xmax, limit=200)
    assert total == pytest.approx(1.0, abs=1e-6)


def test_neg_one_branch_uses_corrected_constant():
    xmin, xmax = 1.0, 1000.0
    expected = -math.log(math.log(xmax) - math.log(xmin)) - math.log(10.0)
    assert pareto_lpdf(10.0, -1.0, xmin, xmax) == pytest.approx(expected)
    # Within the tolerance the same branch is taken.
    assert pareto_lpdf(10.0, -1.0 + 1e-10, xmin, xmax) == pytest.approx(expected)


def test_source_neg_one_constant_is_undefined():
    # log(log(xmin) - log(xmax)) has a negative argument for any valid bounds.
    assert math.isnan(source_neg_one_log_norm(1.0, 1000.0))
    assert math.isfinite(log_normalizer(-1.0, 1.0, 1000.0))


def test_neg_one_is_continuous():
    left = pareto_lpdf(5.0, -1.0 - 1e-6, 1.0, 100.0)
    mid = pareto_lpdf(5.0, -1.0, 1.0, 100.0)
    right = pareto_lpdf(5.0, -1.0 + 1e-6, 1.0, 100.0)
    assert left == pytest.approx(mid, abs=1e-5)
    assert right == pytest.approx(mid, abs=1e-5)


def test_count_weighting_matches_replicates():
    x, lam, xmin, xmax = 10.0, -1.5, 1.0, 100.0
    single = pareto_lpdf(x, lam, xmin, xmax)
    assert paretocounts_lpdf(x, lam, xmin, xmax, 7) == pytest.approx(7 * single)
    assert pareto_log_likelihood(np.full(7, x), lam, xmin, xmax) == pytest.approx(7 * single)
    assert paretocounts_lpdf(x, lam, xmin, xmax, 0.0) == 0.0


def test_fractional_counts_scale_linearly():
    single = pareto_lpdf(3.0, -2.0, 1.0, 50.0)
    assert paretocounts_lpdf(3.0, -2.0, 1.0, 50.0, 2.5) == pytest.approx(2.5 * single)


def test_vectorized_matches_scalar():
    x = np.array([1.0, 2.0, 50.0, 100.0])
    vec = pareto_lpdf(x, -1.7, 1.0, 100.0)
    assert isinstance(vec, np.ndarray)
    for xi, vi in zip(x, vec):
        assert pareto_lpdf(float(xi), -1.7, 1.0, 100.0) == pytest.approx(vi)


def test_bounds_are_inside_support():
    assert math.isfinite(pareto_lpdf(1.0, -1.5, 1.0, 100.0))
    assert math.isfinite(pareto_lpdf(100.0, -1.5, 1.0, 100.0))


@pytest.mark.parametrize(
    "x, xmin, xmax, error_id",
    [
        (0.5, 1.0, 100.0, "K-SUPPORT"),
        (100.0001, 1.0, 100.0, "K-SUPPORT"),
        (1.0, 0.0, 100.0, "K-XMIN"),
        (5.0, 5.0, 5.0, "K-BOUNDS"),
        (5.0, 10.0, 1.0, "K-BOUNDS"),
    ],
)
def test_domain_errors(x, xmin, xmax, error_id):
    with pytest.raises(DomainError) as excinfo:
        pareto_lpdf(x, -1.5, xmin, xmax)
    assert excinfo.value.error_id == error_id


def test_negative_counts_rejected():
    with pytest.raises(DomainError) as excinfo:
        paretocounts_lpdf(2.0, -1.5, 1.0, 10.0, -1.0)
    assert excinfo.value.error_id == "K-COUNTS"


def test_stable_for_steep_exponents():
    # Direct powers overflow here; the factored normalizer does not.
    val = pareto_lpdf(2.0, -40.0, 1.0, 1e6)
    assert math.isfinite(val)
    assert val == pytest.approx(math.log(39.0) - 40.0 * math.log(2.0), rel=1e-9)


def test_cdf_and_exceedance():
    xmin, xmax = 1.0, 1000.0
    for lam in (-2.0, -1.0, 0.5):
        assert plb_cdf(xmin, lam, xmin, xmax) == pytest.approx(0.0)
        assert plb_cdf(xmax, lam, xmin, xmax) == pytest.approx(1.0)
        mid, _ = integrate.quad(lambda v: math.exp(pareto_lpdf(v, lam, xmin, xmax)), xmin, 30.0)
        assert plb_cdf(30.0, lam, xmin, xmax) == pytest.approx(mid, abs=1e-7)
        assert plb_exceedance(30.0, lam, xmin, xmax) == pytest.approx(1.0 - mid, abs=1e-7)
