"""
Direct maximum-likelihood fit of a single PLB exponent.

Used as a non-Bayesian reference: the MLE maximizes the summed kernel and the
95% interval is the profile-likelihood set {lam : 2 * (ll_max - ll(lam)) <= 3.84}.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import optimize, stats

from .density import check_support, pareto_log_likelihood
from .errors import ConfigurationError


@dataclass(frozen=True)
class MLEResult:
    lam: float
    lower: float
    upper: float
    log_likelihood: float
    n: float
    xmin: float
    xmax: float
    converged: bool


def fit_mle(
    x,
    counts=None,
    xmin: Optional[float] = None,
    xmax: Optional[float] = None,
    bounds: Tuple[float, float] = (-5.0, 3.0),
    level: float = 0.95,
) -> MLEResult:
    """Maximize the bounded power-law likelihood over the exponent.

    ``xmin``/``xmax`` default to the sample min/max, as for the Bayesian fits.
    """

    x = np.asarray(x, dtype=float)
    if x.size == 0:
        raise ConfigurationError("MLE-EMPTY", "no observations", data={})
    xmin = float(np.min(x)) if xmin is None else float(xmin)
    xmax = float(np.max(x)) if xmax is None else float(xmax)
    check_support(x, xmin, xmax)
    if counts is not None:
        counts = np.asarray(counts, dtype=float)

    def nll(lam: float) -> float:
        return -pareto_log_likelihood(x, lam, xmin, xmax, counts, check=False)

    res = optimize.minimize_scalar(nll, bounds=bounds, method="bounded", options={"xatol": 1e-9})
    lam_hat = float(res.x)
    ll_max = -float(res.fun)
    cutoff = 0.5 * float(stats.chi2.ppf(level, df=1))

    def excess(lam: float) -> float:
        return (ll_max + nll(lam)) - cutoff

    lower = _profile_root(excess, lam_hat, bounds[0])
    upper = _profile_root(excess, lam_hat, bounds[1])
    n = float(x.size if counts is None else counts.sum())
    return MLEResult(
        lam=lam_hat,
        lower=lower,
        upper=upper,
        log_likelihood=ll_max,
        n=n,
        xmin=xmin,
        xmax=xmax,
        converged=bool(res.success),
    )


def _profile_root(excess, start: float, limit: float) -> float:
    # Interval end stays at the search bound when the profile never crosses.
    if excess(limit) < 0.0:
        return float(limit)
    return float(optimize.brentq(excess, min(start, limit), max(start, limit), xtol=1e-10))
