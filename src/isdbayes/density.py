"""
Bounded power-law (PLB) log-density kernel.

Density on [xmin, xmax] with exponent lam:

    f(x) = (lam + 1) / (xmax^(lam+1) - xmin^(lam+1)) * x^lam      lam != -1
    f(x) = 1 / (log(xmax) - log(xmin)) * x^lam                     lam == -1

The count-weighted variant multiplies the log-density by a (possibly
fractional) count, standing for that many replicate observations at x.
All functions broadcast over numpy arrays and return floats for scalar input.
"""

from __future__ import annotations

import numpy as np

from .errors import DomainError
from .invariant_runtime import require

# |lam + 1| below this selects the lam == -1 branch.
NEG_ONE_TOL = 1e-8


def _as_output(arr: np.ndarray):
    arr = np.asarray(arr, dtype=float)
    return float(arr) if arr.ndim == 0 else arr


def check_support(x, xmin, xmax) -> None:
    """Raise DomainError unless 0 < xmin <= x <= xmax and xmin < xmax."""

    x, xmin, xmax = np.broadcast_arrays(
        np.asarray(x, dtype=float), np.asarray(xmin, dtype=float), np.asarray(xmax, dtype=float)
    )
    require(
        bool(np.all(xmin > 0.0)),
        DomainError,
        "K-XMIN",
        "xmin must be strictly positive",
        data={"xmin_min": float(np.min(xmin)) if xmin.size else None},
    )
    require(
        bool(np.all(xmax > xmin)),
        DomainError,
        "K-BOUNDS",
        "xmax must exceed xmin",
        data={"min_width": float(np.min(xmax - xmin)) if xmin.size else None},
    )
    inside = (x >= xmin) & (x <= xmax)
    if not bool(np.all(inside)):
        bad = np.flatnonzero(~inside.ravel())
        first = int(bad[0])
        require(
            False,
            DomainError,
            "K-SUPPORT",
            "x outside [xmin, xmax]",
            data={
                "n_outside": int(bad.size),
                "x": float(x.ravel()[first]),
                "xmin": float(xmin.ravel()[first]),
                "xmax": float(xmax.ravel()[first]),
            },
        )


def is_neg_one(lam) -> np.ndarray:
    return np.abs(np.asarray(lam, dtype=float) + 1.0) < NEG_ONE_TOL


def log_normalizer(lam, xmin, xmax):
    """Log of the normalizing constant (the factor in front of x^lam)."""

    lam = np.asarray(lam, dtype=float)
    xmin = np.asarray(xmin, dtype=float)
    xmax = np.asarray(xmax, dtype=float)
    near = is_neg_one(lam)
    log_lo = np.log(xmin)
    log_hi = np.log(xmax)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        e = np.where(near, 1.0, lam + 1.0)
        # xmax^e - xmin^e factored around the dominant bound so neither
        # power is formed explicitly.
        pos = e > 0.0
        log_top = np.where(pos, log_hi, log_lo)
        log_ratio = e * np.where(pos, log_lo - log_hi, log_hi - log_lo)
        log_span = e * log_top + np.log1p(-np.exp(log_ratio))
        general = np.log(np.abs(e)) - log_span
        neg_one = -np.log(log_hi - log_lo)
    return _as_output(np.where(near, neg_one, general))


def source_neg_one_log_norm(xmin, xmax):
    """lam == -1 constant in its commonly published form.

    ``log(log(xmin) - log(xmax))`` is NaN whenever xmax > xmin; kept only so
    the discrepancy with :func:`log_normalizer` stays visible.
    """

    with np.errstate(invalid="ignore"):
        return _as_output(np.log(np.log(np.asarray(xmin, dtype=float)) - np.log(np.asarray(xmax, dtype=float))))


def pareto_lpdf(x, lam, xmin, xmax, check: bool = True):
    """Log-density contribution of single observation(s) x."""

    if check:
        check_support(x, xmin, xmax)
    x = np.asarray(x, dtype=float)
    lam = np.asarray(lam, dtype=float)
    return _as_output(log_normalizer(lam, xmin, xmax) + lam * np.log(x))


def paretocounts_lpdf(x, lam, xmin, xmax, counts, check: bool = True):
    """Count-weighted log-density: ``counts * pareto_lpdf(x, ...)``."""

    counts = np.asarray(counts, dtype=float)
    if check:
        require(
            bool(np.all(counts >= 0.0)),
            DomainError,
            "K-COUNTS",
            "counts must be non-negative",
            data={"min_count": float(np.min(counts)) if counts.size else None},
        )
    return _as_output(counts * np.asarray(pareto_lpdf(x, lam, xmin, xmax, check=check)))


def pareto_log_likelihood(x, lam, xmin, xmax, counts=None, check: bool = True) -> float:
    """Total log-likelihood, the quantity handed to samplers and optimizers."""

    if counts is None:
        return float(np.sum(pareto_lpdf(x, lam, xmin, xmax, check=check)))
    return float(np.sum(paretocounts_lpdf(x, lam, xmin, xmax, counts, check=check)))


def plb_cdf(x, lam, xmin, xmax, check: bool = True):
    """P(X <= x) for the bounded power law."""

    if check:
        check_support(x, xmin, xmax)
    x = np.asarray(x, dtype=float)
    lam = np.asarray(lam, dtype=float)
    log_x = np.log(x) - np.log(xmin)
    log_w = np.log(xmax) - np.log(xmin)
    near = is_neg_one(lam)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        e = np.where(near, 1.0, lam + 1.0)
        general = np.expm1(e * log_x) / np.expm1(e * log_w)
    return _as_output(np.clip(np.where(near, log_x / log_w, general), 0.0, 1.0))


def plb_exceedance(x, lam, xmin, xmax, check: bool = True):
    """P(X >= x), the y-axis of rank-frequency plots."""

    return _as_output(1.0 - np.asarray(plb_cdf(x, lam, xmin, xmax, check=check)))
