"""
Synthetic body-size data from a bounded power law.

- rplb: inverse-CDF sampling from an explicit numpy Generator.
- aggregate_counts / disaggregate: (x, counts) rows at a caller-supplied precision.
- simulate_groups: per-group exponents from fixed, random and predictor effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .density import is_neg_one
from .errors import ConfigurationError, DomainError
from .invariant_runtime import require


def _check_params(lam: float, xmin: float, xmax: float) -> None:
    require(
        np.isfinite(lam),
        DomainError,
        "S-LAMBDA",
        "exponent must be finite",
        data={"lam": float(lam)},
    )
    require(xmin > 0.0, DomainError, "K-XMIN", "xmin must be strictly positive", data={"xmin": float(xmin)})
    require(xmax > xmin, DomainError, "K-BOUNDS", "xmax must exceed xmin", data={"xmin": float(xmin), "xmax": float(xmax)})


def rplb_from_uniform(u, lam: float, xmin: float, xmax: float) -> np.ndarray:
    """Map Uniform(0,1) draws onto the PLB support through the inverse CDF."""

    _check_params(lam, xmin, xmax)
    u = np.asarray(u, dtype=float)
    if is_neg_one(lam):
        # Log-uniform: the general formula is singular at lam == -1.
        x = xmin * np.exp(u * (np.log(xmax) - np.log(xmin)))
    else:
        e = lam + 1.0
        x = (u * xmax**e + (1.0 - u) * xmin**e) ** (1.0 / e)
    # Guard against rounding just past the bounds.
    return np.clip(x, xmin, xmax)


def rplb(n: int, lam: float, xmin: float, xmax: float, rng: np.random.Generator) -> np.ndarray:
    """Draw ``n`` bounded power-law samples."""

    require(int(n) >= 0, ConfigurationError, "S-N", "sample count must be non-negative", data={"n": n})
    if rng is None:
        raise ValueError("rng must be provided for PLB sampling")
    u = rng.random(int(n))
    return rplb_from_uniform(u, lam, xmin, xmax)


def aggregate_counts(
    x,
    precision: float,
    weights=None,
    group=None,
) -> pd.DataFrame:
    """Round to the nearest multiple of ``precision`` and count identical values.

    With ``weights`` the counts are summed weights (e.g. density per m^2)
    instead of occurrences. With ``group`` values are only merged within a
    group. Output columns: ``[group,] x, counts``.
    """

    require(
        precision is not None and float(precision) > 0.0,
        ConfigurationError,
        "A-PRECISION",
        "aggregation precision must be positive",
        data={"precision": precision},
    )
    precision = float(precision)
    x = np.asarray(x, dtype=float)
    w = np.ones_like(x) if weights is None else np.asarray(weights, dtype=float)
    if w.shape != x.shape:
        raise ConfigurationError("A-SHAPE", "weights must match x", data={"n_x": x.size, "n_w": w.size})

    # Group on the integer multiple so float rounding cannot split a bin.
    steps = np.rint(x / precision).astype(np.int64)
    require(
        bool(np.all(steps > 0)),
        ConfigurationError,
        "A-NONPOSITIVE",
        "values round to zero or below at this precision",
        data={"precision": precision, "min_x": float(np.min(x)) if x.size else None},
    )
    frame = pd.DataFrame({"step": steps, "counts": w})
    keys = ["step"]
    if group is not None:
        frame.insert(0, "group", np.asarray(group))
        keys = ["group", "step"]
    out = frame.groupby(keys, sort=True, as_index=False)["counts"].sum()
    decimals = max(0, int(np.ceil(-np.log10(precision))) + 2)
    out["x"] = np.round(out["step"].to_numpy() * precision, decimals)
    cols = (["group"] if group is not None else []) + ["x", "counts"]
    return out[cols].reset_index(drop=True)


def disaggregate(df: pd.DataFrame, value_col: str = "x", count_col: str = "counts") -> np.ndarray:
    """Expand integer counts back into repeated observations."""

    counts = df[count_col].to_numpy(dtype=float)
    whole = np.rint(counts)
    if not np.allclose(counts, whole):
        raise ConfigurationError(
            "A-FRACTIONAL",
            "only integer counts can be expanded into observations",
            data={"example": float(counts[~np.isclose(counts, whole)][0])},
        )
    return np.repeat(df[value_col].to_numpy(dtype=float), whole.astype(np.int64))


@dataclass(frozen=True)
class SimulatedGroups:
    data: pd.DataFrame
    group_exponents: np.ndarray
    group_offsets: np.ndarray
    predictor: np.ndarray


def simulate_groups(
    rng: np.random.Generator,
    n_groups: int,
    n_per_group: int,
    a: float,
    xmin: float,
    xmax: float,
    beta: Optional[float] = None,
    sigma_group: Optional[float] = None,
    precision: Optional[float] = None,
) -> SimulatedGroups:
    """Simulate one dataset with group exponent ``a + beta*predictor + offset``.

    The predictor is an evenly spaced, standardized covariate across groups.
    Offsets are ``Normal(0, sigma_group)``.
    """

    require(int(n_groups) >= 1, ConfigurationError, "S-GROUPS", "need at least one group", data={"n_groups": n_groups})
    n_groups = int(n_groups)
    predictor = np.zeros(n_groups)
    if beta is not None and n_groups > 1:
        raw = np.arange(n_groups, dtype=float)
        predictor = (raw - raw.mean()) / raw.std(ddof=1)
    offsets = np.zeros(n_groups)
    if sigma_group is not None:
        require(sigma_group >= 0.0, ConfigurationError, "S-SIGMA", "sigma_group must be non-negative", data={"sigma_group": sigma_group})
        offsets = rng.normal(0.0, sigma_group, size=n_groups)
    exponents = a + (beta or 0.0) * predictor + offsets

    frames = []
    for g in range(n_groups):
        x = rplb(n_per_group, float(exponents[g]), xmin, xmax, rng)
        if precision is not None:
            part = aggregate_counts(x, precision)
        else:
            part = pd.DataFrame({"x": x, "counts": np.ones_like(x)})
        part.insert(0, "group", f"g{g:02d}")
        part["predictor"] = predictor[g]
        frames.append(part)
    data = pd.concat(frames, ignore_index=True)
    return SimulatedGroups(data=data, group_exponents=exponents, group_offsets=offsets, predictor=predictor)
