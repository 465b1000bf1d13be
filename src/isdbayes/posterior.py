"""
Post-hoc summaries built from posterior (and prior) draws.

- group_exponent_draws: lam per group per draw, optionally with varying offsets
- exceedance_curves: fitted P(X >= x) lines on a log-spaced grid per group
- posterior_predictive: replicate datasets simulated from posterior exponents
- prior_predictive: implied exponent across a predictor grid under the priors
- cumulative_proportions: rank-frequency table of observed (x, counts)
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from .data import ModelData
from .density import plb_exceedance
from .diagnostics import credible_interval
from .models import ModelSpec, PriorSpec
from .sampler import PosteriorDraws
from .simulate import aggregate_counts, rplb


def lseq(start: float, stop: float, length_out: int = 7) -> np.ndarray:
    """Logarithmically spaced sequence between two positive values."""

    if start <= 0.0 or stop <= 0.0:
        raise ValueError("lseq needs positive endpoints")
    return np.exp(np.linspace(np.log(start), np.log(stop), int(length_out)))


def group_exponent_draws(
    draws: PosteriorDraws,
    model: ModelSpec,
    data: ModelData,
    include_offsets: bool = True,
) -> pd.DataFrame:
    """Long table (.draw, group, lam) of per-group exponents.

    ``include_offsets=False`` gives the regression line ``a + beta*predictor``
    without the group's random intercept.
    """

    a = draws.values("a")
    lam = np.repeat(a[:, None], data.n_groups, axis=1)
    if model.has_beta:
        lam = lam + draws.values("beta")[:, None] * data.group_predictor[None, :]
    if model.has_groups and include_offsets:
        sigma = draws.values("sigma_group")
        raw = np.column_stack([draws.values(f"raw_group[{g}]") for g in range(data.n_groups)])
        lam = lam + sigma[:, None] * raw

    frame = pd.DataFrame(lam, columns=list(data.group_labels))
    frame.insert(0, ".draw", draws.frame[".draw"].to_numpy())
    long = frame.melt(id_vars=".draw", var_name="group", value_name="lam")
    if data.group_predictor is not None:
        pred = dict(zip(data.group_labels, data.group_predictor))
        long["predictor"] = long["group"].map(pred)
    return long


def summarize_groups(exponents: pd.DataFrame, level: float = 0.95, kind: str = "eti") -> pd.DataFrame:
    """Median and interval of lam per group."""

    rows = []
    for group, sub in exponents.groupby("group", sort=True):
        lo, hi = credible_interval(sub["lam"].to_numpy(), level, kind)
        rows.append({"group": group, "lam": float(sub["lam"].median()), "lower": lo, "upper": hi})
    return pd.DataFrame(rows, columns=["group", "lam", "lower", "upper"])


def exceedance_curves(group_summary: pd.DataFrame, data: ModelData, n_points: int = 800) -> pd.DataFrame:
    """P(X >= x) at the median and interval exponents on a log grid per group."""

    frames = []
    bounds = dict(zip(data.group_labels, zip(data.group_xmin, data.group_xmax)))
    for _, row in group_summary.iterrows():
        xmin, xmax = bounds[row["group"]]
        x = np.clip(lseq(xmin, xmax, n_points), xmin, xmax)
        frames.append(
            pd.DataFrame(
                {
                    "group": row["group"],
                    "x": x,
                    "y_plb_med": plb_exceedance(x, row["lam"], xmin, xmax),
                    "y_plb_lower": plb_exceedance(x, row["lower"], xmin, xmax),
                    "y_plb_upper": plb_exceedance(x, row["upper"], xmin, xmax),
                }
            )
        )
    out = pd.concat(frames, ignore_index=True)
    # The last grid point has zero exceedance, which cannot be drawn on log axes.
    keep = (out["y_plb_med"] > 0) & (out["y_plb_lower"] > 0) & (out["y_plb_upper"] > 0)
    return out.loc[keep].reset_index(drop=True)


def posterior_predictive(
    rng: np.random.Generator,
    data: ModelData,
    group_exponents: pd.Series,
    n_sims: int = 10,
    precision: float = 1e-5,
) -> pd.DataFrame:
    """Simulate ``n_sims`` replicate datasets per group.

    Each replicate has as many draws as the group's rounded-up total count, is
    rounded to ``precision`` and counted. Output columns: sim, group, x, counts.
    """

    totals = pd.Series(data.counts).groupby(data.group_idx).sum()
    frames = []
    for sim in range(1, int(n_sims) + 1):
        for g, label in enumerate(data.group_labels):
            n = int(np.ceil(totals.loc[g]))
            x = rplb(n, float(group_exponents[label]), data.group_xmin[g], data.group_xmax[g], rng)
            part = aggregate_counts(x, precision)
            part.insert(0, "group", label)
            part.insert(0, "sim", sim)
            frames.append(part)
    return pd.concat(frames, ignore_index=True)


def prior_predictive(
    rng: np.random.Generator,
    priors: PriorSpec,
    n_draws: int = 1000,
    predictor_grid: Optional[np.ndarray] = None,
    include_groups: bool = True,
) -> pd.DataFrame:
    """Exponent implied by the priors across a standardized predictor grid.

    ``intercept = a + sigma_group * raw`` with ``raw ~ N(0, 1)``; the output
    column ``lam`` is ``intercept + beta * predictor``.
    """

    grid = np.linspace(-2.0, 2.0, 20) if predictor_grid is None else np.asarray(predictor_grid, dtype=float)
    a = priors.a.sample(rng, n_draws)
    beta = priors.beta.sample(rng, n_draws)
    intercept = a
    if include_groups:
        intercept = a + priors.sigma_group.sample(rng, n_draws) * rng.normal(0.0, 1.0, n_draws)
    lam = intercept[:, None] + beta[:, None] * grid[None, :]
    return pd.DataFrame(
        {
            ".draw": np.repeat(np.arange(1, n_draws + 1), grid.size),
            "predictor": np.tile(grid, n_draws),
            "lam": lam.ravel(),
        }
    )


def cumulative_proportions(df: pd.DataFrame, value_col: str = "x", count_col: str = "counts", group_col: str = "group") -> pd.DataFrame:
    """Counts per value, sorted from largest value, with cumulative proportion."""

    summed = df.groupby([group_col, value_col], as_index=False)[count_col].sum()
    summed = summed.sort_values([group_col, value_col], ascending=[True, False])
    summed["cum_sum"] = summed.groupby(group_col)[count_col].cumsum()
    totals = summed.groupby(group_col)[count_col].transform("sum")
    summed["cum_prop"] = summed["cum_sum"] / totals
    return summed.reset_index(drop=True)
