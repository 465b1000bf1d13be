"""
Split R-hat, effective sample size and credible intervals for posterior draws.

Chains arrive as a 2D array (n_chains, n_draws). Diagnostics return NaN when
they are undefined (too few draws or chains).
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

INTERVAL_KINDS = ("eti", "hdi")


def split_chains(chains: np.ndarray) -> np.ndarray:
    """Halve every chain so drift within a chain shows up as between-chain variance."""

    chains = np.atleast_2d(np.asarray(chains, dtype=float))
    n = chains.shape[1]
    half = n // 2
    if half < 2:  # need at least 2 per half to use ddof=1 safely
        return np.empty((0, 0))
    return np.concatenate([chains[:, :half], chains[:, n - half :]], axis=0)


def compute_split_rhat(chains: np.ndarray) -> float:
    split = split_chains(chains)
    m, n = split.shape if split.size else (0, 0)
    if m < 2 or n < 2:
        return float("nan")

    W = float(split.var(axis=1, ddof=1).mean())
    if not np.isfinite(W) or W <= 0.0:
        # No within-chain variance: constant chains agree only if their means do.
        return 1.0 if np.ptp(split.mean(axis=1)) == 0.0 else float("inf")

    B = float(n * split.mean(axis=1).var(ddof=1))
    var_hat = (n - 1) / n * W + B / n
    return float(np.sqrt(var_hat / W))


def compute_effective_sample_size(chains: np.ndarray, max_lag: int = 1000) -> float:
    """Multi-chain ESS with Geyer's initial positive sequence truncation."""

    chains = np.atleast_2d(np.asarray(chains, dtype=float))
    m, n = chains.shape
    if n < 4:
        return float("nan")

    W = float(chains.var(axis=1, ddof=1).mean())
    if not np.isfinite(W) or W <= 0.0:
        return float(m * n)
    B = float(n * chains.mean(axis=1).var(ddof=1)) if m >= 2 else 0.0
    var_hat = (n - 1) / n * W + B / n

    centered = chains - chains.mean(axis=1, keepdims=True)
    # Autocovariance per chain via FFT, averaged across chains.
    size = 1 << int(np.ceil(np.log2(2 * n)))
    spectrum = np.fft.rfft(centered, n=size, axis=1)
    acov = np.fft.irfft(spectrum * np.conj(spectrum), n=size, axis=1)[:, :n] / n
    mean_acov = acov.mean(axis=0)
    rho = 1.0 - (W - mean_acov) / var_hat
    rho[0] = 1.0

    limit = min(max_lag, n - 1)
    tau = -1.0
    t = 0
    while t + 1 <= limit:
        pair = rho[t] + rho[t + 1]
        if pair < 0.0:
            break
        tau += 2.0 * pair
        t += 2
    ess = m * n / max(tau, 1e-12)
    return float(min(max(1.0, ess), m * n * np.log10(m * n)))


def equal_tailed_interval(samples: np.ndarray, level: float) -> Tuple[float, float]:
    if not 0.0 < level < 1.0:
        raise ValueError("level must be in (0,1)")
    tail = 0.5 * (1.0 - level)
    lo, hi = np.quantile(np.asarray(samples, dtype=float).ravel(), [tail, 1.0 - tail])
    return float(lo), float(hi)


def highest_density_interval(samples: np.ndarray, level: float) -> Tuple[float, float]:
    """Shortest interval holding ``level`` of the draws."""

    if not 0.0 < level < 1.0:
        raise ValueError("level must be in (0,1)")
    s = np.sort(np.asarray(samples, dtype=float).ravel())
    n = s.size
    if n == 0:
        raise ValueError("samples must be non-empty")
    k = int(np.ceil(level * n))
    if k >= n:
        return float(s[0]), float(s[-1])
    widths = s[k:] - s[: n - k]
    i = int(np.argmin(widths))
    return float(s[i]), float(s[i + k])


def credible_interval(samples: np.ndarray, level: float = 0.95, kind: str = "eti") -> Tuple[float, float]:
    if kind == "eti":
        return equal_tailed_interval(samples, level)
    if kind == "hdi":
        return highest_density_interval(samples, level)
    raise ValueError(f"interval kind must be one of {INTERVAL_KINDS}")


def summarize_parameter(name: str, chains: np.ndarray, level: float = 0.95, kind: str = "eti") -> dict:
    chains = np.atleast_2d(np.asarray(chains, dtype=float))
    lo, hi = credible_interval(chains, level, kind)
    return {
        "parameter": name,
        "median": float(np.median(chains)),
        "mean": float(np.mean(chains)),
        "sd": float(np.std(chains, ddof=1)) if chains.size > 1 else float("nan"),
        "lower": lo,
        "upper": hi,
        "level": float(level),
        "interval": kind,
        "rhat": compute_split_rhat(chains),
        "ess": compute_effective_sample_size(chains),
    }


def summarize_chains(
    chains_by_param: Iterable[Tuple[str, np.ndarray]],
    level: float = 0.95,
    kind: str = "eti",
) -> pd.DataFrame:
    rows = [summarize_parameter(name, chains, level, kind) for name, chains in chains_by_param]
    return pd.DataFrame(rows, columns=_SUMMARY_COLUMNS)


def max_rhat(summary: pd.DataFrame, parameters: Optional[Iterable[str]] = None) -> float:
    """Largest finite R-hat; NaN entries count as not converged (inf)."""

    sub = summary if parameters is None else summary[summary["parameter"].isin(list(parameters))]
    if sub.empty:
        return float("nan")
    vals = sub["rhat"].to_numpy(dtype=float)
    vals = np.where(np.isnan(vals), np.inf, vals)
    return float(vals.max())


_SUMMARY_COLUMNS = ["parameter", "median", "mean", "sd", "lower", "upper", "level", "interval", "rhat", "ess"]
