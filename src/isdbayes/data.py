"""
Tabular contract -> model-ready arrays.

One row per observation or per (value, group) aggregate. Bounds are the
per-group sample min/max of the value column, group codes follow sorted label
order, and group-level predictors are standardized.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError
from .invariant_runtime import require


@dataclass(frozen=True)
class ModelData:
    x: np.ndarray
    counts: np.ndarray
    group_idx: np.ndarray  # per-row integer group code
    xmin: np.ndarray  # per-row bounds of the row's group
    xmax: np.ndarray
    group_labels: Sequence[str]
    group_xmin: np.ndarray
    group_xmax: np.ndarray
    group_predictor: Optional[np.ndarray] = None  # standardized, one per group
    predictor_center: Optional[float] = None
    predictor_scale: Optional[float] = None

    @property
    def n_groups(self) -> int:
        return len(self.group_labels)

    @property
    def n_rows(self) -> int:
        return int(self.x.size)

    @property
    def total_count(self) -> float:
        return float(self.counts.sum())


def standardize(values) -> tuple:
    """Return ``((v - mean) / sd, mean, sd)`` with the sample sd."""

    v = np.asarray(values, dtype=float)
    center = float(v.mean())
    scale = float(v.std(ddof=1)) if v.size > 1 else 0.0
    if not np.isfinite(scale) or scale <= 0.0:
        raise ConfigurationError(
            "D-PREDICTOR-SD",
            "predictor has zero spread across groups; cannot standardize",
            data={"n": int(v.size), "center": center},
        )
    return (v - center) / scale, center, scale


def _group_key(df: pd.DataFrame, group_cols: Sequence[str]) -> pd.Series:
    if len(group_cols) == 1:
        return df[group_cols[0]].astype(str)
    return df[list(group_cols)].astype(str).agg("_".join, axis=1)


def prepare_model_data(
    df: pd.DataFrame,
    value_col: str = "x",
    count_col: Optional[str] = "counts",
    group_cols: Union[str, Sequence[str], None] = "group",
    predictor_col: Optional[str] = None,
    standardize_predictor: bool = True,
) -> ModelData:
    """Validate and reshape a tidy frame for likelihood evaluation.

    Rows with zero count are dropped. Every group must keep at least one row,
    positive values and two distinct values (xmin < xmax).
    """

    if value_col not in df.columns:
        raise ConfigurationError("D-COLUMN", f"missing value column '{value_col}'", data={"columns": list(df.columns)})
    frame = df.copy()
    if count_col is not None and count_col in frame.columns:
        counts = frame[count_col].astype(float)
        require(
            bool((counts >= 0.0).all()),
            ConfigurationError,
            "D-COUNTS",
            "counts must be non-negative",
            data={"min_count": float(counts.min())},
        )
        frame = frame.loc[counts > 0.0].copy()
        frame["_counts"] = frame[count_col].astype(float)
    else:
        frame["_counts"] = 1.0

    if isinstance(group_cols, str):
        group_cols = [group_cols]
    if group_cols:
        missing = [c for c in group_cols if c not in frame.columns]
        if missing:
            raise ConfigurationError("D-COLUMN", "missing group columns", data={"missing": missing})
        frame["_group"] = _group_key(frame, group_cols)
    else:
        frame["_group"] = "all"

    require(len(frame) > 0, ConfigurationError, "D-EMPTY", "no rows with positive count", data={})
    values = frame[value_col].astype(float)
    require(
        bool(np.isfinite(values).all()),
        ConfigurationError,
        "D-FINITE",
        "values must be finite",
        data={"n_nonfinite": int((~np.isfinite(values)).sum())},
    )

    labels = sorted(frame["_group"].unique())
    code_of = {label: i for i, label in enumerate(labels)}
    bounds = frame.groupby("_group")[value_col].agg(["min", "max"]).loc[labels]
    for label, row in bounds.iterrows():
        require(
            row["min"] > 0.0,
            ConfigurationError,
            "D-XMIN",
            f"group '{label}' has non-positive values",
            data={"group": label, "xmin": float(row["min"])},
        )
        require(
            row["max"] > row["min"],
            ConfigurationError,
            "D-DEGENERATE",
            f"group '{label}' has a single unique value (xmin == xmax)",
            data={"group": label, "xmin": float(row["min"]), "xmax": float(row["max"])},
        )

    group_idx = frame["_group"].map(code_of).to_numpy(dtype=np.int64)
    group_xmin = bounds["min"].to_numpy(dtype=float)
    group_xmax = bounds["max"].to_numpy(dtype=float)

    group_predictor = None
    center = scale = None
    if predictor_col is not None:
        if predictor_col not in frame.columns:
            raise ConfigurationError("D-COLUMN", f"missing predictor column '{predictor_col}'", data={})
        per_group = frame.groupby("_group")[predictor_col].agg(["min", "max"]).loc[labels]
        inconsistent = per_group.index[per_group["min"] != per_group["max"]].tolist()
        require(
            not inconsistent,
            ConfigurationError,
            "D-PREDICTOR",
            "predictor must be constant within each group",
            data={"groups": inconsistent},
        )
        raw = per_group["min"].to_numpy(dtype=float)
        if standardize_predictor:
            group_predictor, center, scale = standardize(raw)
        else:
            group_predictor = raw

    return ModelData(
        x=values.to_numpy(dtype=float),
        counts=frame["_counts"].to_numpy(dtype=float),
        group_idx=group_idx,
        xmin=group_xmin[group_idx],
        xmax=group_xmax[group_idx],
        group_labels=tuple(labels),
        group_xmin=group_xmin,
        group_xmax=group_xmax,
        group_predictor=group_predictor,
        predictor_center=center,
        predictor_scale=scale,
    )
