"""
Model specifications for size-spectrum exponents.

Three configurations share one likelihood (the count-weighted PLB kernel):

- intercept:          lam_g = a
- varying_intercept:  lam_g = a + sigma_group * raw_group[g]
- regression:         lam_g = a + beta * predictor_g + sigma_group * raw_group[g]

Varying intercepts use the non-centred form. The sampler works on an
unconstrained vector in which sigma_group is stored on the log scale.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .data import ModelData
from .density import paretocounts_lpdf
from .errors import ConfigurationError

MODEL_KINDS = ("intercept", "varying_intercept", "regression")
PRIOR_FAMILIES = ("normal", "half_normal", "exponential")

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


@dataclass(frozen=True)
class PriorTerm:
    family: str
    params: Tuple[float, ...]

    def __post_init__(self):
        if self.family not in PRIOR_FAMILIES:
            raise ConfigurationError("P-FAMILY", f"unknown prior family '{self.family}'", data={"family": self.family})
        expected = 2 if self.family == "normal" else 1
        if len(self.params) != expected:
            raise ConfigurationError(
                "P-PARAMS",
                f"{self.family} prior takes {expected} parameter(s)",
                data={"params": list(self.params)},
            )
        if self.params[-1] <= 0.0:
            raise ConfigurationError("P-SCALE", "prior scale/rate must be positive", data={"params": list(self.params)})

    def logpdf(self, v: float) -> float:
        if self.family == "normal":
            mu, sd = self.params
            z = (v - mu) / sd
            return -0.5 * z * z - math.log(sd) - _LOG_SQRT_2PI
        if v < 0.0:
            return -math.inf
        if self.family == "half_normal":
            (sd,) = self.params
            z = v / sd
            return math.log(2.0) - 0.5 * z * z - math.log(sd) - _LOG_SQRT_2PI
        (rate,) = self.params
        return math.log(rate) - rate * v

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        if self.family == "normal":
            return rng.normal(self.params[0], self.params[1], size=size)
        if self.family == "half_normal":
            return np.abs(rng.normal(0.0, self.params[0], size=size))
        return rng.exponential(1.0 / self.params[0], size=size)


def _term(family: str, *params: float) -> PriorTerm:
    return PriorTerm(family, tuple(float(p) for p in params))


@dataclass(frozen=True)
class PriorSpec:
    """Priors handed to the sampler; opaque to the recovery harness."""

    a: PriorTerm = field(default_factory=lambda: _term("normal", -1.5, 1.0))
    beta: PriorTerm = field(default_factory=lambda: _term("normal", 0.0, 0.5))
    sigma_group: PriorTerm = field(default_factory=lambda: _term("half_normal", 0.5))

    @classmethod
    def from_dict(cls, raw: Optional[Dict]) -> "PriorSpec":
        """Build from ``{"a": {"family": "normal", "params": [-1.5, 0.2]}, ...}``."""

        kwargs = {}
        for name, spec in (raw or {}).items():
            if name not in ("a", "beta", "sigma_group"):
                raise ConfigurationError("P-NAME", f"unknown prior parameter '{name}'", data={"name": name})
            kwargs[name] = _term(spec["family"], *spec["params"])
        return cls(**kwargs)

    def to_dict(self) -> Dict:
        return {k: {"family": v["family"], "params": list(v["params"])} for k, v in asdict(self).items()}


@dataclass(frozen=True)
class ModelSpec:
    kind: str = "intercept"

    def __post_init__(self):
        if self.kind not in MODEL_KINDS:
            raise ConfigurationError("M-KIND", f"unknown model kind '{self.kind}'", data={"kind": self.kind})

    @property
    def has_beta(self) -> bool:
        return self.kind == "regression"

    @property
    def has_groups(self) -> bool:
        return self.kind != "intercept"

    def check_data(self, data: ModelData) -> None:
        if self.has_beta and data.group_predictor is None:
            raise ConfigurationError("M-PREDICTOR", "regression model needs a group predictor", data={})
        if self.has_groups and data.n_groups < 2:
            raise ConfigurationError(
                "M-GROUPS",
                "varying intercepts need at least two groups",
                data={"n_groups": data.n_groups},
            )

    def parameter_names(self, n_groups: int) -> List[str]:
        """Names on the natural scale, in the order of the sampled vector."""

        names = ["a"]
        if self.has_beta:
            names.append("beta")
        if self.has_groups:
            names.append("sigma_group")
            names.extend(f"raw_group[{g}]" for g in range(n_groups))
        return names

    def summary_parameters(self) -> List[str]:
        names = ["a"]
        if self.has_beta:
            names.append("beta")
        if self.has_groups:
            names.append("sigma_group")
        return names

    def _sigma_index(self) -> int:
        return 2 if self.has_beta else 1

    def to_natural(self, theta: np.ndarray) -> np.ndarray:
        """Unconstrained vector(s) -> natural scale (exp on log sigma)."""

        out = np.array(theta, dtype=float, copy=True)
        if self.has_groups:
            out[..., self._sigma_index()] = np.exp(out[..., self._sigma_index()])
        return out

    def unpack(self, theta: np.ndarray) -> Dict[str, object]:
        theta = np.asarray(theta, dtype=float)
        params: Dict[str, object] = {"a": float(theta[0])}
        if self.has_beta:
            params["beta"] = float(theta[1])
        if self.has_groups:
            i = self._sigma_index()
            params["log_sigma_group"] = float(theta[i])
            params["sigma_group"] = math.exp(theta[i])
            params["raw_group"] = theta[i + 1 :]
        return params

    def group_exponents(self, theta: np.ndarray, data: ModelData) -> np.ndarray:
        p = self.unpack(theta)
        lam = np.full(data.n_groups, p["a"])
        if self.has_beta:
            lam = lam + p["beta"] * data.group_predictor
        if self.has_groups:
            lam = lam + p["sigma_group"] * p["raw_group"]
        return lam

    def log_prior(self, theta: np.ndarray, priors: PriorSpec) -> float:
        p = self.unpack(theta)
        lp = priors.a.logpdf(p["a"])
        if self.has_beta:
            lp += priors.beta.logpdf(p["beta"])
        if self.has_groups:
            # log-Jacobian of sigma = exp(log_sigma)
            lp += priors.sigma_group.logpdf(p["sigma_group"]) + p["log_sigma_group"]
            raw = p["raw_group"]
            lp += float(-0.5 * np.dot(raw, raw) - raw.size * _LOG_SQRT_2PI)
        return float(lp)

    def log_likelihood(self, theta: np.ndarray, data: ModelData) -> float:
        lam = self.group_exponents(theta, data)[data.group_idx]
        # Support was validated once in prepare_model_data.
        return float(np.sum(paretocounts_lpdf(data.x, lam, data.xmin, data.xmax, data.counts, check=False)))

    def log_posterior(self, theta: np.ndarray, data: ModelData, priors: PriorSpec) -> float:
        lp = self.log_prior(theta, priors)
        if not np.isfinite(lp):
            return -math.inf
        return lp + self.log_likelihood(theta, data)

    def initial_point(self, rng: np.random.Generator, data: ModelData, priors: PriorSpec) -> np.ndarray:
        """Random start: a and beta from their priors, sigma near its prior scale."""

        theta = [float(priors.a.sample(rng, 1)[0])]
        if self.has_beta:
            theta.append(float(priors.beta.sample(rng, 1)[0]))
        if self.has_groups:
            theta.append(math.log(max(float(priors.sigma_group.sample(rng, 1)[0]), 1e-2)))
            theta.extend(rng.normal(0.0, 0.5, size=data.n_groups).tolist())
        return np.asarray(theta, dtype=float)


def model_kind_for(beta: Optional[float], sigma_group: Optional[float]) -> str:
    """Infer the model configuration from which true effects are present."""

    if beta is not None and sigma_group is not None:
        return "regression"
    if beta is not None:
        raise ConfigurationError(
            "M-KIND",
            "a slope without varying intercepts is not a supported configuration",
            data={"beta": beta},
        )
    if sigma_group is not None:
        return "varying_intercept"
    return "intercept"
