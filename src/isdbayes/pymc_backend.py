"""NUTS sampling engine for the PLB models, built on PyMC.

The count-weighted kernel is expressed in PyTensor and added to the model as
a ``pm.Potential``; NUTS does the sampling. Draws are converted to the same
PosteriorDraws table the Metropolis sampler returns. This is the engine
the recovery harness uses for varying-intercept and regression fits.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import numpy as np

from .data import ModelData
from .density import NEG_ONE_TOL
from .errors import SamplerTimeout
from .models import ModelSpec, PriorSpec, PriorTerm
from .sampler import PosteriorDraws, SamplerConfig


def _require_pymc():
    try:
        import pymc as pm  # type: ignore
        import pytensor.tensor as pt  # type: ignore
    except ImportError as e:
        raise ImportError(
            "PyMC is required for PyMCSampler. Install with: pip install pymc"
        ) from e
    return pm, pt


def plb_counts_logp(pt, x, lam, xmin, xmax, counts):
    """PyTensor version of paretocounts_lpdf (no support checks)."""

    e = lam + 1.0
    near = pt.abs(e) < NEG_ONE_TOL
    e_safe = pt.switch(near, 1.0, e)
    general = pt.log(pt.abs(e_safe)) - pt.log(pt.abs(xmax**e_safe - xmin**e_safe))
    neg_one = -pt.log(pt.log(xmax) - pt.log(xmin))
    return counts * (pt.switch(near, neg_one, general) + lam * pt.log(x))


def _prior_rv(pm, name: str, term: PriorTerm, **kwargs):
    if term.family == "normal":
        return pm.Normal(name, mu=term.params[0], sigma=term.params[1], **kwargs)
    if term.family == "half_normal":
        return pm.HalfNormal(name, sigma=term.params[0], **kwargs)
    return pm.Exponential(name, lam=term.params[0], **kwargs)


def build_pymc_model(model: ModelSpec, data: ModelData, priors: PriorSpec):
    pm, pt = _require_pymc()
    model.check_data(data)
    with pm.Model() as pm_model:
        a = _prior_rv(pm, "a", priors.a)
        lam = pt.ones(data.n_groups) * a
        if model.has_beta:
            beta = _prior_rv(pm, "beta", priors.beta)
            lam = lam + beta * pt.as_tensor_variable(data.group_predictor)
        if model.has_groups:
            sigma = _prior_rv(pm, "sigma_group", priors.sigma_group)
            raw = pm.Normal("raw_group", mu=0.0, sigma=1.0, shape=data.n_groups)
            lam = lam + sigma * raw
        lam_rows = lam[data.group_idx]
        pm.Potential(
            "plb_loglik",
            pt.sum(plb_counts_logp(pt, data.x, lam_rows, data.xmin, data.xmax, data.counts)),
        )
    return pm_model


class PyMCSampler:
    def __init__(self, target_accept: float = 0.95, logger: Optional[logging.Logger] = None):
        self.target_accept = target_accept
        self.log = logger or logging.getLogger(__name__)

    def sample(
        self,
        model: ModelSpec,
        data: ModelData,
        priors: PriorSpec,
        config: SamplerConfig,
        seed: int,
    ) -> PosteriorDraws:
        pm, _ = _require_pymc()
        pm_model = build_pymc_model(model, data, priors)
        start = time.monotonic()
        with pm_model:
            idata = pm.sample(
                draws=config.draws,
                tune=config.warmup,
                chains=config.chains,
                cores=1,
                target_accept=self.target_accept,
                random_seed=int(seed),
                progressbar=False,
                return_inferencedata=True,
                compute_convergence_checks=False,
            )
        elapsed = time.monotonic() - start
        # NUTS cannot be interrupted mid-run; the budget is checked afterwards.
        if config.time_budget_s is not None and elapsed > config.time_budget_s:
            raise SamplerTimeout(
                "SMP-TIMEOUT",
                "PyMC run exceeded its wall-clock budget",
                data={"elapsed_s": elapsed, "time_budget_s": config.time_budget_s},
            )

        posterior = idata.posterior
        columns = []
        for name in model.parameter_names(data.n_groups):
            if name.startswith("raw_group["):
                g = int(name[len("raw_group[") : -1])
                columns.append(np.asarray(posterior["raw_group"].values[..., g], dtype=float))
            else:
                columns.append(np.asarray(posterior[name].values, dtype=float))
        samples = np.stack(columns, axis=-1)
        n_divergent = int(np.asarray(idata.sample_stats["diverging"].values).sum())
        self.log.info(
            "PyMC chains completed: %d chains x %d draws in %.2fs (%d divergent)",
            config.chains,
            config.draws,
            elapsed,
            n_divergent,
        )
        return PosteriorDraws.from_array(
            samples,
            model.parameter_names(data.n_groups),
            sampler_stats={"engine": "pymc", "elapsed_s": elapsed, "divergences": n_divergent},
        )
