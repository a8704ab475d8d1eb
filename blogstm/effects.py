import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .model import FittedTopicModel, theta_from_eta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectEstimate:
    topic: int
    covariate: str
    values: list              # covariate grid (numbers or category levels)
    mean: np.ndarray          # expected topic proportion at each grid value
    lower: np.ndarray
    upper: np.ndarray
    level: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"topic": self.topic, self.covariate: self.values,
                             "estimate": self.mean, "lower": self.lower, "upper": self.upper})


def sample_theta(model: FittedTopicModel, rng: np.random.Generator) -> np.ndarray:
    """One draw of theta from every document's Laplace posterior."""
    D, Km1 = model.eta.shape
    z = rng.standard_normal((D, Km1))
    L = np.linalg.cholesky(model.nu + 1e-12 * np.eye(Km1))
    eta = model.eta + np.einsum("dij,dj->di", L, z)
    return theta_from_eta(eta)


def estimate_effect(model: FittedTopicModel, topic: int, covariate: str,
                    values: Optional[Sequence] = None, n_points: int = 100,
                    nsims: int = 25, level: float = 0.95,
                    seed: Optional[int] = None) -> EffectEstimate:
    """Prevalence curve of ``topic`` against ``covariate`` with a confidence band.

    Method of composition: theta is drawn from the approximate posterior,
    the topic's proportion is regressed on the prevalence design, and
    coefficients are drawn from the OLS sampling distribution; predictions
    over the grid are pooled across draws. Other covariates are held at
    their reference values (median, or most frequent level).
    """
    k = model._check_topic(topic)
    design = model.design
    if values is None:
        if design.is_categorical(covariate):
            values = design.levels(covariate)
        else:
            col = design.frame[covariate]
            values = np.linspace(float(col.min()), float(col.max()), n_points).tolist()
    values = list(values)
    X_grid = design.encode(design.grid(covariate, values))
    rng = np.random.default_rng(model.seed if seed is None else seed)
    preds = np.zeros((nsims, len(values)))
    for s in range(nsims):
        theta = sample_theta(model, rng)
        res = sm.OLS(theta[:, k], design.X).fit()
        coef = rng.multivariate_normal(np.asarray(res.params), np.asarray(res.cov_params()),
                                       method="eigh")
        preds[s] = X_grid @ coef
    alpha = (1 - level) / 2
    lower, upper = np.quantile(preds, [alpha, 1 - alpha], axis=0)
    logger.debug("effect of %s on topic %d over %d grid values", covariate, k, len(values))
    return EffectEstimate(topic=k, covariate=covariate, values=values,
                          mean=preds.mean(axis=0), lower=lower, upper=upper, level=level)
