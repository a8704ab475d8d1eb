import logging
import numpy as np
from typing import Tuple
from scipy.optimize import minimize

from .model import STMModel

logger = logging.getLogger(__name__)


class VariationalEstimator:
    """Laplace-approximate E-step for one document.

    The mode of the logistic-normal posterior is found with BFGS; the
    covariance is the inverse of the negative analytic Hessian at the mode.
    """

    def __init__(self, model: STMModel, max_iter: int = 200):
        self.m = model
        self.max_iter = max_iter

    def optimize_eta(self, idx: np.ndarray, cnt: np.ndarray, mu: np.ndarray,
                     sigma_inv: np.ndarray, eta0: np.ndarray) -> np.ndarray:
        if cnt.sum() == 0:
            # no words: the posterior is the prior
            return mu.copy()
        res = minimize(lambda e: -self.m.f_objective(e, idx, cnt, mu, sigma_inv), eta0,
                       jac=lambda e: -self.m.grad_objective(e, idx, cnt, mu, sigma_inv),
                       method='BFGS', options={'maxiter': self.max_iter})
        return res.x

    def covariance(self, eta: np.ndarray, idx: np.ndarray, cnt: np.ndarray,
                   sigma_inv: np.ndarray) -> np.ndarray:
        H = self.m.hessian_objective(eta, idx, cnt, sigma_inv)
        try:
            nu = np.linalg.inv(-H)
        except np.linalg.LinAlgError:
            logger.debug("singular Hessian, using pseudo-inverse")
            nu = np.linalg.pinv(-H)
        # symmetrize and keep positive definite
        nu = 0.5 * (nu + nu.T)
        w, U = np.linalg.eigh(nu)
        return (U * np.maximum(w, 1e-10)) @ U.T

    def e_step_doc(self, idx: np.ndarray, cnt: np.ndarray, mu: np.ndarray,
                   sigma_inv: np.ndarray, logdet_sigma: float,
                   eta0: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, float]:
        eta = self.optimize_eta(idx, cnt, mu, sigma_inv, eta0)
        nu = self.covariance(eta, idx, cnt, sigma_inv)
        phi = self.m.expected_counts(eta, idx, cnt)
        # bound_d ~ f(eta*) + 0.5 (log|nu| - log|Sigma|)
        logdet_nu = np.linalg.slogdet(nu)[1]
        bound = self.m.f_objective(eta, idx, cnt, mu, sigma_inv) + 0.5 * (logdet_nu - logdet_sigma)
        return eta, nu, phi, float(bound)
