import logging
import numpy as np
import statsmodels.api as sm
from typing import List, Optional, Tuple
from scipy import sparse

from .anchor import initial_beta
from .config import TopicModelConfig
from .covariates import PrevalenceDesign
from .dtm import DocumentTermMatrix
from .errors import InsufficientDataError
from .model import STMModel, FittedTopicModel, theta_from_eta
from .variational import VariationalEstimator

logger = logging.getLogger(__name__)


def sparse_rows(counts: sparse.csr_matrix) -> List[Tuple[np.ndarray, np.ndarray]]:
    counts = sparse.csr_matrix(counts)
    rows = []
    for d in range(counts.shape[0]):
        lo, hi = counts.indptr[d], counts.indptr[d + 1]
        rows.append((counts.indices[lo:hi].copy(), counts.data[lo:hi].astype(np.float64)))
    return rows


class EMRunner:
    def __init__(self, model: STMModel, max_em_iter: int = 50, tol: float = 1e-5,
                 estep_max_iter: int = 200):
        self.m = model
        self.max_em_iter = max(1, max_em_iter)
        self.tol = tol
        self.ve = VariationalEstimator(model, max_iter=estep_max_iter)
        self.history: List[float] = []
        self.converged = False

    def e_step(self, docs, X: np.ndarray, eta: np.ndarray):
        D = len(docs)
        K = self.m.K
        sigma_inv = np.linalg.inv(self.m.Sigma)
        logdet_sigma = np.linalg.slogdet(self.m.Sigma)[1]
        mu = X @ self.m.Gamma
        eta_new = np.zeros_like(eta)
        nu = np.zeros((D, K - 1, K - 1))
        beta_ss = np.zeros((K, self.m.V))
        bound = 0.0
        for d, (idx, cnt) in enumerate(docs):
            e, n, phi, b = self.ve.e_step_doc(idx, cnt, mu[d], sigma_inv, logdet_sigma, eta[d])
            eta_new[d] = e
            nu[d] = n
            beta_ss[:, idx] += phi
            bound += b
        return eta_new, nu, beta_ss, bound

    def m_step(self, X: np.ndarray, eta: np.ndarray, nu: np.ndarray, beta_ss: np.ndarray):
        D = X.shape[0]
        # Gamma: OLS of each logistic-normal coordinate on the covariates
        Gamma = np.zeros_like(self.m.Gamma)
        for j in range(eta.shape[1]):
            Gamma[:, j] = sm.OLS(eta[:, j], X).fit().params
        self.m.Gamma = Gamma
        # Sigma: posterior covariances plus residual outer products
        resid = eta - X @ Gamma
        S = (nu.sum(axis=0) + resid.T @ resid) / D
        S = 0.5 * (S + S.T)
        try:
            w, U = np.linalg.eigh(S)
        except np.linalg.LinAlgError:
            logger.warning("covariance update failed to decompose, adding ridge")
            w, U = np.linalg.eigh(S + 1e-3 * np.eye(S.shape[0]))
        self.m.Sigma = (U * np.maximum(w, 1e-6)) @ U.T
        # beta: expected counts, floored so every row stays a proper distribution
        beta = beta_ss + 1e-12
        self.m.beta = beta / beta.sum(axis=1, keepdims=True)

    def run(self, counts: sparse.csr_matrix, X: np.ndarray,
            eta0: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
        docs = sparse_rows(counts)
        D = len(docs)
        eta = np.zeros((D, self.m.K - 1)) if eta0 is None else eta0.copy()
        total_words = max(1.0, float(counts.sum()))
        last_bound = -np.inf
        nu = np.zeros((D, self.m.K - 1, self.m.K - 1))
        for it in range(self.max_em_iter):
            eta, nu, beta_ss, bound = self.e_step(docs, X, eta)
            self.m_step(X, eta, nu, beta_ss)
            self.history.append(bound)
            logger.debug("EM iteration %d: bound %.4f (per word %.4f)", it + 1, bound, bound / total_words)
            if it > 0 and abs(bound - last_bound) / (abs(last_bound) + 1e-9) < self.tol:
                self.converged = True
                break
            last_bound = bound
        if not self.converged:
            logger.info("EM stopped after %d iterations without reaching tol=%g", self.max_em_iter, self.tol)
        # final E-step so theta and nu correspond to the last parameters
        eta, nu, _, _ = self.e_step(docs, X, eta)
        return eta, nu


def check_sufficient(dtm: DocumentTermMatrix, K: int):
    n_docs = len(dtm.nontrivial_rows())
    if n_docs < K:
        raise InsufficientDataError(
            f"only {n_docs} documents with retained terms for K={K} topics")
    if len(dtm.vocabulary) < K:
        raise InsufficientDataError(
            f"vocabulary of {len(dtm.vocabulary)} terms is too small for K={K} topics")


def run_em(dtm: DocumentTermMatrix, X: np.ndarray, K: int,
           config: TopicModelConfig) -> Tuple[STMModel, EMRunner, np.ndarray, np.ndarray]:
    """Initialise and run the EM on plain arrays; returns (model, runner, eta, nu)."""
    if X.shape[0] != dtm.shape[0]:
        raise ValueError(f"design has {X.shape[0]} rows, DTM has {dtm.shape[0]}")
    check_sufficient(dtm, K)
    rng = np.random.default_rng(config.seed)
    model = STMModel(K=K, V=len(dtm.vocabulary), P=X.shape[1])
    model.beta = initial_beta(config.init, dtm.counts, K, config.seed, rng)
    logger.info("fitting K=%d on %d documents x %d terms (init=%s, seed=%d)",
                K, dtm.shape[0], dtm.shape[1], config.init, config.seed)
    runner = EMRunner(model, max_em_iter=config.max_em_iter, tol=config.tol,
                      estep_max_iter=config.estep_max_iter)
    eta, nu = runner.run(dtm.counts, X)
    logger.info("K=%d finished after %d EM iterations, bound %.2f",
                K, len(runner.history), runner.history[-1])
    return model, runner, eta, nu


def fit_topic_model(dtm: DocumentTermMatrix, design: PrevalenceDesign, K: int,
                    config: Optional[TopicModelConfig] = None) -> FittedTopicModel:
    """Fit a structural topic model with prevalence covariates by variational EM."""
    config = config or TopicModelConfig()
    model, runner, eta, nu = run_em(dtm, design.X, K, config)
    theta = theta_from_eta(eta)
    return FittedTopicModel(
        K=K, theta=theta, beta=model.beta.copy(), eta=eta, nu=nu,
        gamma=model.Gamma.copy(), sigma=model.Sigma.copy(),
        vocabulary=dtm.vocabulary, doc_ids=dtm.doc_ids, design=design,
        bound_history=list(runner.history), converged=runner.converged,
        init=config.init, seed=config.seed,
    )
