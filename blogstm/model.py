import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from scipy.stats import rankdata

from .covariates import PrevalenceDesign
from .dtm import Vocabulary
from .errors import TopicIndexError


def softmax(a: np.ndarray) -> np.ndarray:
    z = a - a.max(axis=-1, keepdims=True)
    e = np.exp(z)
    return e / e.sum(axis=-1, keepdims=True)


def theta_from_eta(eta: np.ndarray) -> np.ndarray:
    # eta has K-1 free coordinates; the last topic is the reference (eta_K = 0)
    pad = np.zeros(eta.shape[:-1] + (1,))
    return softmax(np.concatenate([eta, pad], axis=-1))


class STMModel:
    """Parameters and per-document objective of a structural topic model.

    theta_d = softmax([eta_d, 0]),  eta_d ~ N(x_d Gamma, Sigma),
    w_dn ~ Mult(sum_k theta_dk beta_k).

    Documents are passed sparsely as (word indices, counts).
    """

    def __init__(self, K: int, V: int, P: int, sigma_init: float = 20.0):
        if K < 2:
            raise ValueError("a topic model needs at least 2 topics")
        self.K = K
        self.V = V
        self.P = P
        self.beta = np.full((K, V), 1.0 / V)         # K x V topic-term distributions
        self.Gamma = np.zeros((P, K - 1))             # prevalence coefficients
        self.Sigma = np.eye(K - 1) * sigma_init       # logistic-normal covariance

    def word_mix(self, theta: np.ndarray, idx: np.ndarray) -> np.ndarray:
        S = theta @ self.beta[:, idx]
        return np.maximum(S, 1e-300)

    def f_objective(self, eta: np.ndarray, idx: np.ndarray, cnt: np.ndarray,
                    mu: np.ndarray, sigma_inv: np.ndarray) -> float:
        # log-likelihood of the words plus the Gaussian prior term
        theta = theta_from_eta(eta)
        ll_words = float(cnt @ np.log(self.word_mix(theta, idx)))
        diff = eta - mu
        return ll_words - 0.5 * float(diff @ sigma_inv @ diff)

    def phi(self, theta: np.ndarray, idx: np.ndarray) -> np.ndarray:
        # phi[k, n] = theta_k beta_{k,v_n} / sum_j theta_j beta_{j,v_n}
        B = theta[:, None] * self.beta[:, idx]
        return B / np.maximum(B.sum(axis=0, keepdims=True), 1e-300)

    def grad_objective(self, eta: np.ndarray, idx: np.ndarray, cnt: np.ndarray,
                       mu: np.ndarray, sigma_inv: np.ndarray) -> np.ndarray:
        theta = theta_from_eta(eta)
        phi = self.phi(theta, idx)
        N = cnt.sum()
        g = phi @ cnt - N * theta
        return g[:-1] - sigma_inv @ (eta - mu)

    def hessian_objective(self, eta: np.ndarray, idx: np.ndarray, cnt: np.ndarray,
                          sigma_inv: np.ndarray) -> np.ndarray:
        theta = theta_from_eta(eta)
        phi = self.phi(theta, idx)
        N = cnt.sum()
        phic = phi * cnt
        H = np.diag(phic.sum(axis=1)) - phic @ phi.T
        H -= N * (np.diag(theta) - np.outer(theta, theta))
        return H[:-1, :-1] - sigma_inv

    def expected_counts(self, eta: np.ndarray, idx: np.ndarray, cnt: np.ndarray) -> np.ndarray:
        # expected topic assignments of the document's words, K x len(idx)
        return self.phi(theta_from_eta(eta), idx) * cnt


@dataclass(frozen=True)
class FittedTopicModel:
    K: int
    theta: np.ndarray            # D x K, rows sum to 1
    beta: np.ndarray             # K x V, rows sum to 1
    eta: np.ndarray              # D x (K-1) posterior modes
    nu: np.ndarray               # D x (K-1) x (K-1) Laplace covariances
    gamma: np.ndarray            # P x (K-1)
    sigma: np.ndarray            # (K-1) x (K-1)
    vocabulary: Vocabulary
    doc_ids: tuple
    design: PrevalenceDesign
    bound_history: List[float] = field(default_factory=list)
    converged: bool = False
    init: str = "spectral"
    seed: int = 0

    @property
    def bound(self) -> float:
        return self.bound_history[-1] if self.bound_history else float("nan")

    def _check_topic(self, topic: int) -> int:
        if not isinstance(topic, (int, np.integer)) or not 0 <= topic < self.K:
            raise TopicIndexError(f"topic index {topic} out of range for K={self.K}")
        return int(topic)

    def renormalized(self) -> "FittedTopicModel":
        theta = self.theta / self.theta.sum(axis=1, keepdims=True)
        beta = self.beta / self.beta.sum(axis=1, keepdims=True)
        return FittedTopicModel(**{**self.__dict__, "theta": theta, "beta": beta})

    def top_terms(self, topic: int, n: int = 10) -> List[str]:
        b = self.beta[self._check_topic(topic)]
        order = np.argsort(-b, kind="stable")[:n]
        return [self.vocabulary[i] for i in order]

    def frex_terms(self, topic: int, n: int = 10, w: float = 0.5) -> List[str]:
        """Terms ranked by the harmonic mean of frequency and exclusivity ranks."""
        k = self._check_topic(topic)
        frex = frex_scores(self.beta, w=w)[k]
        order = np.argsort(-frex, kind="stable")[:n]
        return [self.vocabulary[i] for i in order]

    def label_topics(self, n: int = 10) -> pd.DataFrame:
        rows = []
        for k in range(self.K):
            rows.append({"topic": k, "prob": ", ".join(self.top_terms(k, n)),
                         "frex": ", ".join(self.frex_terms(k, n))})
        return pd.DataFrame(rows)

    def dominant_topics(self) -> np.ndarray:
        # argmax returns the lowest index among ties
        return np.argmax(self.theta, axis=1)

    def find_thoughts(self, topic: int, n: int = 3,
                      doc_ids: Optional[Sequence[str]] = None) -> List[Tuple[str, float]]:
        """Top-n documents of ``doc_ids`` (default: all) by theta mass on ``topic``."""
        k = self._check_topic(topic)
        pos = {d: i for i, d in enumerate(self.doc_ids)}
        if doc_ids is None:
            rows = list(range(len(self.doc_ids)))
        else:
            try:
                rows = [pos[d] for d in doc_ids]
            except KeyError as e:
                raise TopicIndexError(f"unknown document id {e.args[0]!r}") from None
        mass = self.theta[rows, k]
        order = np.argsort(-mass, kind="stable")[:n]
        return [(self.doc_ids[rows[i]], float(mass[i])) for i in order]

    def doc_topic_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.theta, columns=[f"topic_{k}" for k in range(self.K)])
        df.insert(0, "doc_id", list(self.doc_ids))
        df["dominant_topic"] = self.dominant_topics()
        return df

    def topic_term_frame(self, n: int = 10) -> pd.DataFrame:
        rows = []
        for k in range(self.K):
            for rank, i in enumerate(np.argsort(-self.beta[k], kind="stable")[:n]):
                rows.append({"topic": k, "rank": rank, "term": self.vocabulary[i],
                             "prob": float(self.beta[k, i])})
        return pd.DataFrame(rows)


def frex_scores(beta: np.ndarray, w: float = 0.5) -> np.ndarray:
    # empirical CDF ranks within each topic, as in STM's calcfrex
    excl = beta / beta.sum(axis=0, keepdims=True)
    V = beta.shape[1]
    freq_rank = np.vstack([rankdata(row, method="max") for row in beta]) / V
    excl_rank = np.vstack([rankdata(row, method="max") for row in excl]) / V
    return 1.0 / (w / excl_rank + (1 - w) / freq_rank)


def exclusivity(beta: np.ndarray, n: int = 10, w: float = 0.7) -> np.ndarray:
    """Per-topic FREX-weighted exclusivity of the top ``n`` terms."""
    frex = frex_scores(beta, w=w)
    out = np.zeros(beta.shape[0])
    for k in range(beta.shape[0]):
        top = np.argsort(-beta[k], kind="stable")[:n]
        out[k] = frex[k, top].sum()
    return out
