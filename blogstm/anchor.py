import numpy as np
from typing import List, Tuple
from scipy import sparse
from sklearn.decomposition import NMF

"""
Initial topic-term distributions for the EM.

- spectral: anchor words via the Successive Projections Algorithm (SPA) on the
  row-normalised word co-occurrence matrix (Arora et al. 2012/2013). Deterministic.
- nmf: scikit-learn NMF (nndsvda) on the count matrix. Deterministic given the seed.
- random: Dirichlet draws from the seeded generator.

Every initializer returns beta0 with shape K x V and rows summing to 1.
"""

INIT_MODES = ("spectral", "nmf", "random")


class AnchorInitializer:
    def __init__(self, K: int, vocab_size: int):
        self.K = K
        self.V = vocab_size

    @staticmethod
    def build_cooccurrence(counts: sparse.csr_matrix) -> np.ndarray:
        # Q = sum_d (c_d c_d^T) / sum_d sum_j c_{d,j}, then row-normalised
        C = sparse.csr_matrix(counts, dtype=np.float64)
        Q = np.asarray((C.T @ C).todense())
        total_words = C.sum()
        if total_words > 0:
            Q /= total_words
        row_sums = Q.sum(axis=1, keepdims=True)
        row_sums[row_sums == 0] = 1.0
        return Q / row_sums

    @staticmethod
    def successive_projections(Q: np.ndarray, K: int) -> List[int]:
        # pick rows with largest norms after orthogonal projections
        anchors: List[int] = []
        R = Q.copy()
        for _ in range(K):
            norms = np.linalg.norm(R, axis=1)
            norms[anchors] = -np.inf
            j = int(np.argmax(norms))
            anchors.append(j)
            rj = R[j:j + 1, :]
            denom = float(rj.ravel() @ rj.ravel())
            if denom <= 1e-12:
                continue
            R = R - ((R @ rj.T) / denom) @ rj
        return anchors

    @staticmethod
    def recover_topics(Q: np.ndarray, anchors: List[int]) -> np.ndarray:
        # Each column of Q as a least-squares combination of the anchor rows,
        # projected onto the simplex; beta_k,v proportional to the weights.
        K = len(anchors)
        A = Q[anchors, :]
        AtA = A @ A.T + 1e-6 * np.eye(K)
        W = np.linalg.solve(AtA, A @ Q)      # K x V
        W = np.maximum(W, 0.0)
        col = W.sum(axis=0)
        flat = col <= 1e-12
        W[:, flat] = 1.0 / K
        W[:, ~flat] /= col[~flat]
        topics = np.maximum(W, 1e-12)
        return topics / topics.sum(axis=1, keepdims=True)

    def initialize(self, counts: sparse.csr_matrix) -> Tuple[np.ndarray, List[int]]:
        Q = self.build_cooccurrence(counts)
        anchors = self.successive_projections(Q, self.K)
        return self.recover_topics(Q, anchors), anchors


def nmf_initialize(counts: sparse.csr_matrix, K: int, random_state: int = 0) -> np.ndarray:
    model = NMF(n_components=K, init='nndsvda', random_state=random_state, max_iter=500)
    model.fit(sparse.csr_matrix(counts, dtype=np.float64))
    H = model.components_ + 1e-6
    return H / H.sum(axis=1, keepdims=True)


def random_initialize(K: int, V: int, rng: np.random.Generator) -> np.ndarray:
    return rng.dirichlet(np.full(V, 0.1), size=K) * (1 - 1e-9) + 1e-9 / V


def initial_beta(mode: str, counts: sparse.csr_matrix, K: int, seed: int,
                 rng: np.random.Generator) -> np.ndarray:
    V = counts.shape[1]
    if mode == "spectral":
        beta0, _ = AnchorInitializer(K, V).initialize(counts)
    elif mode == "nmf":
        beta0 = nmf_initialize(counts, K, random_state=seed)
    elif mode == "random":
        beta0 = random_initialize(K, V, rng)
    else:
        raise ValueError(f"unknown init mode {mode!r}, expected one of {INIT_MODES}")
    return beta0 / beta0.sum(axis=1, keepdims=True)
