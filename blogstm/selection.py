"""Diagnostics for choosing the number of topics.

``search_k`` fits one model per candidate K on a corpus with part of the
words held out and reports, per K:

- held-out log-likelihood: mean per-word log-likelihood of the masked words
  under the fitted theta and beta,
- semantic coherence: UMass co-document coherence of each topic's top terms,
- the variational lower bound at convergence,
- residual dispersion (Taddy 2012): sigma^2 of the multinomial residuals,
  close to 1 when K is large enough,
- exclusivity of the top terms.

The choice of K is left to the analyst; nothing here ranks the candidates.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import sparse
from scipy.stats import chi2

from .config import TopicModelConfig
from .covariates import PrevalenceDesign
from .dtm import DocumentTermMatrix
from .em import run_em
from .model import exclusivity, theta_from_eta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeldOut:
    train: DocumentTermMatrix        # same rows and vocabulary, masked words removed
    heldout: sparse.csr_matrix       # removed words per document
    rows: np.ndarray                 # documents that lost words


def make_heldout(dtm: DocumentTermMatrix, proportion: float = 0.1, fraction: float = 0.5,
                 seed: int = 0) -> HeldOut:
    """Remove ``fraction`` of the tokens of a random ``proportion`` of the documents."""
    rng = np.random.default_rng(seed)
    counts = sparse.csr_matrix(dtm.counts)
    eligible = np.flatnonzero(dtm.row_sums() >= 2)
    n_hold = max(1, int(round(proportion * len(eligible)))) if len(eligible) else 0
    rows = np.sort(rng.choice(eligible, size=n_hold, replace=False)) if n_hold else np.array([], dtype=int)
    held = sparse.lil_matrix(counts.shape, dtype=np.int64)
    train = counts.tolil(copy=True)
    for d in rows:
        lo, hi = counts.indptr[d], counts.indptr[d + 1]
        tokens = np.repeat(counts.indices[lo:hi], counts.data[lo:hi])
        n_take = max(1, int(math.floor(fraction * len(tokens))))
        taken = rng.choice(len(tokens), size=n_take, replace=False)
        removed = np.bincount(tokens[taken], minlength=counts.shape[1])
        for v in np.flatnonzero(removed):
            held[d, v] = removed[v]
            train[d, v] = train[d, v] - removed[v]
    train = sparse.csr_matrix(train)
    train.eliminate_zeros()
    return HeldOut(
        train=DocumentTermMatrix(counts=train, vocabulary=dtm.vocabulary, doc_ids=dtm.doc_ids),
        heldout=sparse.csr_matrix(held),
        rows=rows,
    )


def heldout_likelihood(theta: np.ndarray, beta: np.ndarray, held: HeldOut) -> float:
    """Mean over held-out documents of the per-word log-likelihood of their removed words."""
    per_doc = []
    for d in held.rows:
        row = held.heldout.getrow(d)
        if row.nnz == 0:
            continue
        p = np.maximum(theta[d] @ beta[:, row.indices], 1e-300)
        per_doc.append(float(row.data @ np.log(p)) / row.data.sum())
    return float(np.mean(per_doc)) if per_doc else float("nan")


def semantic_coherence(beta: np.ndarray, counts: sparse.csr_matrix, top_n: int = 10) -> np.ndarray:
    """UMass coherence per topic: mean over pairs of log((D(wi, wj) + 1) / D(wj)),
    with wj ranked above wi in the topic."""
    B = sparse.csc_matrix((counts > 0).astype(np.float64))
    out = np.zeros(beta.shape[0])
    for k in range(beta.shape[0]):
        top = np.argsort(-beta[k], kind="stable")[:top_n]
        sub = B[:, top]
        co = np.asarray((sub.T @ sub).todense())
        df = np.diag(co)
        vals = []
        for i in range(1, len(top)):
            for j in range(i):
                if df[j] > 0:
                    vals.append(math.log((co[i, j] + 1.0) / df[j]))
        out[k] = float(np.mean(vals)) if vals else 0.0
    return out


def residual_dispersion(theta: np.ndarray, beta: np.ndarray, counts: sparse.csr_matrix) -> Dict[str, float]:
    """Multinomial dispersion of the residuals; sigma^2 > 1 suggests too few topics."""
    counts = sparse.csr_matrix(counts)
    D, V = counts.shape
    K = beta.shape[0]
    total = 0.0
    n_docs = 0
    for d in range(D):
        m = counts[d].sum()
        if m == 0:
            continue
        n_docs += 1
        q = np.clip(theta[d] @ beta, 1e-12, 1 - 1e-12)
        x = np.asarray(counts[d].todense()).ravel()
        denom = m * q * (1 - q)
        total += float(np.sum((x * x - 2 * x * m * q) / denom) + np.sum(m * q / (1 - q)))
    df = n_docs * (V - 1) - K * (V - 1) - n_docs * (K - 1)
    if df <= 0:
        return {"dispersion": float("nan"), "pvalue": float("nan")}
    return {"dispersion": total / df, "pvalue": float(chi2.sf(total, df))}


def evaluate_candidate(held: HeldOut, full: DocumentTermMatrix, X: np.ndarray, K: int,
                       config: TopicModelConfig) -> Dict[str, float]:
    model, runner, eta, _ = run_em(held.train, X, K, config)
    theta = theta_from_eta(eta)
    coherence = semantic_coherence(model.beta, full.counts, top_n=config.coherence_top_n)
    resid = residual_dispersion(theta, model.beta, held.train.counts)
    return {
        "K": K,
        "heldout": heldout_likelihood(theta, model.beta, held),
        "semcoh": float(coherence.mean()),
        "bound": float(runner.history[-1]),
        "residual": resid["dispersion"],
        "residual_pvalue": resid["pvalue"],
        "exclus": float(exclusivity(model.beta, n=config.coherence_top_n).mean()),
        "em_its": len(runner.history),
        "converged": runner.converged,
    }


def search_k(dtm: DocumentTermMatrix, design: PrevalenceDesign, candidates: Optional[Sequence[int]] = None,
             config: Optional[TopicModelConfig] = None, n_jobs: int = 1) -> pd.DataFrame:
    """Fit one model per candidate K and return their diagnostics, one row per K."""
    config = config or TopicModelConfig()
    candidates = list(candidates if candidates is not None else config.candidate_k)
    held = make_heldout(dtm, proportion=config.heldout_proportion,
                        fraction=config.heldout_fraction_words, seed=config.seed)
    logger.info("searching K in %s with %d held-out documents", candidates, len(held.rows))
    if n_jobs == 1:
        results = [evaluate_candidate(held, dtm, design.X, K, replace(config, K=K)) for K in candidates]
    else:
        # the patsy design info does not pickle, so workers only get the design matrix
        results = Parallel(n_jobs=n_jobs)(
            delayed(evaluate_candidate)(held, dtm, design.X, K, replace(config, K=K))
            for K in candidates)
    return pd.DataFrame(results, columns=["K", "heldout", "semcoh", "bound", "residual",
                                          "residual_pvalue", "exclus", "em_its", "converged"])
