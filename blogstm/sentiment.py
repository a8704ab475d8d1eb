"""Lexicon and embedding sentiment/emotion scores.

Both paths produce a table with one column per lexicon category. The two
sentiment columns (negative, positive) and the eight emotion columns are
normalised separately so each group sums to 1. A group with no mass is NaN
in all of its columns, so aggregate means skip it instead of counting zeros.
The producing path is recorded in ``table.attrs["method"]``.
"""
import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from .dtm import DocumentTermMatrix, Vocabulary
from .embedding import WordEmbedding
from .errors import NormalizationError
from .lexicon import CATEGORIES, EMOTIONS, SENTIMENTS, SentimentLexicon

logger = logging.getLogger(__name__)

GROUPS = {"sentiment": SENTIMENTS, "emotion": EMOTIONS}
BUCKETS = ("date", "month", "organisation", "topic")


def category_term_matrix(vocabulary: Vocabulary, lexicon: SentimentLexicon) -> sparse.csr_matrix:
    """V x categories membership; a term may belong to several categories or none."""
    rows, cols = [], []
    for j, cat in enumerate(CATEGORIES):
        for term in lexicon.members(cat):
            i = vocabulary.get(term)
            if i is not None:
                rows.append(i)
                cols.append(j)
    data = np.ones(len(rows))
    return sparse.csr_matrix((data, (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64))),
                             shape=(len(vocabulary), len(CATEGORIES)))


def normalize_group(masses: np.ndarray) -> np.ndarray:
    total = float(np.sum(masses))
    if not np.isfinite(total) or total <= 0:
        raise NormalizationError(f"score group has total mass {total}")
    return np.asarray(masses, dtype=np.float64) / total


def normalize_scores(raw: pd.DataFrame, method: str) -> pd.DataFrame:
    out = pd.DataFrame(np.nan, index=raw.index, columns=list(CATEGORIES))
    undefined = {name: 0 for name in GROUPS}
    for name, cols in GROUPS.items():
        cols = list(cols)
        values = raw[cols].to_numpy(dtype=np.float64)
        for r in range(len(values)):
            try:
                out.iloc[r, [out.columns.get_loc(c) for c in cols]] = normalize_group(values[r])
            except NormalizationError:
                undefined[name] += 1
    for name, n in undefined.items():
        if n:
            logger.info("%s scores: %d of %d rows have no %s mass and are left undefined",
                        method, n, len(raw), name)
    out.attrs["method"] = method
    return out


def lexicon_scores(dtm: DocumentTermMatrix, lexicon: SentimentLexicon,
                   groups: Optional[Sequence] = None) -> pd.DataFrame:
    """Summed proportional term weights per category, normalised per group.

    With ``groups`` (one label per DTM row) the raw masses are summed per
    bucket first and the buckets are normalised.
    """
    M = category_term_matrix(dtm.vocabulary, lexicon)
    masses = np.asarray((dtm.proportions() @ M).todense())
    raw = pd.DataFrame(masses, index=pd.Index(dtm.doc_ids, name="doc_id"), columns=list(CATEGORIES))
    if groups is not None:
        raw = raw.groupby(np.asarray(groups), sort=True).sum()
    return normalize_scores(raw, method="lexicon")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; exactly 0.0 when either vector is zero."""
    na, nb = np.linalg.norm(a), np.linalg.norm(b)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


def category_vectors(embedding: WordEmbedding, lexicon: SentimentLexicon) -> Dict[str, np.ndarray]:
    """Mean embedding of each category's members; zero vector when none are known."""
    out = {}
    for cat in CATEGORIES:
        vec = embedding.mean_vector(sorted(lexicon.members(cat)))
        if vec is None:
            logger.info("no member of lexicon category %r is in the embedding vocabulary; using a zero vector", cat)
            vec = np.zeros(embedding.dimension)
        out[cat] = np.asarray(vec, dtype=np.float64)
    return out


def embedding_scores(doc_vectors: np.ndarray, cat_vectors: Dict[str, np.ndarray],
                     index: Optional[Sequence] = None) -> pd.DataFrame:
    """Cosine similarity of each row vector to each category vector, normalised per group.

    Negative similarities count as no affinity (0) before normalising.
    """
    doc_vectors = np.atleast_2d(doc_vectors)
    sims = np.array([[cosine_similarity(v, cat_vectors[c]) for c in CATEGORIES] for v in doc_vectors])
    raw = pd.DataFrame(np.maximum(sims, 0.0), columns=list(CATEGORIES),
                       index=pd.Index(index if index is not None else range(len(doc_vectors)), name="doc_id"))
    return normalize_scores(raw, method="embedding")


def corpus_embedding_scores(doc_vectors: np.ndarray, cat_vectors: Dict[str, np.ndarray]) -> pd.DataFrame:
    return embedding_scores(doc_vectors.mean(axis=0, keepdims=True), cat_vectors, index=["corpus"])


def score_keys(doc_ids: Sequence[str], organisations: Sequence[str], dates: Sequence,
               dominant_topics: Optional[Sequence[int]] = None) -> pd.DataFrame:
    keys = pd.DataFrame({"organisation": list(organisations), "date": pd.to_datetime(list(dates))},
                        index=pd.Index(list(doc_ids), name="doc_id"))
    keys["month"] = keys["date"].dt.to_period("M").astype(str)
    if dominant_topics is not None:
        keys["topic"] = np.asarray(dominant_topics, dtype=int)
    return keys


def aggregate_scores(scores: pd.DataFrame, keys: pd.DataFrame, by: str) -> pd.DataFrame:
    """Mean of already-normalised scores per bucket; undefined scores are skipped."""
    if by not in BUCKETS:
        raise ValueError(f"unknown bucket {by!r}, expected one of {BUCKETS}")
    if by not in keys.columns:
        raise ValueError(f"bucket {by!r} is not available in the score keys")
    labels = keys[by].reindex(scores.index)
    out = scores.groupby(labels.to_numpy(), sort=True).mean()
    out.index.name = by
    out.attrs["method"] = scores.attrs.get("method")
    return out
