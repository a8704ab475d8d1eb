import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Union

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn.feature_extraction.text import TfidfTransformer

from .text import NormalizedCorpus

logger = logging.getLogger(__name__)

WEIGHTINGS = ("count", "tfidf", "proportion")


class Vocabulary:
    """Ordered term -> column index mapping, fixed once built."""

    def __init__(self, terms: Sequence[str]):
        self._terms = tuple(terms)
        self._index: Dict[str, int] = {t: i for i, t in enumerate(self._terms)}
        if len(self._index) != len(self._terms):
            raise ValueError("vocabulary terms must be unique")

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, term: str) -> bool:
        return term in self._index

    def __iter__(self):
        return iter(self._terms)

    def __getitem__(self, i: int) -> str:
        return self._terms[i]

    def __eq__(self, other) -> bool:
        return isinstance(other, Vocabulary) and self._terms == other._terms

    def index(self, term: str) -> int:
        return self._index[term]

    def get(self, term: str, default=None):
        return self._index.get(term, default)

    @property
    def terms(self) -> List[str]:
        return list(self._terms)


@dataclass(frozen=True)
class DocumentTermMatrix:
    counts: sparse.csr_matrix   # documents x vocabulary, non-negative counts
    vocabulary: Vocabulary
    doc_ids: tuple

    def __post_init__(self):
        D, V = self.counts.shape
        if D != len(self.doc_ids) or V != len(self.vocabulary):
            raise ValueError(f"matrix shape {self.counts.shape} does not match "
                             f"{len(self.doc_ids)} documents x {len(self.vocabulary)} terms")

    @property
    def shape(self):
        return self.counts.shape

    def row_sums(self) -> np.ndarray:
        return np.asarray(self.counts.sum(axis=1)).ravel()

    def doc_frequencies(self) -> np.ndarray:
        return np.asarray((self.counts > 0).sum(axis=0)).ravel()

    def tfidf(self) -> sparse.csr_matrix:
        """Counts times ln(N/df) + 1, as a new matrix."""
        transformer = TfidfTransformer(norm=None, smooth_idf=False, sublinear_tf=False)
        return sparse.csr_matrix(transformer.fit_transform(self.counts.astype(np.float64)))

    def proportions(self) -> sparse.csr_matrix:
        """Each row divided by its row sum; rows without retained terms stay zero."""
        sums = self.row_sums().astype(np.float64)
        inv = np.divide(1.0, sums, out=np.zeros_like(sums), where=sums > 0)
        return sparse.csr_matrix(sparse.diags(inv) @ self.counts.astype(np.float64))

    def weighted(self, weighting: str = "count") -> sparse.csr_matrix:
        if weighting == "count":
            return self.counts
        if weighting == "tfidf":
            return self.tfidf()
        if weighting == "proportion":
            return self.proportions()
        raise ValueError(f"unknown weighting {weighting!r}, expected one of {WEIGHTINGS}")

    def top_terms(self, n: int = 10, weighting: str = "count") -> List[str]:
        scores = np.asarray(self.weighted(weighting).sum(axis=0)).ravel()
        # stable sort keeps vocabulary order among ties
        order = np.argsort(-scores, kind="stable")[:n]
        return [self.vocabulary[i] for i in order]

    def subset(self, doc_ids: Iterable[str]) -> "DocumentTermMatrix":
        pos = {d: i for i, d in enumerate(self.doc_ids)}
        rows = [pos[d] for d in doc_ids]
        return DocumentTermMatrix(counts=self.counts[rows], vocabulary=self.vocabulary,
                                  doc_ids=tuple(self.doc_ids[r] for r in rows))

    def nontrivial_rows(self) -> np.ndarray:
        return np.flatnonzero(self.row_sums() > 0)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "term": self.vocabulary.terms,
            "doc_freq": self.doc_frequencies(),
            "count": np.asarray(self.counts.sum(axis=0)).ravel(),
        })


def build_vocabulary(term_lists: Sequence[Sequence[str]], min_df: int = 5) -> Vocabulary:
    """Terms present in at least ``min_df`` documents, in order of first appearance."""
    df: Dict[str, int] = {}
    for terms in term_lists:
        for w in dict.fromkeys(terms):
            df[w] = df.get(w, 0) + 1
    return Vocabulary([w for w, d in df.items() if d >= min_df])


def vectorize(term_lists: Sequence[Sequence[str]], vocab: Vocabulary) -> sparse.csr_matrix:
    rows, cols, vals = [], [], []
    for d, terms in enumerate(term_lists):
        counts: Dict[int, int] = {}
        for w in terms:
            idx = vocab.get(w)
            if idx is not None:
                counts[idx] = counts.get(idx, 0) + 1
        for idx in sorted(counts):
            rows.append(d)
            cols.append(idx)
            vals.append(counts[idx])
    return sparse.csr_matrix((np.array(vals, dtype=np.int64),
                              (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64))),
                             shape=(len(term_lists), len(vocab)))


def build_dtm(corpus: Union[NormalizedCorpus, Sequence[Sequence[str]]], min_df: int = 5,
              doc_ids: Sequence[str] = None) -> DocumentTermMatrix:
    if isinstance(corpus, NormalizedCorpus):
        term_lists = corpus.term_lists
        doc_ids = corpus.doc_ids
    else:
        term_lists = list(corpus)
        doc_ids = list(doc_ids) if doc_ids is not None else [str(i) for i in range(len(term_lists))]
    vocab = build_vocabulary(term_lists, min_df=min_df)
    counts = vectorize(term_lists, vocab)
    dtm = DocumentTermMatrix(counts=counts, vocabulary=vocab, doc_ids=tuple(doc_ids))
    n_empty = len(doc_ids) - len(dtm.nontrivial_rows())
    logger.info("document-term matrix: %d documents x %d terms (min_df=%d, %d rows without retained terms)",
                counts.shape[0], counts.shape[1], min_df, n_empty)
    return dtm
