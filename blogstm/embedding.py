import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from gensim.models import KeyedVectors, Word2Vec
from gensim.models.word2vec import MAX_WORDS_IN_BATCH

from .config import EmbeddingConfig
from .errors import DimensionMismatchError, InsufficientDataError

logger = logging.getLogger(__name__)


def flatten_stream(token_lists: Sequence[Sequence[str]]) -> List[List[str]]:
    """Concatenate the documents in order and cut the stream into gensim-sized chunks.

    Context windows cross document boundaries; gensim truncates longer
    sentences, so the stream is split every MAX_WORDS_IN_BATCH tokens.
    """
    stream = [t for tokens in token_lists for t in tokens]
    return [stream[i:i + MAX_WORDS_IN_BATCH] for i in range(0, len(stream), MAX_WORDS_IN_BATCH)]


@dataclass(frozen=True)
class WordEmbedding:
    vectors: KeyedVectors
    dimension: int

    def __contains__(self, term: str) -> bool:
        return term in self.vectors.key_to_index

    def __len__(self) -> int:
        return len(self.vectors.key_to_index)

    @property
    def terms(self) -> List[str]:
        return list(self.vectors.index_to_key)

    def vector(self, term: str) -> np.ndarray:
        return self.vectors[term].copy()

    def nearest_terms(self, term: str, n: int = 10) -> List[Tuple[str, float]]:
        """Top-n terms by cosine similarity, the query term itself excluded."""
        if term not in self:
            raise KeyError(f"term {term!r} not in the embedding vocabulary")
        return [(w, float(s)) for w, s in self.vectors.most_similar(term, topn=n)]

    def mean_vector(self, tokens: Sequence[str]) -> Optional[np.ndarray]:
        vecs = [self.vectors[t] for t in tokens if t in self.vectors.key_to_index]
        return np.mean(vecs, axis=0) if vecs else None

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.vectors.vectors, columns=[f"dim_{i}" for i in range(self.dimension)])
        df.insert(0, "term", self.terms)
        return df


def train_embedding(token_lists: Sequence[Sequence[str]],
                    config: Optional[EmbeddingConfig] = None) -> WordEmbedding:
    """Skip-gram word vectors over the flattened token stream.

    Raises InsufficientDataError when no term occurs ``min_count`` times.
    """
    config = config or EmbeddingConfig()
    sentences = flatten_stream(token_lists)
    model = Word2Vec(
        vector_size=config.dimension,
        window=config.window,
        min_count=config.min_count,
        sg=1,
        negative=config.negative,
        seed=config.seed,
        workers=1,   # a single worker keeps training reproducible
    )
    if sentences:
        model.build_vocab(sentences)
    if not model.wv.key_to_index:
        raise InsufficientDataError(
            f"no term occurs at least min_count={config.min_count} times in the token stream")
    model.train(sentences, total_examples=model.corpus_count, epochs=config.epochs)
    logger.info("trained %d-dimensional embeddings for %d terms (%d epochs)",
                config.dimension, len(model.wv.key_to_index), config.epochs)
    return WordEmbedding(vectors=model.wv, dimension=config.dimension)


def _check_vector(vec: Optional[np.ndarray], dimension: int, doc_id: str) -> np.ndarray:
    if vec is None:
        raise DimensionMismatchError(f"document {doc_id!r} has no in-vocabulary tokens")
    vec = np.asarray(vec, dtype=np.float64)
    if vec.shape != (dimension,):
        raise DimensionMismatchError(
            f"document {doc_id!r} embedding has shape {vec.shape}, expected ({dimension},)")
    if not np.all(np.isfinite(vec)):
        raise DimensionMismatchError(f"document {doc_id!r} embedding has missing values")
    return vec


def document_embeddings(embedding: WordEmbedding, token_lists: Sequence[Sequence[str]],
                        doc_ids: Optional[Sequence[str]] = None) -> np.ndarray:
    """Mean token vector per document, D x dimension.

    A malformed document vector is replaced by the mean of all other valid
    document vectors; each replacement is logged.
    """
    doc_ids = list(doc_ids) if doc_ids is not None else [str(i) for i in range(len(token_lists))]
    out = np.zeros((len(token_lists), embedding.dimension))
    invalid: Dict[int, str] = {}
    for d, tokens in enumerate(token_lists):
        try:
            out[d] = _check_vector(embedding.mean_vector(tokens), embedding.dimension, doc_ids[d])
        except DimensionMismatchError as e:
            invalid[d] = str(e)
    if invalid:
        valid = [d for d in range(len(token_lists)) if d not in invalid]
        fallback = out[valid].mean(axis=0) if valid else np.zeros(embedding.dimension)
        for d, reason in invalid.items():
            logger.warning("%s; replaced by the corpus mean of %d valid document embeddings",
                           reason, len(valid))
            out[d] = fallback
    return out
