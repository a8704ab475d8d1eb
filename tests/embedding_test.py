import logging

import numpy as np
import pytest

from blogstm.config import EmbeddingConfig
from blogstm.embedding import document_embeddings, flatten_stream, train_embedding
from blogstm.errors import DimensionMismatchError, InsufficientDataError

from conftest import ASYLUM


@pytest.fixture
def embedding(corpus):
    return train_embedding(corpus.token_lists, EmbeddingConfig(dimension=8, min_count=1, epochs=2, seed=3))


def test_flatten_stream_keeps_order(monkeypatch):
    import blogstm.embedding as emb
    monkeypatch.setattr(emb, "MAX_WORDS_IN_BATCH", 3)
    chunks = flatten_stream([["a", "b"], ["c", "d", "e"], [], ["f"]])
    assert chunks == [["a", "b", "c"], ["d", "e", "f"]]
    assert flatten_stream([]) == []


def test_vocabulary_and_vectors(embedding):
    assert embedding.dimension == 8
    for term in ASYLUM:
        assert term in embedding
        assert embedding.vector(term).shape == (8,)
    assert "zzz" not in embedding
    frame = embedding.to_frame()
    assert frame.shape == (len(embedding), 9)
    assert frame.columns[0] == "term"


def test_nearest_terms_excludes_query(embedding):
    near = embedding.nearest_terms("asylum", n=5)
    assert len(near) == 5
    assert "asylum" not in [w for w, _ in near]
    sims = [s for _, s in near]
    assert sims == sorted(sims, reverse=True)
    with pytest.raises(KeyError):
        embedding.nearest_terms("zzz")


def test_document_embeddings_are_token_means(embedding):
    tokens = [["asylum", "border"], ["coal"]]
    vecs = document_embeddings(embedding, tokens, ["a", "b"])
    assert vecs.shape == (2, 8)
    expected = (embedding.vector("asylum") + embedding.vector("border")) / 2
    assert np.allclose(vecs[0], expected, atol=1e-6)


def test_document_embedding_fallback_is_logged(embedding, caplog):
    tokens = [["asylum"], ["zzz", "qqq"], ["coal"]]
    with caplog.at_level(logging.WARNING, logger="blogstm.embedding"):
        vecs = document_embeddings(embedding, tokens, ["a", "bad", "c"])
    assert np.allclose(vecs[1], (vecs[0] + vecs[2]) / 2)
    assert any("'bad'" in r.getMessage() for r in caplog.records)


def test_dimension_mismatch_error_is_a_blogstm_error():
    from blogstm.embedding import _check_vector
    with pytest.raises(DimensionMismatchError):
        _check_vector(np.zeros(3), 8, "x")
    with pytest.raises(DimensionMismatchError):
        _check_vector(np.full(8, np.nan), 8, "x")


def test_no_term_reaches_min_count():
    config = EmbeddingConfig(dimension=4, min_count=5, epochs=1)
    with pytest.raises(InsufficientDataError, match="min_count=5"):
        train_embedding([["alpha", "beta"], ["gamma"]], config)
    with pytest.raises(InsufficientDataError):
        train_embedding([[], []], config)
