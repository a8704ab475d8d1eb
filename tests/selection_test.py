import numpy as np
import pytest

from blogstm.selection import (heldout_likelihood, make_heldout, residual_dispersion, search_k,
                               semantic_coherence)

from conftest import make_config


def test_make_heldout_partitions_counts(dtm):
    held = make_heldout(dtm, proportion=0.1, fraction=0.5, seed=3)
    assert len(held.rows) == 4
    total = held.train.counts + held.heldout
    assert (total != dtm.counts).nnz == 0
    assert held.train.counts.min() >= 0
    # every masked document keeps some of its words
    assert np.all(held.train.row_sums()[held.rows] > 0)
    assert held.heldout.sum() > 0

    again = make_heldout(dtm, proportion=0.1, fraction=0.5, seed=3)
    assert held.rows.tolist() == again.rows.tolist()


def test_heldout_likelihood_is_negative(dtm, fitted):
    held = make_heldout(dtm, seed=1)
    ll = heldout_likelihood(fitted.theta, fitted.beta, held)
    assert np.isfinite(ll)
    assert ll < 0


def test_semantic_coherence_and_dispersion(dtm, fitted):
    coh = semantic_coherence(fitted.beta, dtm.counts, top_n=5)
    assert coh.shape == (2,)
    assert np.all(np.isfinite(coh))
    resid = residual_dispersion(fitted.theta, fitted.beta, dtm.counts)
    assert set(resid) == {"dispersion", "pvalue"}
    assert resid["dispersion"] > 0
    assert 0 <= resid["pvalue"] <= 1


def test_search_k_reports_one_row_per_candidate(dtm, design):
    config = make_config(max_em_iter=2)
    table = search_k(dtm, design, [2, 3], config.topic_model)
    assert list(table.columns) == ["K", "heldout", "semcoh", "bound", "residual",
                                   "residual_pvalue", "exclus", "em_its", "converged"]
    assert table["K"].tolist() == [2, 3]
    assert np.all(np.isfinite(table["heldout"]))
    assert np.all(table["em_its"] <= 2)


@pytest.mark.slow
def test_search_k_parallel_matches_serial(dtm, design):
    config = make_config(max_em_iter=2)
    serial = search_k(dtm, design, [2, 3], config.topic_model, n_jobs=1)
    parallel = search_k(dtm, design, [2, 3], config.topic_model, n_jobs=2)
    assert np.allclose(serial["bound"], parallel["bound"])
