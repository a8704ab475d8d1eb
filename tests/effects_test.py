import numpy as np
import pytest

from blogstm.effects import estimate_effect, sample_theta
from blogstm.errors import TopicIndexError


def test_sample_theta_is_row_stochastic(fitted):
    theta = sample_theta(fitted, np.random.default_rng(0))
    assert theta.shape == fitted.theta.shape
    assert np.allclose(theta.sum(axis=1), 1.0)


def test_effect_over_day_of_year(fitted):
    est = estimate_effect(fitted, 0, "day_of_year", n_points=12, nsims=5, seed=1)
    assert len(est.values) == 12
    assert est.mean.shape == (12,)
    assert np.all(est.lower <= est.upper)
    assert np.all(np.isfinite(est.mean))
    frame = est.to_frame()
    assert list(frame.columns) == ["topic", "day_of_year", "estimate", "lower", "upper"]

    again = estimate_effect(fitted, 0, "day_of_year", n_points=12, nsims=5, seed=1)
    assert np.array_equal(est.mean, again.mean)


def test_effect_over_organisation_levels(fitted):
    est = estimate_effect(fitted, 1, "organisation", nsims=4, seed=2)
    assert est.values == ["amnesty", "greenpeace", "oxfam"]
    assert est.mean.shape == (3,)


def test_effect_rejects_bad_topic(fitted):
    with pytest.raises(TopicIndexError):
        estimate_effect(fitted, 7, "day_of_year")
