import numpy as np
import pytest

from blogstm.covariates import PrevalenceDesign


def test_design_columns(design, dtm):
    assert design.X.shape[0] == dtm.shape[0]
    names = design.column_names
    assert names[0] == "Intercept"
    # two non-reference organisation levels plus five spline columns
    assert len(names) == 1 + 2 + 5
    assert design.is_categorical("organisation")
    assert not design.is_categorical("day_of_year")
    assert design.levels("organisation") == ["amnesty", "greenpeace", "oxfam"]


def test_encode_reproduces_the_fitted_rows(design):
    X = design.encode(design.frame.iloc[:5])
    assert np.allclose(X, design.X[:5])


def test_grid_holds_other_covariates_at_reference(design):
    ref = design.reference_row()
    assert ref["day_of_year"] == pytest.approx(float(design.frame["day_of_year"].median()))
    grid = design.grid("organisation", ["amnesty", "oxfam"])
    assert grid["organisation"].tolist() == ["amnesty", "oxfam"]
    assert (grid["day_of_year"] == ref["day_of_year"]).all()
    assert design.encode(grid).shape == (2, design.X.shape[1])
    with pytest.raises(KeyError):
        design.grid("weekday", [1])


def test_formula_with_categorical_only(design):
    d = PrevalenceDesign.from_frame(design.frame, "~ C(organisation)")
    assert d.X.shape == (len(design.frame), 3)
