from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd
import patsy


@dataclass(frozen=True)
class PrevalenceDesign:
    """Covariate design matrix for topic prevalence, built from a patsy formula.

    The design info is kept so that covariate grids (for effect curves) are
    encoded with the same spline knots and factor levels as the fit.
    """
    formula: str
    frame: pd.DataFrame          # one row per document, aligned with the DTM rows
    X: np.ndarray                # D x P, includes the intercept
    design_info: patsy.DesignInfo

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, formula: str) -> "PrevalenceDesign":
        frame = frame.reset_index(drop=True)
        dm = patsy.dmatrix(formula, frame, return_type="dataframe", NA_action="raise")
        return cls(formula=formula, frame=frame, X=np.asarray(dm, dtype=np.float64),
                   design_info=dm.design_info)

    @property
    def column_names(self) -> List[str]:
        return list(self.design_info.column_names)

    def is_categorical(self, covariate: str) -> bool:
        col = self.frame[covariate]
        return not pd.api.types.is_numeric_dtype(col)

    def levels(self, covariate: str) -> List:
        return sorted(self.frame[covariate].unique().tolist())

    def reference_row(self) -> dict:
        # categorical covariates at their most frequent level, numeric at the median
        ref = {}
        for col in self.frame.columns:
            s = self.frame[col]
            if pd.api.types.is_numeric_dtype(s):
                ref[col] = float(s.median())
            else:
                ref[col] = s.mode().sort_values().iloc[0]
        return ref

    def grid(self, covariate: str, values: Sequence) -> pd.DataFrame:
        """Reference frame with ``covariate`` swept over ``values``."""
        if covariate not in self.frame.columns:
            raise KeyError(f"unknown covariate {covariate!r}")
        ref = self.reference_row()
        rows = []
        for v in values:
            r = dict(ref)
            r[covariate] = v
            rows.append(r)
        return pd.DataFrame(rows, columns=self.frame.columns)

    def encode(self, frame: pd.DataFrame) -> np.ndarray:
        (dm,) = patsy.build_design_matrices([self.design_info], frame, return_type="dataframe")
        return np.asarray(dm, dtype=np.float64)
