import numpy as np
import pandas as pd
from anndata import AnnData


def _make_adata(obs: pd.DataFrame, as_anndata: bool = True):
    """Wrap a cell table in an AnnData object, or return it as data frame."""
    if as_anndata:
        return AnnData(obs=obs)
    return obs


def _get_obs(data) -> pd.DataFrame:
    return data.obs if isinstance(data, AnnData) else data


def _is_symmetric(M) -> bool:
    """check if matrix M is symmetric"""
    return np.allclose(M, M.T, 1e-6, 1e-6, equal_nan=True)
