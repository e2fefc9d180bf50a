from textwrap import dedent
from typing import Callable, Union, cast

import numpy as np
import pandas as pd
from anndata import AnnData

from .._exceptions import ColumnNotFoundError, SchemaError
from ._fields import (
    DEFAULT_SEP,
    NA_ELEMENT,
    _is_na,
    _is_na2,
    format_field,
    join_column,
    parse_field,
    split_column,
    unique_field,
    zip_fields,
)

__all__ = [
    "DEFAULT_SEP",
    "NA_ELEMENT",
    "DataHandler",
    "format_field",
    "join_column",
    "parse_field",
    "split_column",
    "unique_field",
    "zip_fields",
]


def _doc_params(**kwds):
    """\
    Docstrings should start with "\" in the first line for proper formatting.
    """

    def dec(obj):
        obj.__orig_doc__ = obj.__doc__
        obj.__doc__ = dedent(obj.__doc__).format_map(kwds)
        return obj

    return dec


class DataHandler:
    """\
    Transparent access to the cell table in both AnnData objects and data frames.

    Cell records are stored in `adata.obs` (AnnData) or are the rows of a
    :class:`~pandas.DataFrame`. In both cases the index holds the cell barcodes.
    Public scvdj functions never modify their input: methods that change the cell
    table return a new object of the same type as the input.

    DataHandler may be called with another DataHandler instance as `data` attribute.
    In that case the underlying data object is shared.

    Parameters
    ----------
    {adata}
    """

    #: Supported Data types
    TYPE = Union[AnnData, pd.DataFrame, "DataHandler"]

    def __init__(self, data: "DataHandler.TYPE"):
        if isinstance(data, DataHandler):
            self._data = data._data
        elif isinstance(data, (AnnData, pd.DataFrame)):
            self._data = data
        else:
            raise TypeError(
                f"Expected an AnnData object or a DataFrame, got {type(data).__name__}."
            )
        if not self.obs.index.is_unique:
            raise SchemaError("Cell barcodes (the index of the cell table) are not unique.")

    @property
    def data(self) -> Union[AnnData, pd.DataFrame]:
        """Reference to the wrapped data object."""
        return self._data

    @property
    def obs(self) -> pd.DataFrame:
        """Reference to the cell table (barcodes as index)."""
        if isinstance(self._data, AnnData):
            return self._data.obs
        return cast(pd.DataFrame, self._data)

    def check_columns(self, *columns: str) -> None:
        """Raise a :class:`~scvdj.ColumnNotFoundError` for the first missing column."""
        for col in columns:
            if col not in self.obs.columns:
                raise ColumnNotFoundError(col)

    def replace_obs(self, obs: pd.DataFrame) -> Union[AnnData, pd.DataFrame]:
        """Return a copy of the data object with a new cell table.

        The new table must describe the same cells in the same order.
        """
        if not obs.index.equals(self.obs.index):
            raise SchemaError(
                "The new cell table must have the same cell barcodes in the same order."
            )
        if isinstance(self._data, AnnData):
            adata = self._data.copy()
            adata.obs = obs
            return adata
        return obs

    def subset(self, mask: np.ndarray) -> Union[AnnData, pd.DataFrame]:
        """Return a copy of the data object restricted to the cells in `mask`."""
        mask = np.asarray(mask, dtype=bool)
        if isinstance(self._data, AnnData):
            return self._data[mask, :].copy()
        return self.obs.loc[mask, :].copy()

    @staticmethod
    def inject_param_docs(
        **kwargs: str,
    ) -> Callable:
        """Inject parameter documentation into a function docstring

        Parameters
        ----------
        **kwargs
            Further, custom {keys} to replace in the docstring.
        """
        doc = {}
        doc["adata"] = dedent(
            """\
            adata
                AnnData object (cell records in `obs`) or data frame with one row
                per cell, indexed by cell barcode.
            """
        )
        doc["groupby"] = dedent(
            """\
            groupby
                Column with group labels (e.g. sample or cluster). Cells without a
                label form the group `"nan"`.
            """
        )
        doc["chain"] = dedent(
            """\
            chain
                Only consider chains of this type (e.g. `"IGH"` or `"TRB"`). Values
                of other chains of the same cell are ignored.
            """
        )
        doc["chain_col"] = dedent(
            """\
            chain_col
                Multi-value column holding the chain type of each chain.
            """
        )
        doc["sep"] = dedent(
            """\
            sep
                Separator between the values of multi-value fields.
            """
        )
        return _doc_params(**doc, **kwargs)


DataHandler = DataHandler.inject_param_docs()(DataHandler)


def _is_true2(x):
    """Evaluates true for bool(x) unless _is_false2(x) evaluates true.
    I.e. strings like "false" evaluate as False.

    Everything that evaluates to _is_na(x) evaluates evaluate to False.

    The function is vectorized over numpy arrays or pandas Series
    but also works for single values."""
    return not _is_false2(x) and not _is_na2(x)


_is_true = np.vectorize(_is_true2, otypes=[bool])


def _is_false2(x):
    """Evaluates false for bool(False) and str("false")/str("False").

    Everything that is NA as defined in `_is_na2()` evaluates to False."""
    return (x in ("False", "false", "0") or not bool(x)) and not _is_na2(x)

