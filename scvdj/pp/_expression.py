"""Per-cell expressions over multi-value fields.

Expressions are plain Python functions that receive a :class:`CellView` of a
single cell and return a value (:func:`mutate_vdj`) or a boolean
(:func:`filter_vdj`). Multi-value fields are presented as lists, one element
per chain, so expressions never operate on the delimited strings.
"""
from collections.abc import Mapping
from typing import Any, Callable, Collection, Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd
from scanpy import logging

from .._exceptions import ColumnNotFoundError
from ..io._util import CHAIN_FIELDS, NUMERIC_FIELDS, VDJ_COLUMNS, _get_chain_fields
from ..util import (
    DEFAULT_SEP,
    NA_ELEMENT,
    DataHandler,
    _is_na,
    _is_na2,
    format_field,
    parse_field,
    unique_field,
    zip_fields,
)


class _MissingValue(Exception):
    """An expression accessed a value that is missing for the current cell."""


def _to_number(value: str):
    try:
        return int(value)
    except ValueError:
        return float(value)


class CellView(Mapping):
    """\
    Read-only view of a single cell passed to mutate and filter expressions.

    Columns are accessible as items (`cell["v_gene"]`) or attributes
    (`cell.v_gene`). Multi-value columns are returned as lists with one
    element per chain; `reads` and `umis` as lists of numbers. All other
    columns are returned as scalars.

    Accessing a column that does not exist raises a
    :class:`~scvdj.ColumnNotFoundError`. Accessing a column whose value is
    missing for this cell ends the evaluation for this cell, which then counts
    as not matching (filter) or gets a missing value (mutate).

    Parameters
    ----------
    cell_id
        Barcode of the cell
    row
        Mapping `column -> value` of the cell
    multi_value_cols
        Columns to be parsed as multi-value fields
    sep
        Separator between the values of multi-value fields
    """

    def __init__(
        self,
        cell_id: str,
        row: Mapping,
        multi_value_cols: Collection[str] = CHAIN_FIELDS,
        sep: str = DEFAULT_SEP,
    ):
        self._cell_id = cell_id
        self._row = row
        self._multi_value_cols = multi_value_cols
        self._sep = sep

    def __repr__(self):
        return f"CellView of cell {self._cell_id}"

    @property
    def cell_id(self) -> str:
        """Barcode of the cell."""
        return self._cell_id

    def __getitem__(self, key: str) -> Any:
        if key not in self._row:
            raise ColumnNotFoundError(key)
        value = self._row[key]
        if key in self._multi_value_cols:
            values = parse_field(value, self._sep)
            if not len(values):
                raise _MissingValue(key)
            if key in NUMERIC_FIELDS:
                if NA_ELEMENT in values:
                    raise _MissingValue(key)
                return [_to_number(x) for x in values]
            return values
        if _is_na2(value):
            raise _MissingValue(key)
        return value

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        return self[key]

    def __contains__(self, key) -> bool:
        return key in self._row

    def __iter__(self) -> Iterator[str]:
        return iter(self._row)

    def __len__(self) -> int:
        return len(self._row)

    def get(self, key: str, default: Any = None) -> Any:
        """Value of `key`, or `default` if the column or the value is missing."""
        try:
            return self[key]
        except (ColumnNotFoundError, _MissingValue):
            return default

    def zip(self, *keys: str) -> List[tuple]:
        """One tuple per chain across several multi-value columns."""
        return zip_fields(*[self[k] for k in keys], cell_id=self._cell_id)

    def unique(self, key: str) -> List[Any]:
        """Distinct values of a multi-value column in order of first occurrence."""
        return unique_field(self[key])

    def has(self, key: str, value: Any) -> bool:
        """Whether any chain has `value` in column `key`."""
        values = self[key]
        return value in values if isinstance(values, list) else values == value

    def total(self, key: str):
        """Sum over the chains of a numeric multi-value column."""
        return sum(self[key])

    def join(self, values: Sequence[Any]) -> str:
        """Join values into a multi-value field."""
        return format_field(values, self._sep)


_MISSING = object()


def _evaluate(
    obs: pd.DataFrame,
    fun: Callable[[CellView], Any],
    *,
    chain_col: str,
    multi_value_cols: Collection[str],
    sep: str,
) -> List[Any]:
    """Evaluate `fun` for each cell with V(D)J data."""
    multi_value_cols = set(multi_value_cols)
    has_vdj = ~_is_na(obs[chain_col].values)
    results = []
    n_missing = 0
    for cell_id, row, tmp_has_vdj in zip(
        obs.index, obs.to_dict(orient="records"), has_vdj
    ):
        if not tmp_has_vdj:
            results.append(_MISSING)
            continue
        try:
            results.append(fun(CellView(cell_id, row, multi_value_cols, sep)))
        except _MissingValue:
            n_missing += 1
            results.append(_MISSING)
    logging.debug(
        f"Evaluated expression on {int(np.sum(has_vdj))} cells with V(D)J data, "
        f"{n_missing} of which had missing values."
    )
    return results


def _to_cell_value(x: Any, sep: str) -> Any:
    if x is _MISSING:
        return np.nan
    # an empty multi-value field is a missing value, not an empty string
    if isinstance(x, (set, frozenset, list, tuple)) and not len(x):
        return np.nan
    if isinstance(x, (set, frozenset)):
        return format_field(sorted(x), sep)
    if isinstance(x, (list, tuple)):
        return format_field(x, sep)
    return x


@DataHandler.inject_param_docs()
def mutate_vdj(
    adata: DataHandler.TYPE,
    fun: Callable[[CellView], Any],
    key_added: str,
    *,
    columns: Optional[Sequence[str]] = None,
    chain_col: str = "chains",
    multi_value_cols: Optional[Collection[str]] = None,
    sep: str = DEFAULT_SEP,
):
    """\
    Add a column computed from the V(D)J fields of each cell.

    `fun` receives a :class:`~scvdj.pp.CellView` for each cell with V(D)J data.
    Cells without V(D)J data (missing `chain_col`) get a missing value without
    evaluating `fun`. List, tuple or set results are stored as multi-value fields,
    anything else as scalar.

    Parameters
    ----------
    {adata}
    fun
        Function `CellView -> value`, e.g.
        `lambda cell: cell.unique("v_gene")` or
        `lambda cell: cell.total("umis")`.
    key_added
        Name of the new column.
    columns
        Columns `fun` uses. If given, they are checked before evaluation.
    {chain_col}
    multi_value_cols
        Columns presented as lists to `fun`. Defaults to the chain-level
        V(D)J columns recorded by :func:`~scvdj.io.merge_vdj`, including its
        `extra_fields`.
    {sep}

    Raises
    ------
    ColumnNotFoundError
        If `fun` references a column that does not exist.

    Returns
    -------
    A copy of `adata` with the new column.
    """
    params = DataHandler(adata)
    params.check_columns(chain_col, *(columns or ()))
    obs = params.obs
    if multi_value_cols is None:
        multi_value_cols = _get_chain_fields(params.data)
    results = _evaluate(
        obs, fun, chain_col=chain_col, multi_value_cols=multi_value_cols, sep=sep
    )

    new_obs = obs.copy()
    new_obs[key_added] = pd.Series(
        [_to_cell_value(x, sep) for x in results], index=obs.index
    ).infer_objects()
    return params.replace_obs(new_obs)


@DataHandler.inject_param_docs()
def filter_vdj(
    adata: DataHandler.TYPE,
    fun: Callable[[CellView], bool],
    *,
    filter_cells: bool = False,
    columns: Optional[Sequence[str]] = None,
    vdj_cols: Optional[Collection[str]] = None,
    chain_col: str = "chains",
    multi_value_cols: Optional[Collection[str]] = None,
    sep: str = DEFAULT_SEP,
):
    """\
    Filter cells by an expression over their V(D)J fields.

    `fun` receives a :class:`~scvdj.pp.CellView` for each cell with V(D)J data
    and returns a boolean. Cells for which it returns `False`, that lack the
    data `fun` accesses, or that have no V(D)J data at all do not pass.

    Parameters
    ----------
    {adata}
    fun
        Function `CellView -> bool`, e.g. `lambda cell: cell.has("chains", "IGH")`.
    filter_cells
        If `True`, remove cells that do not pass. Otherwise (the default), keep
        all cells but set their V(D)J columns to missing values.
    columns
        Columns `fun` uses. If given, they are checked before evaluation.
    vdj_cols
        Columns cleared for cells that do not pass when `filter_cells` is
        `False`. Defaults to the columns created by :func:`~scvdj.io.merge_vdj`
        together with `multi_value_cols`.
    {chain_col}
    multi_value_cols
        Columns presented as lists to `fun`. Defaults to the chain-level
        V(D)J columns recorded by :func:`~scvdj.io.merge_vdj`, including its
        `extra_fields`.
    {sep}

    Raises
    ------
    ColumnNotFoundError
        If `fun` references a column that does not exist.
    TypeError
        If `fun` does not return a boolean.

    Returns
    -------
    A filtered copy of `adata`.
    """
    params = DataHandler(adata)
    params.check_columns(chain_col, *(columns or ()))
    obs = params.obs
    if multi_value_cols is None:
        multi_value_cols = _get_chain_fields(params.data)
    results = _evaluate(
        obs, fun, chain_col=chain_col, multi_value_cols=multi_value_cols, sep=sep
    )

    mask = np.zeros(obs.shape[0], dtype=bool)
    for i, (cell_id, res) in enumerate(zip(obs.index, results)):
        if res is _MISSING:
            continue
        if not isinstance(res, (bool, np.bool_)):
            raise TypeError(
                "Filter expressions must return a boolean, got "
                f"{type(res).__name__} for cell '{cell_id}'."
            )
        mask[i] = res
    logging.info(f"{int(np.sum(mask))} of {obs.shape[0]} cells passed the filter.")  # type: ignore

    if filter_cells:
        return params.subset(mask)

    if vdj_cols is None:
        vdj_cols = set(VDJ_COLUMNS) | set(multi_value_cols)
    new_obs = obs.copy()
    for col in vdj_cols:
        if col in new_obs.columns:
            new_obs[col] = new_obs[col].where(mask)
    return params.replace_obs(new_obs)
