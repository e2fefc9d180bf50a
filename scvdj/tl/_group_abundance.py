import warnings
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .._exceptions import ColumnNotFoundError, EmptyGroupWarning
from ..util import (
    DEFAULT_SEP,
    NA_ELEMENT,
    DataHandler,
    _is_na,
    split_column,
    zip_fields,
)


def _group_labels(column: pd.Series) -> pd.Series:
    """Group labels of all cells. Missing labels are replaced by `"nan"`."""
    labels = column.astype(object)
    return labels.where(~_is_na(labels.values), "nan")


def _expand_occurrences(
    obs: pd.DataFrame,
    groupby: str,
    value_cols: Union[str, Sequence[str]],
    *,
    chain: Optional[str] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> Tuple[pd.DataFrame, List[Any]]:
    """\
    Expand multi-value columns into one row per (cell, chain) occurrence.

    The values of several columns are combined along the chains of a cell
    (zip), not as cross-product. Columns with a single value per cell (e.g.
    `clonotype_id`) count once per cell unless they are combined with a
    per-chain column.

    Returns
    -------
    A data frame with the columns `groupby` and `value_cols` and the sorted
    list of all groups, including those without any occurrence.
    """
    value_cols = [value_cols] if isinstance(value_cols, str) else list(value_cols)
    for col in [groupby] + value_cols + ([chain_col] if chain is not None else []):
        if col not in obs.columns:
            raise ColumnNotFoundError(col)

    labels = _group_labels(obs[groupby])
    fields = [split_column(obs[c], sep).values for c in value_cols]
    chains = split_column(obs[chain_col], sep).values if chain is not None else None

    records = []
    for i, cell_id in enumerate(obs.index):
        cell_fields = [f[i] for f in fields]
        if chain is None:
            occurrences = zip_fields(*cell_fields, cell_id=cell_id)
        elif chain not in chains[i]:
            continue
        elif all(len(f) == 1 for f in cell_fields):
            occurrences = zip_fields(*cell_fields, cell_id=cell_id)
        else:
            occurrences = [
                t[1:]
                for t in zip_fields(
                    chains[i], *cell_fields, n_chains=len(chains[i]), cell_id=cell_id
                )
                if t[0] == chain
            ]
        for values in occurrences:
            if NA_ELEMENT not in values:
                records.append((labels.iat[i],) + tuple(values))

    groups = sorted(labels.unique(), key=str)
    return pd.DataFrame.from_records(records, columns=[groupby] + value_cols), groups


def _count_occurrences(
    occurrences: pd.DataFrame, groupby: str, value_cols: Sequence[str]
) -> pd.DataFrame:
    """Count occurrences per group, compute fractions and ranks."""
    value_cols = list(value_cols)
    if not occurrences.shape[0]:
        return pd.DataFrame(columns=[groupby] + value_cols + ["count", "fraction", "rank"])

    counts = (
        occurrences.groupby([groupby] + value_cols, sort=False)
        .size()
        .reset_index(name="count")
    )
    counts["fraction"] = counts["count"] / counts.groupby(groupby, sort=False)[
        "count"
    ].transform("sum")

    # rank by descending count, ties broken by the ascending value tuple
    counts = counts.sort_values(value_cols, kind="stable")
    counts = counts.sort_values("count", ascending=False, kind="stable")
    counts = (
        counts.assign(_group_key=counts[groupby].map(str))
        .sort_values("_group_key", kind="stable")
        .drop(columns="_group_key")
    )
    counts["rank"] = counts.groupby(groupby, sort=False).cumcount() + 1
    return counts.reset_index(drop=True)


def _group_counts(
    obs: pd.DataFrame,
    groupby: str,
    target_col: str,
    *,
    chain: Optional[str] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> Dict[Any, pd.Series]:
    """Count vector of `target_col` values for each group.

    Groups without data map to an empty series and trigger an
    :class:`~scvdj.EmptyGroupWarning`.
    """
    occurrences, groups = _expand_occurrences(
        obs, groupby, target_col, chain=chain, chain_col=chain_col, sep=sep
    )
    counts = {}
    for group in groups:
        tmp_counts = (
            occurrences.loc[occurrences[groupby] == group, target_col]
            .value_counts()
            .sort_index()
        )
        if not tmp_counts.shape[0]:
            warnings.warn(
                f"Group '{group}' of `{groupby}` has no cells with V(D)J data "
                f"in `{target_col}`" + (f" for chain {chain}." if chain else "."),
                EmptyGroupWarning,
                stacklevel=3,
            )
        counts[group] = tmp_counts
    return counts


def _top_n(counts: pd.DataFrame, n_top: Optional[int]) -> pd.DataFrame:
    if n_top is None:
        return counts
    return counts.loc[counts["rank"] <= n_top, :].reset_index(drop=True)


@DataHandler.inject_param_docs()
def aggregate(
    adata: DataHandler.TYPE,
    groupby: str,
    value_cols: Union[str, Sequence[str]],
    *,
    chain: Optional[str] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> pd.DataFrame:
    """\
    Count the values of one or more (multi-value) columns by group.

    Each chain of a cell contributes one occurrence. If several `value_cols`
    are given, values are combined along the chains of a cell, e.g.
    `("v_gene", "j_gene")` counts V-J pairs of the same chain.

    Parameters
    ----------
    {adata}
    {groupby}
    value_cols
        One or more columns to count.
    {chain}
    {chain_col}
    {sep}

    Returns
    -------
    Long-form data frame with the columns `groupby`, `value_cols`, `count`,
    `fraction` (count relative to all occurrences in the group) and `rank`
    (1 = most frequent; ties are broken by the values in ascending order).
    """
    params = DataHandler(adata)
    value_cols = [value_cols] if isinstance(value_cols, str) else list(value_cols)
    occurrences, _ = _expand_occurrences(
        params.obs, groupby, value_cols, chain=chain, chain_col=chain_col, sep=sep
    )
    return _count_occurrences(occurrences, groupby, value_cols)


@DataHandler.inject_param_docs()
def group_abundance(
    adata: DataHandler.TYPE,
    groupby: str,
    target_col: str = "clonotype_id",
    *,
    chain: Optional[str] = None,
    n_top: Optional[int] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> pd.DataFrame:
    """\
    Summarizes the number/fraction of cells of each clonotype by group.

    Ignores cells without a clonotype.

    Parameters
    ----------
    {adata}
    {groupby}
    target_col
        Column with the clonotype annotation.
    {chain}
    n_top
        Only report the `n_top` most abundant clonotypes of each group.
    {chain_col}
    {sep}

    Returns
    -------
    Long-form data frame with the number of cells (`count`), the fraction of
    cells of the group (`fraction`) and the `rank` of each clonotype per group.
    """
    return _top_n(
        aggregate(adata, groupby, target_col, chain=chain, chain_col=chain_col, sep=sep),
        n_top,
    )
