from typing import Optional

import pandas as pd

from ..util import DEFAULT_SEP, DataHandler
from ._group_abundance import _expand_occurrences


@DataHandler.inject_param_docs()
def spectratype(
    adata: DataHandler.TYPE,
    groupby: str,
    *,
    cdr3_col: str = "cdr3",
    chain: Optional[str] = None,
    fraction: bool = False,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> pd.DataFrame:
    """\
    Summarizes the distribution of :term:`CDR3` region lengths.

    Every chain of a cell counts once. Ignores missing values.

    Parameters
    ----------
    {adata}
    {groupby}
    cdr3_col
        Multi-value column with CDR3 sequences.
    {chain}
    fraction
        If `True`, report the fraction of chains of the group rather than
        absolute numbers.
    {chain_col}
    {sep}

    Returns
    -------
    A data frame indexed by CDR3 length (from 0 to the maximum length) with
    one column per group.
    """
    params = DataHandler(adata)
    occurrences, groups = _expand_occurrences(
        params.obs, groupby, cdr3_col, chain=chain, chain_col=chain_col, sep=sep
    )
    occurrences["length"] = occurrences[cdr3_col].map(len)
    if not occurrences.shape[0]:
        return pd.DataFrame(
            0.0,
            index=pd.RangeIndex(1, name="length"),
            columns=pd.Index(groups, name=groupby),
        )

    cdr3_lengths = (
        occurrences.groupby(["length", groupby], sort=False)
        .size()
        .unstack(groupby)
        .reindex(columns=groups)
    )
    # Should include all lengths, not just the abundant ones
    max_length = int(occurrences["length"].max())
    cdr3_lengths = cdr3_lengths.reindex(range(max_length + 1)).fillna(value=0.0)
    cdr3_lengths.index.name = "length"

    if fraction:
        cdr3_lengths = cdr3_lengths / cdr3_lengths.sum(axis=0).replace(0, float("nan"))

    return cdr3_lengths
