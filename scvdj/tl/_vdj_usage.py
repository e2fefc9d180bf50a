from typing import Optional, Sequence, Union

import pandas as pd

from ..util import DEFAULT_SEP, DataHandler
from ._group_abundance import _top_n, aggregate


@DataHandler.inject_param_docs()
def vdj_usage(
    adata: DataHandler.TYPE,
    groupby: str,
    target_cols: Union[str, Sequence[str]] = ("v_gene",),
    *,
    chain: Optional[str] = None,
    n_top: Optional[int] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
) -> pd.DataFrame:
    """\
    Gives a summary of the gene segment (or CDR3) usage in each group.

    Every chain of a cell counts once. When several `target_cols` are given,
    combinations are formed along the chains of each cell, e.g.
    `target_cols=("v_gene", "j_gene")` reports V-J pairs.

    Parameters
    ----------
    {adata}
    {groupby}
    target_cols
        Multi-value column(s) with gene segment or CDR3 information.
    {chain}
    n_top
        Only report the `n_top` most frequent combinations of each group.
    {chain_col}
    {sep}

    Returns
    -------
    Long-form data frame with the columns `groupby`, `target_cols`, `count`,
    `fraction` and `rank`.
    """
    return _top_n(
        aggregate(adata, groupby, target_cols, chain=chain, chain_col=chain_col, sep=sep),
        n_top,
    )
