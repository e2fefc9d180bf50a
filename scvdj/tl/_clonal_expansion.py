from typing import Optional

import pandas as pd

from ..util import DataHandler, _is_na


@DataHandler.inject_param_docs()
def clonal_expansion(
    adata: DataHandler.TYPE,
    *,
    target_col: str = "clonotype_id",
    expanded_in: Optional[str] = None,
    clip_at: int = 3,
) -> pd.Series:
    """\
    Categorize cells by the size of their clonotype.

    Counts the number of cells sharing a clonotype, clipping large clones
    into a single category. `nan`s in the clonotype column remain `"nan"`
    in the output.

    Parameters
    ----------
    {adata}
    target_col
        Column containing the clontype annoataion
    expanded_in
        Calculate clonal expansion within groups. Usually makes sense to set
        this to the column containing sample annotation. If set to None,
        a clonotype counts as expanded if there's any cell of the same clonotype
        across the entire dataset.
    clip_at
        All clonotypes with more than `clip_at` clones will be summarized into
        a single category

    Returns
    -------
    A series with a clone size category (`"1"`, `"2"`, ..., `">= {{clip_at}}"`)
    for each cell.
    """
    params = DataHandler(adata)
    groupby_cols = [target_col] if expanded_in is None else [expanded_in, target_col]
    params.check_columns(*groupby_cols)
    obs = params.obs.loc[:, groupby_cols]
    has_clonotype = ~_is_na(obs[target_col].values)

    clonotype_counts = (
        obs.loc[has_clonotype, :]
        .groupby(groupby_cols, observed=True)
        .size()
        .reset_index(name="tmp_count")
        .assign(
            tmp_count=lambda X: [
                ">= {}".format(clip_at) if n >= clip_at else str(n)
                for n in X["tmp_count"].values
            ]
        )
    )
    clipped_count = obs.merge(clonotype_counts, how="left", on=groupby_cols)["tmp_count"]
    clipped_count.index = obs.index
    return clipped_count.where(has_clonotype, "nan").fillna("nan").rename("clonal_expansion")
