import itertools
from typing import Dict, Mapping, Optional, Union

import numpy as np
import pandas as pd

from ..util import DEFAULT_SEP, DataHandler
from ._group_abundance import _group_counts
from ._metrics import SIMILARITY_METRICS, Metric, MetricRegistry, MetricType


def _pairwise(counts: pd.DataFrame, metric: Metric, **kwargs) -> pd.DataFrame:
    """Apply a similarity metric to all pairs of columns of a count matrix."""
    n = counts.shape[1]
    values = counts.values
    is_empty = values.sum(axis=0) == 0
    result = np.full((n, n), np.nan)
    for i, j in itertools.product(range(n), repeat=2):
        if metric.symmetric and j < i:
            result[i, j] = result[j, i]
        elif (i == j and not metric.reflexive) or is_empty[i] or is_empty[j]:
            continue
        else:
            result[i, j] = metric(values[:, i], values[:, j], **kwargs)
    return pd.DataFrame(result, index=counts.columns, columns=counts.columns)


@DataHandler.inject_param_docs()
def repertoire_overlap(
    adata: DataHandler.TYPE,
    groupby: str,
    *,
    target_col: str = "clonotype_id",
    metric: Union[MetricType, Mapping[str, MetricType]] = "jaccard",
    chain: Optional[str] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
    registry: Optional[MetricRegistry] = None,
    **kwargs,
) -> Union[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """\
    Compute the similarity between cell groups based on clonotype overlap.

    The clonotype count vectors of two groups are aligned over the union of
    clonotypes present in either group, clonotypes absent from a group
    counting as zero.

    Built-in metrics are `jaccard` (dissimilarity of the clonotype sets),
    `jaccard_index`, `overlap` (overlap coefficient), `shared` (number of shared
    clonotypes), `morisita_horn` and `bray_curtis`. Any other name is passed
    on to :func:`scipy.spatial.distance.cdist`. Custom functions take two count
    vectors and can be registered with :func:`~scvdj.tl.register_similarity_metric`.

    Groups without V(D)J data get `NaN` and trigger an
    :class:`~scvdj.EmptyGroupWarning`.

    Parameters
    ----------
    {adata}
    {groupby}
    target_col
        Category that overlaps among groups (`clonotype_id` by default, but can
        in principle be any group or cluster)
    metric
        A metric name, a custom function, or a mapping `label -> metric`.
    {chain}
    {chain_col}
    {sep}
    registry
        Registry to look up metric names. Defaults to the registry of built-in
        metrics.
    **kwargs
        Additional arguments passed to the metric functions that accept them.

    Returns
    -------
    A square data frame (groups x groups). Symmetric metrics produce a
    symmetric matrix. If `metric` is a mapping, a dictionary `label -> matrix`.
    """
    params = DataHandler(adata)
    registry = SIMILARITY_METRICS if registry is None else registry
    metrics = registry.resolve(metric, **kwargs)
    counts = _group_counts(
        params.obs, groupby, target_col, chain=chain, chain_col=chain_col, sep=sep
    )

    # Create a matrix of clonotype counts (clonotypes x groups)
    clonotypes = sorted(set().union(*[c.index for c in counts.values()]))
    count_matrix = pd.DataFrame(
        {group: tmp_counts.reindex(clonotypes) for group, tmp_counts in counts.items()},
        index=clonotypes,
    ).fillna(0)
    count_matrix.columns.name = groupby

    result = {
        label: _pairwise(count_matrix, tmp_metric, **kwargs)
        for label, tmp_metric in metrics.items()
    }
    if isinstance(metric, Mapping):
        return result
    return next(iter(result.values()))
