from typing import Mapping, Optional, Union

import numpy as np
import pandas as pd
from scanpy import logging

from ..util import DEFAULT_SEP, DataHandler
from ._group_abundance import _group_counts
from ._metrics import DIVERSITY_METRICS, MetricRegistry, MetricType


@DataHandler.inject_param_docs()
def alpha_diversity(
    adata: DataHandler.TYPE,
    groupby: str,
    *,
    target_col: str = "clonotype_id",
    metric: Union[MetricType, Mapping[str, MetricType]] = "normalized_shannon_entropy",
    chain: Optional[str] = None,
    chain_col: str = "chains",
    sep: str = DEFAULT_SEP,
    registry: Optional[MetricRegistry] = None,
    **kwargs,
) -> pd.DataFrame:
    """\
    Computes the alpha diversity of clonotypes within a group.

    Use a metric out of `richness`, `shannon`, `normalized_shannon_entropy`,
    `simpson`, `inv_simpson`, `gini_simpson`, `chao1`, `D50`, `DXX`, and
    `scikit-bio’s alpha diversity metrics
    <http://scikit-bio.org/docs/latest/generated/skbio.diversity.alpha.html#module-skbio.diversity.alpha>`__.
    Alternatively, provide a custom function to calculate the diversity based on count vectors
    as explained here `<http://scikit-bio.org/docs/latest/diversity.html>`__, or register
    it with :func:`~scvdj.tl.register_diversity_metric`.

    Normalized shannon entropy:
        Uses the `Shannon Entropy <https://mathworld.wolfram.com/Entropy.html>`__ as
        diversity measure. The Entrotpy gets
        `normalized to group size <https://math.stackexchange.com/a/945172>`__.

    D50:
        The diversity index (D50) is a measure of the diversity of an immune repertoire of J individual cells
        (the total number of CDR3s) composed of S distinct CDR3s in a ranked dominance configuration where ri
        is the abundance of the ith most abundant CDR3, r1 is the abundance of the most abundant CDR3, r2 is the
        abundance of the second most abundant CDR3, and so on. C is the minimum number of distinct CDR3s,
        amounting to >50% of the total sequencing reads. D50 therefore is given by C/S x 100.
        `<https://patents.google.com/patent/WO2012097374A1/en>`__.

    DXX:
        Similar to D50 where XX indicates the percent of J (the total number of CDR3s).
        Requires to pass the `percentage` keyword argument which can be within 0 and
        100.

    Groups without V(D)J data get `NaN` and trigger an
    :class:`~scvdj.EmptyGroupWarning`.

    Parameters
    ----------
    {adata}
    {groupby}
    target_col
        Column on which to compute the alpha diversity
    metric
        A metric name, a custom function, or a mapping `label -> metric` to
        compute several metrics in one pass.
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
    A data frame with one row per group and one column per metric.
    """
    params = DataHandler(adata)
    registry = DIVERSITY_METRICS if registry is None else registry
    metrics = registry.resolve(metric, **kwargs)
    counts = _group_counts(
        params.obs, groupby, target_col, chain=chain, chain_col=chain_col, sep=sep
    )

    diversity = {}
    for label, tmp_metric in metrics.items():
        diversity[label] = [
            tmp_metric(tmp_counts.values, **kwargs) if tmp_counts.shape[0] else np.nan
            for tmp_counts in counts.values()
        ]
        logging.debug(f"Computed alpha diversity `{label}` for {len(counts)} groups.")

    result = pd.DataFrame(diversity, index=pd.Index(list(counts), name=groupby))
    return result
