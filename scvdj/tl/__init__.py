from ._clonal_expansion import clonal_expansion
from ._diversity import alpha_diversity
from ._group_abundance import aggregate, group_abundance
from ._metrics import (
    DIVERSITY_METRICS,
    SIMILARITY_METRICS,
    Metric,
    MetricRegistry,
    register_diversity_metric,
    register_similarity_metric,
)
from ._repertoire_overlap import repertoire_overlap
from ._spectratype import spectratype
from ._vdj_usage import vdj_usage
