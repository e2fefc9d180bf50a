from ._io import merge_vdj, read_10x_vdj
from ._util import CHAIN_FIELDS, LOCUS_ORDER, NUMERIC_FIELDS, VDJ_COLUMNS

__all__ = [
    "merge_vdj",
    "read_10x_vdj",
    "CHAIN_FIELDS",
    "LOCUS_ORDER",
    "NUMERIC_FIELDS",
    "VDJ_COLUMNS",
]
