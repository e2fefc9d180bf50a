from collections import Counter
from typing import List, Sequence, Union

import pandas as pd
from anndata import AnnData
from scanpy import logging

#: Multi-value columns created by the import, one value per chain
CHAIN_FIELDS = ("chains", "cdr3", "v_gene", "j_gene", "reads", "umis")

#: All columns created by the import
VDJ_COLUMNS = ("clonotype_id",) + CHAIN_FIELDS + ("n_chains",)

#: Chain fields holding counts
NUMERIC_FIELDS = ("reads", "umis")

#: Columns required in every contig table (besides the clonotype column)
REQUIRED_CONTIG_COLUMNS = ("barcode", "chain", "cdr3", "v_gene", "j_gene", "reads", "umis")

#: Chains are sorted by this locus order first, then by the order of detection.
#: Unknown loci come last.
LOCUS_ORDER = ("TRA", "TRB", "TRG", "TRD", "IGH", "IGK", "IGL")

doc_working_model = """\

.. note::
    Importing V(D)J data into *scvdj* follows these rules:
     * Each cell can have any number of chains. The values of all chains are
       stored in multi-value fields (`chains`, `cdr3`, `v_gene`, `j_gene`,
       `reads`, `umis`) joined by `sep`. Position `i` in each of these fields
       refers to the same chain.
     * Chains are ordered by locus (TRA, TRB, TRG, TRD, IGH, IGK, IGL) and,
       within a locus, in the order they appear in the contig table.
     * By default, non-productive and partial contigs are ignored.
     * Cells without V(D)J data have missing values in all V(D)J columns.
"""


class _IOLogger:
    """Logger wrapper that prints identical messages only once"""

    def __init__(self):
        self._warnings = Counter()

    def warning(self, message):
        if not self._warnings[message]:
            logging.warning(message)  # type: ignore

        self._warnings[message] += 1


#: Key in `adata.uns` (or `DataFrame.attrs`) with metadata about the import
UNS_KEY = "scvdj"


def _get_chain_fields(data: Union[AnnData, pd.DataFrame]) -> List[str]:
    """Multi-value columns of a cell table as recorded by :func:`~scvdj.io.merge_vdj`.

    Defaults to :data:`CHAIN_FIELDS` for tables that were not imported with scvdj.
    """
    meta = data.uns if isinstance(data, AnnData) else data.attrs
    return list(meta.get(UNS_KEY, {}).get("chain_fields", CHAIN_FIELDS))


def _set_chain_fields(data: Union[AnnData, pd.DataFrame], fields: Sequence[str]) -> None:
    meta = data.uns if isinstance(data, AnnData) else data.attrs
    meta[UNS_KEY] = {"chain_fields": list(fields)}
