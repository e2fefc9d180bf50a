import numpy as np
import pandas as pd
import pytest

from . import TESTDATA
from .util import _make_adata


@pytest.fixture
def contig_csv():
    return TESTDATA / "10x/filtered_contig_annotations.csv"


@pytest.fixture(params=[False, True], ids=["DataFrame", "AnnData"])
def adata_base(request):
    """Cell table without V(D)J data matching the barcodes of `contig_csv`"""
    obs = pd.DataFrame(
        [
            ["CELL1", "s1", "0"],
            ["CELL2", "s1", "0"],
            ["CELL3", "s1", "1"],
            ["CELL4", "s1", "1"],
            ["CELL5", "s1", "1"],
            ["CELL6", "s1", "2"],
            ["CELL7", "s1", "2"],
        ],
        columns=["cell_id", "sample", "cluster"],
    ).set_index("cell_id")
    return _make_adata(obs, request.param)


@pytest.fixture(params=[False, True], ids=["DataFrame", "AnnData"])
def adata_vdj(request):
    """\
    Cell table with V(D)J data.

    Group A has the clonotypes {X: 3, Y: 1}, group B {X: 1, Z: 2}. Group C
    has no V(D)J data.
    """
    obs = pd.DataFrame(
        # fmt: off
        [
            ["c1", "A", "X", "IGH;IGK", "CAR;CVK", "IGHV1;IGKV1", "IGHJ1;IGKJ1", "10;8", "5;4", 2],
            ["c2", "A", "X", "IGH;IGK", "CAR;CVK", "IGHV1;IGKV1", "IGHJ1;IGKJ1", "12;7", "6;3", 2],
            ["c3", "A", "X", "IGH", "CAR", "IGHV1", "IGHJ1", "4", "2", 1],
            ["c4", "A", "Y", "IGH;IGL", "CTR;CQL", "IGHV2;IGLV1", "IGHJ2;IGLJ1", "20;5", "9;2", 2],
            ["c5", "B", "X", "IGH;IGK", "CAR;CVK", "IGHV1;IGKV1", "IGHJ1;IGKJ1", "3;3", "1;1", 2],
            ["c6", "B", "Z", "IGH;IGK", "CASS;CVKK", "IGHV3;IGKV2", "IGHJ1;IGKJ2", "9;6", "4;3", 2],
            ["c7", "B", "Z", "IGK", "CVKK", "IGKV2", "IGKJ2", "7", "3", 1],
            ["c8", "B", np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, np.nan],
            ["c9", "C", np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, np.nan],
        ],
        # fmt: on
        columns=[
            "cell_id",
            "group",
            "clonotype_id",
            "chains",
            "cdr3",
            "v_gene",
            "j_gene",
            "reads",
            "umis",
            "n_chains",
        ],
    ).set_index("cell_id")
    obs["n_chains"] = obs["n_chains"].astype("Int64")
    return _make_adata(obs, request.param)
