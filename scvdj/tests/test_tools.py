import numpy as np
import numpy.testing as npt
import pandas as pd
import pandas.testing as pdt
import pytest

import scvdj as vdj
from scvdj import ColumnNotFoundError, EmptyGroupWarning, InvalidMethodError
from scvdj.tl import MetricRegistry

from .util import _get_obs, _is_symmetric, _make_adata


def test_group_abundance(adata_vdj):
    res = vdj.tl.group_abundance(adata_vdj, groupby="group")
    expected = pd.DataFrame(
        {
            "group": ["A", "A", "B", "B"],
            "clonotype_id": ["X", "Y", "Z", "X"],
            "count": [3, 1, 2, 1],
            "fraction": [0.75, 0.25, 2 / 3, 1 / 3],
            "rank": [1, 2, 1, 2],
        }
    )
    pdt.assert_frame_equal(res, expected, check_dtype=False)


def test_group_abundance_n_top(adata_vdj):
    res = vdj.tl.group_abundance(adata_vdj, groupby="group", n_top=1)
    assert res["clonotype_id"].tolist() == ["X", "Z"]
    # fractions still refer to the whole group
    npt.assert_almost_equal(res["fraction"].values, [0.75, 2 / 3])


def test_group_abundance_chain(adata_vdj):
    """Cells without an IGK chain are ignored, clonotypes count once per cell"""
    res = vdj.tl.group_abundance(adata_vdj, groupby="group", chain="IGK")
    assert res["group"].tolist() == ["A", "B", "B"]
    assert res["clonotype_id"].tolist() == ["X", "Z", "X"]
    assert res["count"].tolist() == [2, 2, 1]


def test_group_abundance_missing_labels():
    obs = pd.DataFrame(
        {
            "group": ["A", np.nan, np.nan],
            "clonotype_id": ["X", "X", "Y"],
            "chains": ["TRA;TRB", "TRB", "TRB"],
        },
        index=["c1", "c2", "c3"],
    )
    res = vdj.tl.group_abundance(obs, groupby="group")
    assert res["group"].tolist() == ["A", "nan", "nan"]
    assert res["clonotype_id"].tolist() == ["X", "X", "Y"]


def test_aggregate_ties():
    """Ties are broken by the values in ascending order"""
    obs = pd.DataFrame(
        {
            "group": ["A"] * 4,
            "v_gene": ["V3", "V1;V2", "V2", "V3;V1"],
            "chains": ["TRB", "TRA;TRB", "TRB", "TRA;TRB"],
        },
        index=[f"c{i}" for i in range(4)],
    )
    res = vdj.tl.aggregate(obs, "group", "v_gene")
    assert res["v_gene"].tolist() == ["V1", "V2", "V3"]
    assert res["rank"].tolist() == [1, 2, 3]
    assert res["count"].tolist() == [2, 2, 2]


def test_aggregate_fractions(adata_vdj):
    for value_cols in ["v_gene", "cdr3", ["v_gene", "j_gene"], "clonotype_id"]:
        res = vdj.tl.aggregate(adata_vdj, "group", value_cols)
        npt.assert_almost_equal(res.groupby("group")["fraction"].sum().values, 1.0)


def test_aggregate_errors(adata_vdj):
    with pytest.raises(ColumnNotFoundError) as e:
        vdj.tl.aggregate(adata_vdj, "group", "foo")
    assert e.value.column == "foo"
    with pytest.raises(ColumnNotFoundError):
        vdj.tl.aggregate(adata_vdj, "foo", "v_gene")
    with pytest.raises(ColumnNotFoundError):
        vdj.tl.aggregate(adata_vdj, "group", "v_gene", chain="IGH", chain_col="foo")


def test_vdj_usage_chain(adata_vdj):
    """Only the V genes of IGH chains are counted, not those of other chains
    of the same cell"""
    res = vdj.tl.vdj_usage(adata_vdj, "group", chain="IGH")
    expected = pd.DataFrame(
        {
            "group": ["A", "A", "B", "B"],
            "v_gene": ["IGHV1", "IGHV2", "IGHV1", "IGHV3"],
            "count": [3, 1, 1, 1],
            "fraction": [0.75, 0.25, 0.5, 0.5],
            "rank": [1, 2, 1, 2],
        }
    )
    pdt.assert_frame_equal(res, expected, check_dtype=False)


def test_vdj_usage(adata_vdj):
    res = vdj.tl.vdj_usage(adata_vdj, "group", "v_gene")
    res_a = res.loc[res["group"] == "A", :]
    assert res_a["v_gene"].tolist() == ["IGHV1", "IGKV1", "IGHV2", "IGLV1"]
    assert res_a["count"].tolist() == [3, 2, 1, 1]
    npt.assert_almost_equal(res_a["fraction"].values, np.array([3, 2, 1, 1]) / 7)

    res = vdj.tl.vdj_usage(adata_vdj, "group", "v_gene", n_top=1)
    assert res["v_gene"].tolist() == ["IGHV1", "IGKV2"]


def test_vdj_usage_pairs(adata_vdj):
    """V and J genes are paired along the chains, not as cross-product"""
    res = vdj.tl.vdj_usage(adata_vdj, "group", ("v_gene", "j_gene"), chain="IGK")
    assert res.columns.tolist() == ["group", "v_gene", "j_gene", "count", "fraction", "rank"]
    assert list(zip(res["group"], res["v_gene"], res["j_gene"], res["count"])) == [
        ("A", "IGKV1", "IGKJ1", 2),
        ("B", "IGKV2", "IGKJ2", 2),
        ("B", "IGKV1", "IGKJ1", 1),
    ]


def test_vdj_usage_inconsistent_chains():
    obs = pd.DataFrame(
        {"group": ["A"], "chains": ["IGH;IGK"], "v_gene": ["V1;V2;V3"]},
        index=["c1"],
    )
    with pytest.raises(vdj.SchemaError, match="c1"):
        vdj.tl.vdj_usage(obs, "group", chain="IGH")


def test_vdj_usage_single_chain_inconsistent():
    """A single chain can not carry two V genes"""
    obs = pd.DataFrame(
        {"group": ["A", "A"], "chains": ["IGH", "IGH"], "v_gene": ["V1", "V1;V2"]},
        index=["c1", "c2"],
    )
    with pytest.raises(vdj.SchemaError, match="c2"):
        vdj.tl.vdj_usage(obs, "group", chain="IGH")


def test_spectratype(adata_vdj):
    res = vdj.tl.spectratype(adata_vdj, "group", chain="IGH")
    assert res.index.tolist() == [0, 1, 2, 3, 4]
    assert res.index.name == "length"
    assert res.columns.tolist() == ["A", "B", "C"]
    npt.assert_equal(res["A"].values, [0, 0, 0, 4, 0])
    npt.assert_equal(res["B"].values, [0, 0, 0, 1, 1])
    npt.assert_equal(res["C"].values, [0, 0, 0, 0, 0])

    res = vdj.tl.spectratype(adata_vdj, "group", chain="IGH", fraction=True)
    npt.assert_almost_equal(res["A"].values, [0, 0, 0, 1, 0])
    npt.assert_almost_equal(res["B"].values, [0, 0, 0, 0.5, 0.5])
    assert res["C"].isna().all()


def test_spectratype_all_chains(adata_vdj):
    res = vdj.tl.spectratype(adata_vdj, "group")
    npt.assert_equal(res["A"].values, [0, 0, 0, 7, 0])
    npt.assert_equal(res["B"].values, [0, 0, 0, 2, 3])


def test_clonal_expansion(adata_vdj):
    res = vdj.tl.clonal_expansion(adata_vdj)
    assert res.name == "clonal_expansion"
    assert res.index.tolist() == _get_obs(adata_vdj).index.tolist()
    assert res.tolist() == [">= 3", ">= 3", ">= 3", "1", ">= 3", "2", "2", "nan", "nan"]

    res = vdj.tl.clonal_expansion(adata_vdj, expanded_in="group")
    assert res.tolist() == [">= 3", ">= 3", ">= 3", "1", "1", "2", "2", "nan", "nan"]

    res = vdj.tl.clonal_expansion(adata_vdj, clip_at=2)
    assert res.tolist() == [">= 2", ">= 2", ">= 2", "1", ">= 2", ">= 2", ">= 2", "nan", "nan"]


def test_clonal_expansion_missing_column(adata_vdj):
    with pytest.raises(ColumnNotFoundError):
        vdj.tl.clonal_expansion(adata_vdj, expanded_in="foo")


def test_alpha_diversity(adata_vdj):
    with pytest.warns(EmptyGroupWarning, match="'C'"):
        res = vdj.tl.alpha_diversity(adata_vdj, "group", metric="richness")
    assert res.index.name == "group"
    assert res.index.tolist() == ["A", "B", "C"]
    npt.assert_equal(res["richness"].values, [2, 2, np.nan])

    with pytest.warns(EmptyGroupWarning):
        res = vdj.tl.alpha_diversity(adata_vdj, "group")
    freqs_a = np.array([0.75, 0.25])
    freqs_b = np.array([2 / 3, 1 / 3])
    npt.assert_almost_equal(
        res["normalized_shannon_entropy"].values,
        [
            -np.sum(freqs_a * np.log(freqs_a)) / np.log(2),
            -np.sum(freqs_b * np.log(freqs_b)) / np.log(2),
            np.nan,
        ],
    )


def test_alpha_diversity_chain(adata_vdj):
    with pytest.warns(EmptyGroupWarning):
        res = vdj.tl.alpha_diversity(adata_vdj, "group", metric="richness", chain="IGK")
    npt.assert_equal(res["richness"].values, [1, 2, np.nan])


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_alpha_diversity_multiple_metrics(adata_vdj):
    res = vdj.tl.alpha_diversity(
        adata_vdj,
        "group",
        metric={"n": "richness", "D50": "D50", "D90": "DXX"},
        percentage=90,
    )
    assert res.columns.tolist() == ["n", "D50", "D90"]
    npt.assert_equal(res.loc[["A", "B"], "n"].values, [2, 2])
    npt.assert_almost_equal(res.loc[["A", "B"], "D50"].values, [50, 50])
    npt.assert_almost_equal(res.loc[["A", "B"], "D90"].values, [100, 100])


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_alpha_diversity_custom_metric(adata_vdj):
    def n_cells(counts):
        return np.sum(counts)

    res = vdj.tl.alpha_diversity(adata_vdj, "group", metric=n_cells)
    npt.assert_equal(res["n_cells"].values, [4, 3, np.nan])

    registry = MetricRegistry("diversity", 1)
    registry.register("max_count", lambda counts: np.max(counts))
    res = vdj.tl.alpha_diversity(adata_vdj, "group", metric="max_count", registry=registry)
    npt.assert_equal(res["max_count"].values, [3, 2, np.nan])

    with pytest.raises(InvalidMethodError):
        vdj.tl.alpha_diversity(adata_vdj, "group", metric="richness", registry=registry)


def test_alpha_diversity_invalid_metric(adata_vdj):
    with pytest.raises(InvalidMethodError, match="percentage"):
        vdj.tl.alpha_diversity(adata_vdj, "group", metric="DXX")
    with pytest.raises(InvalidMethodError):
        vdj.tl.alpha_diversity(adata_vdj, "group", metric="foo_bar_baz")
    with pytest.raises(InvalidMethodError):
        vdj.tl.alpha_diversity(adata_vdj, "group", metric=lambda a, b: 0)
    with pytest.raises(InvalidMethodError):
        vdj.tl.alpha_diversity(adata_vdj, "group", metric=42)


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_alpha_diversity_skbio(adata_vdj):
    pytest.importorskip("skbio")
    res = vdj.tl.alpha_diversity(adata_vdj, "group", metric="dominance")
    res_simpson = vdj.tl.alpha_diversity(adata_vdj, "group", metric="simpson")
    npt.assert_almost_equal(res["dominance"].values, res_simpson["simpson"].values)


def test_repertoire_overlap_jaccard(adata_vdj):
    """Group A {X: 3, Y: 1}, group B {X: 1, Z: 2}: one of three clonotypes is shared"""
    with pytest.warns(EmptyGroupWarning):
        res = vdj.tl.repertoire_overlap(adata_vdj, "group")
    assert res.index.tolist() == ["A", "B", "C"]
    assert res.columns.tolist() == ["A", "B", "C"]
    npt.assert_almost_equal(res.loc["A", "B"], 2 / 3)
    npt.assert_almost_equal(res.loc["B", "A"], 2 / 3)
    npt.assert_almost_equal(res.loc["A", "A"], 0)
    assert res.loc["C", :].isna().all()
    assert res.loc[:, "C"].isna().all()

    # deterministic
    with pytest.warns(EmptyGroupWarning):
        res2 = vdj.tl.repertoire_overlap(adata_vdj, "group")
    pdt.assert_frame_equal(res, res2)


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
@pytest.mark.parametrize(
    "metric,expected",
    [
        ("jaccard_index", 1 / 3),
        ("overlap", 0.5),
        ("shared", 1),
        ("bray_curtis", 5 / 7),
        ("cityblock", 5),
        (
            "morisita_horn",
            2 * 3 / ((10 / 16 + 5 / 9) * 4 * 3),
        ),
    ],
)
def test_repertoire_overlap_metrics(adata_vdj, metric, expected):
    res = vdj.tl.repertoire_overlap(adata_vdj, "group", metric=metric)
    npt.assert_almost_equal(res.loc["A", "B"], expected)
    assert _is_symmetric(res.values)


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_repertoire_overlap_chain(adata_vdj):
    res = vdj.tl.repertoire_overlap(adata_vdj, "group", chain="IGK")
    npt.assert_almost_equal(res.loc["A", "B"], 0.5)


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_repertoire_overlap_multiple_metrics(adata_vdj):
    res = vdj.tl.repertoire_overlap(
        adata_vdj, "group", metric={"jaccard": "jaccard", "n_shared": "shared"}
    )
    assert set(res) == {"jaccard", "n_shared"}
    npt.assert_almost_equal(res["jaccard"].loc["A", "B"], 2 / 3)
    npt.assert_equal(res["n_shared"].loc["A", "A"], 2)


@pytest.mark.filterwarnings("ignore::scvdj.EmptyGroupWarning")
def test_repertoire_overlap_custom_metric(adata_vdj):
    registry = MetricRegistry("similarity", 2)

    @registry.register("size_difference", symmetric=False, reflexive=False)
    def size_difference(a, b):
        return np.sum(a) - np.sum(b)

    res = vdj.tl.repertoire_overlap(
        adata_vdj, "group", metric="size_difference", registry=registry
    )
    npt.assert_almost_equal(res.loc["A", "B"], 1)
    npt.assert_almost_equal(res.loc["B", "A"], -1)
    assert np.isnan(res.loc["A", "A"])

    with pytest.raises(InvalidMethodError):
        vdj.tl.repertoire_overlap(adata_vdj, "group", metric=lambda a: 0)
    with pytest.raises(InvalidMethodError):
        vdj.tl.repertoire_overlap(adata_vdj, "group", metric="foo_bar_baz")


@pytest.mark.parametrize("as_anndata", [False, True])
def test_tools_do_not_modify_input(adata_vdj, as_anndata):
    obs = _get_obs(adata_vdj).copy()
    adata = _make_adata(obs.copy(), as_anndata)
    with pytest.warns(EmptyGroupWarning):
        vdj.tl.alpha_diversity(adata, "group")
    vdj.tl.group_abundance(adata, "group", chain="IGH")
    vdj.tl.clonal_expansion(adata)
    pdt.assert_frame_equal(_get_obs(adata), obs)
