from pathlib import Path
from typing import Collection, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scanpy import logging

from .._exceptions import ConfigurationError, NotFoundError, SchemaError
from ..util import DEFAULT_SEP, DataHandler, _doc_params, _is_na2, _is_true, format_field
from ._util import (
    CHAIN_FIELDS,
    LOCUS_ORDER,
    REQUIRED_CONTIG_COLUMNS,
    VDJ_COLUMNS,
    _IOLogger,
    _set_chain_fields,
    doc_working_model,
)

#: A contig table, either as path to a CSV/TSV file or as data frame
ContigSource = Union[str, Path, pd.DataFrame]


def _load_contigs(source: Optional[ContigSource], sample: str) -> pd.DataFrame:
    """Load a contig table from a path or copy it from a data frame."""
    if source is None:
        raise NotFoundError(f"No contig table given for sample '{sample}'.")
    if isinstance(source, pd.DataFrame):
        return source.copy()
    path = Path(source)
    if not path.is_file():
        raise NotFoundError(f"Contig table for sample '{sample}' not found: {path}")
    delimiter = "\t" if ".tsv" in path.suffixes else ","
    return pd.read_csv(path, sep=delimiter, dtype={"barcode": str})


def _sample_name(source: Optional[ContigSource]) -> str:
    return "0" if source is None or isinstance(source, pd.DataFrame) else str(source)


def _check_contig_columns(
    df: pd.DataFrame,
    sample: str,
    *,
    clonotype_col: str,
    productive_only: bool,
    extra_fields: Collection[str],
) -> None:
    required = list(REQUIRED_CONTIG_COLUMNS) + [clonotype_col] + list(extra_fields)
    if productive_only:
        required.append("productive")
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(
            f"Contig table of sample '{sample}' is missing required columns: "
            + ", ".join(f"`{c}`" for c in missing)
        )


def _filter_contigs(
    df: pd.DataFrame, *, productive_only: bool, filtered: bool
) -> pd.DataFrame:
    mask = np.ones(df.shape[0], dtype=bool)
    if productive_only:
        mask &= _is_true(df["productive"].values)
        if "full_length" in df.columns:
            mask &= _is_true(df["full_length"].values)
    if filtered:
        for col in ("is_cell", "high_confidence"):
            if col in df.columns:
                mask &= _is_true(df[col].values)
    return df.loc[mask, :]


def _read_contig_table(
    source: Optional[ContigSource],
    *,
    sample: str,
    productive_only: bool,
    filtered: bool,
    clonotype_col: str,
    extra_fields: Collection[str],
    sep: str,
) -> pd.DataFrame:
    """Build the per-cell V(D)J table of a single sample."""
    logger = _IOLogger()
    df = _load_contigs(source, sample)
    _check_contig_columns(
        df,
        sample,
        clonotype_col=clonotype_col,
        productive_only=productive_only,
        extra_fields=extra_fields,
    )
    df = _filter_contigs(df, productive_only=productive_only, filtered=filtered)
    logging.debug(f"Sample '{sample}': {df.shape[0]} contigs passed filtering.")

    locus_rank = {locus: i for i, locus in enumerate(LOCUS_ORDER)}
    df = df.assign(
        barcode=df["barcode"].astype(str),
        _locus_rank=[locus_rank.get(x, len(LOCUS_ORDER)) for x in df["chain"]],
        _detection_order=np.arange(df.shape[0]),
    ).sort_values(["_locus_rank", "_detection_order"], kind="stable")

    columns = list(VDJ_COLUMNS) + list(extra_fields)
    barcodes, records = [], []
    # groupby keeps the row order within each group
    for barcode, cell_df in df.groupby("barcode", sort=True):
        clonotypes = [x for x in cell_df[clonotype_col] if not _is_na2(x)]
        if len(set(clonotypes)) > 1:
            logger.warning(
                f"Contigs of cell '{barcode}' in sample '{sample}' are assigned to "
                "different clonotypes. Using the first one."
            )
        record = {
            "clonotype_id": clonotypes[0] if len(clonotypes) else np.nan,
            "chains": format_field(cell_df["chain"], sep),
            "n_chains": cell_df.shape[0],
        }
        for field in CHAIN_FIELDS[1:]:
            record[field] = format_field(cell_df[field], sep)
        for field in extra_fields:
            record[field] = format_field(cell_df[field], sep)
        barcodes.append(barcode)
        records.append(record)

    return pd.DataFrame(records, index=pd.Index(barcodes, dtype=object), columns=columns)


@_doc_params(doc_working_model=doc_working_model)
def read_10x_vdj(
    path: ContigSource,
    *,
    productive_only: bool = True,
    filtered: bool = True,
    clonotype_col: str = "raw_clonotype_id",
    extra_fields: Collection[str] = (),
    sep: str = DEFAULT_SEP,
    sample: Optional[str] = None,
) -> pd.DataFrame:
    """\
    Read a contig table and summarize it into one row per cell.

    Supports the `{{all,filtered}}_contig_annotations.csv` files written by
    10x Genomics cellranger (CSV or TSV, optionally compressed) or a data frame
    with the same columns.

    {doc_working_model}

    Parameters
    ----------
    path
        Path to the contig table, or the contig table as data frame.
    productive_only
        Only keep productive contigs. If the table has a `full_length` column,
        additionally require full-length contigs.
    filtered
        Only keep contigs flagged as `is_cell` and `high_confidence`, if these
        columns are present. If using `filtered_contig_annotations.csv` already,
        this option is futile.
    clonotype_col
        Column of the contig table with the clonotype assigned upstream.
    extra_fields
        Additional chain-level columns of the contig table (e.g. `d_gene`,
        `c_gene`, `cdr3_nt`) to store as multi-value fields.
    sep
        Separator between the values of multi-value fields.
    sample
        Name of the sample used in messages. Defaults to the path.

    Returns
    -------
    Data frame indexed by barcode with the columns `clonotype_id`, `chains`,
    `cdr3`, `v_gene`, `j_gene`, `reads`, `umis`, `n_chains` and `extra_fields`.
    """
    return _read_contig_table(
        path,
        sample=sample if sample is not None else _sample_name(path),
        productive_only=productive_only,
        filtered=filtered,
        clonotype_col=clonotype_col,
        extra_fields=extra_fields,
        sep=sep,
    )


def _resolve_samples(
    contigs: Union[
        Optional[ContigSource],
        Sequence[ContigSource],
        Mapping[str, ContigSource],
    ],
    prefixes: Union[None, str, Sequence[str]],
) -> List[Tuple[Optional[str], Optional[ContigSource]]]:
    """Pair each contig table with its barcode prefix (`None` for no prefix)."""
    if isinstance(contigs, Mapping):
        if prefixes is not None:
            raise ConfigurationError(
                "Prefixes are taken from the keys of `contigs`. "
                "Do not specify `prefixes` in addition."
            )
        if not len(contigs):
            raise ConfigurationError("No contig tables given.")
        return [(str(k), v) for k, v in contigs.items()]

    if contigs is None or isinstance(contigs, (str, Path, pd.DataFrame)):
        sources = [contigs]
    else:
        sources = list(contigs)
    if not len(sources):
        raise ConfigurationError("No contig tables given.")

    if prefixes is None:
        if len(sources) > 1:
            raise ConfigurationError(
                f"{len(sources)} contig tables were given without `prefixes`. "
                "Barcodes of different samples can not be told apart."
            )
        return [(None, sources[0])]

    prefixes = [prefixes] if isinstance(prefixes, str) else list(prefixes)
    if len(prefixes) != len(sources):
        raise ConfigurationError(
            f"Got {len(prefixes)} prefixes for {len(sources)} contig tables."
        )
    if len(set(prefixes)) != len(prefixes):
        raise ConfigurationError("`prefixes` must be unique.")
    return list(zip(prefixes, sources))


@DataHandler.inject_param_docs(doc_working_model=doc_working_model)
def merge_vdj(
    adata: DataHandler.TYPE,
    contigs: Union[
        Optional[ContigSource],
        Sequence[ContigSource],
        Mapping[str, ContigSource],
    ],
    *,
    prefixes: Union[None, str, Sequence[str]] = None,
    prefix_sep: str = "_",
    productive_only: bool = True,
    filtered: bool = True,
    clonotype_col: str = "raw_clonotype_id",
    extra_fields: Collection[str] = (),
    sep: str = DEFAULT_SEP,
):
    """\
    Add V(D)J information from one or more contig tables to the cell table.

    Reads each contig table (see :func:`~scvdj.io.read_10x_vdj`), summarizes the
    contigs per cell and left-joins the result onto the cell table by barcode.
    Cells without V(D)J data get missing values in all V(D)J columns. Barcodes
    in the contig tables without a counterpart in the cell table are ignored.

    All contig tables are read and validated before anything is merged.

    {doc_working_model}

    Parameters
    ----------
    {adata}
    contigs
        A single contig table (path or data frame), a list of contig tables,
        or a mapping `prefix -> contig table`.
    prefixes
        Barcode prefixes for the contig tables, in the same order. Required
        when more than one contig table is passed as a list. Barcodes are
        rewritten to `{{prefix}}{{prefix_sep}}{{barcode}}`.
    prefix_sep
        Separator between prefix and barcode.
    productive_only
        Only keep productive (and full-length) contigs.
    filtered
        Only keep contigs flagged as `is_cell` and `high_confidence`.
    clonotype_col
        Column of the contig tables with the clonotype assigned upstream.
    extra_fields
        Additional chain-level columns to store as multi-value fields.
    {sep}

    Raises
    ------
    NotFoundError
        If a contig table does not exist.
    SchemaError
        If a contig table lacks required columns.
    ConfigurationError
        If the samples can not be merged unambiguously.

    Returns
    -------
    A copy of `adata` with the V(D)J columns `clonotype_id`, `chains`, `cdr3`,
    `v_gene`, `j_gene`, `reads`, `umis`, `n_chains` and `extra_fields` added.
    The multi-value columns are recorded in `uns["scvdj"]` (AnnData) or
    `attrs["scvdj"]` (data frame) so that :func:`~scvdj.pp.filter_vdj`
    treats them as V(D)J columns.
    """
    params = DataHandler(adata)
    samples = _resolve_samples(contigs, prefixes)

    vdj_tables = []
    for i, (prefix, source) in enumerate(samples):
        tmp_vdj = _read_contig_table(
            source,
            sample=prefix if prefix is not None else str(i),
            productive_only=productive_only,
            filtered=filtered,
            clonotype_col=clonotype_col,
            extra_fields=extra_fields,
            sep=sep,
        )
        if prefix is not None:
            tmp_vdj.index = pd.Index(
                [f"{prefix}{prefix_sep}{b}" for b in tmp_vdj.index], dtype=object
            )
        vdj_tables.append(tmp_vdj)
    vdj = pd.concat(vdj_tables)

    duplicated = vdj.index[vdj.index.duplicated()].unique()
    if len(duplicated):
        raise ConfigurationError(
            f"{len(duplicated)} barcodes occur in more than one sample "
            f"(e.g. '{duplicated[0]}'). Use distinct `prefixes`."
        )

    obs = params.obs
    replaced = [c for c in vdj.columns if c in obs.columns]
    if replaced:
        logging.warning(f"Replacing existing V(D)J columns in the cell table: {replaced}")

    n_unmatched = int(np.sum(~vdj.index.isin(obs.index)))
    if n_unmatched:
        logging.warning(
            f"{n_unmatched} barcodes with V(D)J data are not part of the "
            "cell table and were ignored."
        )

    new_obs = obs.drop(columns=replaced).join(vdj, how="left")
    new_obs["n_chains"] = new_obs["n_chains"].astype(float).astype("Int64")
    logging.info(
        f"Matched V(D)J data for {int(new_obs['n_chains'].notna().sum())} "
        f"of {new_obs.shape[0]} cells."
    )  # type: ignore
    res = params.replace_obs(new_obs)
    _set_chain_fields(res, list(CHAIN_FIELDS) + list(extra_fields))
    return res
