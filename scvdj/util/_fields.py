"""Multi-value fields.

A multi-value field holds one value per detected chain of a cell. Within the
cell table it is stored as a single string, joined by a separator (`;` by
default). Everything that computes on these fields works on the parsed list
representation; the delimited string only exists at the table boundary.

.. note::
    Values must not contain the separator character. This is a constraint on
    upstream data: :func:`format_field` refuses such values instead of
    producing a field that would parse into a different number of chains.
"""
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .._exceptions import SchemaError

#: Default separator between the values of a multi-value field
DEFAULT_SEP = ";"

#: Token for a chain whose value is missing within an otherwise populated field
NA_ELEMENT = "NA"


def _is_na2(x):
    """Check if an object or string is NaN.
    The function is vectorized over numpy arrays or pandas Series
    but also works for single values.

    Pandas Series are converted to numpy arrays.
    """
    return pd.isnull(x) or x in ("NaN", "nan", "None", "N/A", "")


_is_na = np.vectorize(_is_na2, otypes=[bool])


def _to_str(x: Any) -> str:
    if _is_na2(x):
        return NA_ELEMENT
    if isinstance(x, (float, np.floating)) and float(x).is_integer():
        return str(int(x))
    return str(x)


def parse_field(value: Any, sep: str = DEFAULT_SEP) -> List[str]:
    """\
    Split a multi-value field into its values.

    Missing values (`None`, `NaN` and their string representations) yield
    an empty list. Lists and tuples are considered already parsed.

    Parameters
    ----------
    value
        A single cell of a multi-value column
    sep
        Separator between values

    Returns
    -------
    List of values, one per chain.
    """
    if isinstance(value, (list, tuple, np.ndarray)):
        return [_to_str(x) for x in value]
    if _is_na2(value):
        return []
    if not isinstance(value, str):
        return [_to_str(value)]
    return value.split(sep)


def format_field(values: Optional[Iterable[Any]], sep: str = DEFAULT_SEP) -> Optional[str]:
    """\
    Join values into a multi-value field.

    Parameters
    ----------
    values
        Values, one per chain. `None` represents a cell without data and
        is returned unchanged. Missing elements are written as `"NA"`.
    sep
        Separator between values

    Raises
    ------
    SchemaError
        If one of the values contains the separator.
    """
    if values is None:
        return None
    tmp_values = [_to_str(x) for x in values]
    for x in tmp_values:
        if sep in x:
            raise SchemaError(
                f"Value '{x}' contains the field separator '{sep}'. "
                "Values of multi-value fields must not contain the separator."
            )
    return sep.join(tmp_values)


def split_column(column: pd.Series, sep: str = DEFAULT_SEP) -> pd.Series:
    """Parse every cell of a multi-value column into a list."""
    return column.map(lambda x: parse_field(x, sep))


def join_column(column: pd.Series, sep: str = DEFAULT_SEP) -> pd.Series:
    """Inverse of :func:`split_column`. Empty lists become missing values."""
    return column.map(lambda x: format_field(x, sep) if len(x) else None)


def unique_field(values: Sequence[Any]) -> List[Any]:
    """Deduplicate values, keeping the order of first occurrence."""
    return list(dict.fromkeys(values))


def zip_fields(
    *fields: Sequence[Any],
    broadcast: bool = True,
    n_chains: Optional[int] = None,
    cell_id: Optional[str] = None,
) -> List[tuple]:
    """\
    Zip several multi-value fields of the same cell.

    Yields one tuple per chain, i.e. `zip_fields(chains, v_genes, j_genes)`
    returns `[(chain_1, v_1, j_1), (chain_2, v_2, j_2), ...]`.

    Parameters
    ----------
    *fields
        Parsed multi-value fields
    broadcast
        Repeat fields with a single value (e.g. a cell-level `clonotype_id`)
        to match the number of chains.
    n_chains
        Expected number of chains (e.g. the length of the `chains` field).
        If given, every field must have this length, or length 1 when
        broadcasting.
    cell_id
        Used in error messages only.

    Raises
    ------
    SchemaError
        If the fields have different numbers of values.

    Returns
    -------
    List of tuples. Empty if any of the fields is empty.
    """
    if not len(fields) or any(len(f) == 0 for f in fields):
        return []
    lengths = {len(f) for f in fields if not (broadcast and len(f) == 1)}
    if n_chains is not None:
        lengths.add(n_chains)
    if len(lengths) > 1:
        raise SchemaError(
            "Multi-value fields have inconsistent numbers of chains "
            f"({', '.join(str(len(f)) for f in fields)})"
            + (f", expected {n_chains}" if n_chains is not None else "")
            + (f" for cell '{cell_id}'." if cell_id is not None else ".")
        )
    n = lengths.pop() if lengths else 1
    return list(zip(*[list(f) * n if len(f) == 1 else f for f in fields]))
