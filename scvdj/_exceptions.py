"""Exceptions and warnings raised by scvdj.

All errors derive from :class:`ScvdjError` and, additionally, from the builtin
exception a caller would naturally catch (e.g. `ValueError`), so existing
`except ValueError` clauses keep working.
"""


class ScvdjError(Exception):
    """Base class for all errors raised by scvdj."""


class SchemaError(ScvdjError, ValueError):
    """A required column is missing or the data violates the cell table schema."""


class ColumnNotFoundError(SchemaError):
    """A function or expression references a column that does not exist.

    Parameters
    ----------
    column
        Name of the missing column
    context
        Optional description of where the column was expected.
    """

    def __init__(self, column: str, context: str = "the cell table"):
        self.column = column
        super().__init__(f"Column `{column}` not found in {context}.")


class NotFoundError(ScvdjError, FileNotFoundError):
    """An input source (e.g. a contig table) does not exist."""


class ConfigurationError(ScvdjError, ValueError):
    """An ambiguous or invalid combination of options was passed."""


class InvalidMethodError(ScvdjError, ValueError):
    """A diversity or similarity metric is unknown or has the wrong signature."""


class EmptyGroupWarning(UserWarning):
    """A group contributes no VDJ-annotated cells to a computation."""
