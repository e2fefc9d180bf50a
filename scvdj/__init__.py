"""Python library for single-cell V(D)J repertoire analysis"""

from ._metadata import __version__
from ._exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    EmptyGroupWarning,
    InvalidMethodError,
    NotFoundError,
    SchemaError,
    ScvdjError,
)
from . import util
from . import io
from . import pp
from . import tl
