"""Metadata. Adapted from https://github.com/theislab/scanpy/pull/1374/."""
from pathlib import Path

here = Path(__file__).parent

try:
    from ._compat import pkg_metadata

    metadata = pkg_metadata(here.name)
    __version__ = metadata["Version"]
    __author__ = metadata["Author"]
    __email__ = metadata["Author-email"]
except ImportError:
    # running from a source checkout that was never installed
    __version__ = "0.0.0"
    __author__ = __email__ = None
