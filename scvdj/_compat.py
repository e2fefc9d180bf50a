def pkg_metadata(package):
    from importlib.metadata import metadata as m

    return m(package)


__all__ = ["pkg_metadata"]
