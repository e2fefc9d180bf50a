from ._expression import CellView, filter_vdj, mutate_vdj

__all__ = ["CellView", "filter_vdj", "mutate_vdj"]
