# graph_io pulls in TensorFlow; import it explicitly where GraphDef interop is needed.
from .graph_utils import (
    canonicalize_axis,
    values_equal,
    count_kinds,
    kinds_in_order,
)
from .logger import logger
from .visualize import export_to_dot, save_dot

__all__ = [
    # graph_utils
    "canonicalize_axis",
    "values_equal",
    "count_kinds",
    "kinds_in_order",
    # logger
    "logger",
    # visualize
    "export_to_dot",
    "save_dot",
]
