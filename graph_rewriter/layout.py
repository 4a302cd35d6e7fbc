"""
Orientation of graph inputs and outputs for a row-major DNN backend.

A tensor feeding (or produced by) an interleave/deinterleave component whose
rows and columns line up with the tensor's leading dimensions is stored
non-interleaved; everything else is interleaved. These helpers read the
rewritten graph only and never modify it.
"""

import collections
import enum
from typing import Mapping

from .errors import LayoutError
from .ir import Graph, Node
from .ops import OpKind

INTERLEAVE_OP = "interleave"
DEINTERLEAVE_OP = "deinterleave"

SUPPORTED_LAYOUTS = ("NC", "CN", "NCHW", "NHWC")


class Orientation(enum.Enum):
    INTERLEAVED = "interleaved"
    NON_INTERLEAVED = "non_interleaved"


class DnnComponent(
    collections.namedtuple(
        "DnnComponent",
        ["operation", "num_rows_in", "num_columns_in", "num_rows_out", "num_columns_out"],
    )
):
    """Backend component lowered from one graph node, keyed by the node's friendly name."""

    __slots__ = ()


def _orientation(layout, dims, component, rows, columns) -> Orientation:
    if component is None:
        return Orientation.INTERLEAVED
    if component.operation not in (INTERLEAVE_OP, DEINTERLEAVE_OP):
        return Orientation.INTERLEAVED
    if layout not in SUPPORTED_LAYOUTS or len(dims) < 2:
        return Orientation.INTERLEAVED

    # N is the second dimension
    if layout == "CN" and rows == dims[1] and columns == dims[0]:
        return Orientation.NON_INTERLEAVED
    if rows == dims[0] and columns == dims[1]:
        return Orientation.NON_INTERLEAVED
    return Orientation.INTERLEAVED


def _find_parameter(graph: Graph, input_name: str) -> Node:
    for node in graph.parameter_nodes():
        if node.name == input_name:
            return node
    raise LayoutError(f"Not found input data for input name: {input_name}!")


def _find_result(graph: Graph, output_name: str) -> Node:
    for node in graph.result_nodes():
        if node.name == output_name:
            return node
    for node in graph.result_nodes():
        producer_id = node.inputs[0].node_id
        if producer_id in graph and graph.get_node(producer_id).name == output_name:
            return node
    raise LayoutError(f"Not found output data for output name: {output_name}!")


def retrieve_input_orientation(
    graph: Graph, input_name: str, components: Mapping[str, DnnComponent]
) -> Orientation:
    """
    Orientation expected for the graph input ``input_name``.

    Args:
        graph: Rewritten graph
        input_name: Friendly name of a Parameter
        components: Backend components keyed by the friendly name of the node they implement

    Returns:
        Orientation.NON_INTERLEAVED when the single consuming layer is an
        interleave/deinterleave component whose input rows/columns match the
        tensor's N and C dimensions; Orientation.INTERLEAVED otherwise.

    Raises:
        LayoutError: Unknown input, or an input with zero or several consumers.
    """
    parameter = _find_parameter(graph, input_name)
    consumer_ids = sorted({consumer_id for consumer_id, _ in graph.node_consumers(parameter.id)})
    if not consumer_ids:
        raise LayoutError(f"Not found layer for input: {input_name}!")
    if len(consumer_ids) != 1:
        raise LayoutError(
            f"Don't know how to handle input: {input_name} used as input for more than one layer!"
        )

    consumer = graph.get_node(consumer_ids[0])
    component = components.get(consumer.name)
    dims = parameter.outputs[0].shape
    return _orientation(
        parameter.attrs.get("layout"),
        dims,
        component,
        component.num_rows_in if component else None,
        component.num_columns_in if component else None,
    )


def retrieve_output_orientation(
    graph: Graph, output_name: str, components: Mapping[str, DnnComponent]
) -> Orientation:
    """Orientation of the graph output ``output_name`` (a Result name or its producer's name)."""
    result = _find_result(graph, output_name)
    producer = graph.get_node(result.inputs[0].node_id)
    if producer.kind == OpKind.PARAMETER:
        raise LayoutError(f"Not found layer for output: {output_name}!")

    component = components.get(producer.name)
    dims = result.outputs[0].shape
    return _orientation(
        result.attrs.get("layout"),
        dims,
        component,
        component.num_rows_out if component else None,
        component.num_columns_out if component else None,
    )
