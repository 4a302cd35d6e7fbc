"""
TensorFlow ``GraphDef`` adapter.

A ``Graph`` is persisted as a GraphDef whose ``op`` fields carry the node
kind. Output types travel in the ``_output_types`` / ``_output_shapes``
attributes and boundary order in ``_parameter_index`` / ``_result_index``.
"""

import collections
import os
from typing import Dict, List

import numpy as np
import tensorflow.compat.v1 as tf
from google.protobuf import text_format
from tensorflow.core.framework import attr_value_pb2, node_def_pb2

from ..errors import GraphError
from ..ir import Graph, OutputRef
from ..ops import OpKind, TensorType

OUTPUT_TYPES_ATTR = "_output_types"
OUTPUT_SHAPES_ATTR = "_output_shapes"
PARAMETER_INDEX_ATTR = "_parameter_index"
RESULT_INDEX_ATTR = "_result_index"
RESERVED_ATTRS = (OUTPUT_TYPES_ATTR, OUTPUT_SHAPES_ATTR, PARAMETER_INDEX_ATTR, RESULT_INDEX_ATTR)


def create_node(op, name, inputs=None, attr=None):
    """Creates a NodeDef proto."""
    node = node_def_pb2.NodeDef()
    node.op = op
    node.name = name
    if inputs:
        node.input.extend(inputs)
    if attr:
        for k, v in attr.items():
            node.attr[k].CopyFrom(v)
    return node


def to_attr_value(value) -> attr_value_pb2.AttrValue:
    """Wraps a Python/numpy attribute value into an AttrValue proto."""
    if isinstance(value, (bool, np.bool_)):
        return attr_value_pb2.AttrValue(b=bool(value))
    if isinstance(value, (int, np.integer)):
        return attr_value_pb2.AttrValue(i=int(value))
    if isinstance(value, (float, np.floating)):
        return attr_value_pb2.AttrValue(f=float(value))
    if isinstance(value, str):
        return attr_value_pb2.AttrValue(s=value.encode("utf-8"))
    if isinstance(value, np.dtype) or (isinstance(value, type) and issubclass(value, np.generic)):
        return attr_value_pb2.AttrValue(type=tf.as_dtype(np.dtype(value)).as_datatype_enum)
    if isinstance(value, np.ndarray):
        return attr_value_pb2.AttrValue(tensor=tf.make_tensor_proto(value))
    if isinstance(value, (list, tuple)):
        items = list(value)
        list_value = attr_value_pb2.AttrValue.ListValue()
        if all(isinstance(v, (bool, np.bool_)) for v in items):
            list_value.b.extend(bool(v) for v in items)
        elif all(isinstance(v, (int, np.integer)) for v in items):
            list_value.i.extend(int(v) for v in items)
        elif all(isinstance(v, (float, np.floating, int, np.integer)) for v in items):
            list_value.f.extend(float(v) for v in items)
        elif all(isinstance(v, str) for v in items):
            list_value.s.extend(v.encode("utf-8") for v in items)
        else:
            raise GraphError(f"Unsupported list attribute value: {value!r}")
        return attr_value_pb2.AttrValue(list=list_value)
    raise GraphError(f"Unsupported attribute value: {value!r}")


def get_attr_value(attr_proto):
    """Unwraps an AttrValue proto into a Python literal."""
    field = attr_proto.WhichOneof("value")
    if field == "s":
        return attr_proto.s.decode("utf-8")
    if field == "i":
        return attr_proto.i
    if field == "f":
        return attr_proto.f
    if field == "b":
        return attr_proto.b
    if field == "type":
        return np.dtype(tf.as_dtype(attr_proto.type).as_numpy_dtype)
    if field == "shape":
        return [dim.size for dim in attr_proto.shape.dim]
    if field == "tensor":
        return tf.make_ndarray(attr_proto.tensor)
    if field == "list":
        list_value = attr_proto.list
        if list_value.s:
            return [s.decode("utf-8") for s in list_value.s]
        if list_value.i:
            return list(list_value.i)
        if list_value.f:
            return list(list_value.f)
        if list_value.b:
            return list(list_value.b)
        return []
    # Fallback to the proto itself for complex types
    return attr_proto


def _unique_names(graph: Graph) -> Dict[int, str]:
    counts = collections.Counter(node.name for node in graph)
    names = {}
    for node in graph:
        if node.name and counts[node.name] == 1:
            names[node.id] = node.name
        else:
            names[node.id] = f"{node.name}__{node.id}"
    return names


def to_graph_def(graph: Graph) -> tf.GraphDef:
    """Converts a Graph into a GraphDef (nodes in topological order)."""
    names = _unique_names(graph)
    graph_def = tf.GraphDef()
    for node_id in graph.topological_order():
        node = graph.get_node(node_id)
        inputs = [
            names[ref.node_id] if ref.index == 0 else f"{names[ref.node_id]}:{ref.index}"
            for ref in node.inputs
        ]
        node_def = create_node(node.kind.value, names[node_id], inputs=inputs)
        for key, value in node.attrs.items():
            node_def.attr[key].CopyFrom(to_attr_value(value))

        types = attr_value_pb2.AttrValue.ListValue()
        shapes = attr_value_pb2.AttrValue.ListValue()
        for output in node.outputs:
            types.type.append(tf.as_dtype(output.element_type).as_datatype_enum)
            shapes.shape.add().CopyFrom(tf.TensorShape(list(output.shape)).as_proto())
        node_def.attr[OUTPUT_TYPES_ATTR].CopyFrom(attr_value_pb2.AttrValue(list=types))
        node_def.attr[OUTPUT_SHAPES_ATTR].CopyFrom(attr_value_pb2.AttrValue(list=shapes))

        if node_id in graph.parameters:
            node_def.attr[PARAMETER_INDEX_ATTR].i = graph.parameters.index(node_id)
        if node_id in graph.results:
            node_def.attr[RESULT_INDEX_ATTR].i = graph.results.index(node_id)
        graph_def.node.append(node_def)
    return graph_def


def _split_input(input_name: str):
    base, _, port = input_name.lstrip("^").partition(":")
    return base, int(port) if port else 0


def _output_types(node_def) -> List[TensorType]:
    types = node_def.attr[OUTPUT_TYPES_ATTR].list.type
    shapes = node_def.attr[OUTPUT_SHAPES_ATTR].list.shape
    if len(types) != len(shapes):
        raise GraphError(f"Node '{node_def.name}' has inconsistent output metadata")
    return [
        TensorType(tf.as_dtype(t).as_numpy_dtype, [dim.size for dim in shape.dim])
        for t, shape in zip(types, shapes)
    ]


def from_graph_def(graph_def: tf.GraphDef, name: str = "graph") -> Graph:
    """Rebuilds a Graph from a GraphDef written by ``to_graph_def``."""
    node_defs = collections.OrderedDict((n.name, n) for n in graph_def.node)
    try:
        kinds = {n.name: OpKind(n.op) for n in node_defs.values()}
    except ValueError as e:
        raise GraphError(f"Unsupported operator in GraphDef: {e}") from None

    graph = Graph(name)
    created: Dict[str, int] = {}

    def attrs_of(node_def):
        return {
            key: get_attr_value(value)
            for key, value in node_def.attr.items()
            if key not in RESERVED_ATTRS
        }

    parameters = sorted(
        (n for n in node_defs.values() if kinds[n.name] == OpKind.PARAMETER),
        key=lambda n: n.attr[PARAMETER_INDEX_ATTR].i,
    )
    for node_def in parameters:
        output = _output_types(node_def)[0]
        node = graph.add_parameter(
            output.element_type, output.shape, name=node_def.name, attrs=attrs_of(node_def)
        )
        created[node_def.name] = node.id

    results = []
    visiting = set()

    def build(node_name):
        if node_name in created:
            return created[node_name]
        if node_name not in node_defs:
            raise GraphError(f"GraphDef references unknown node '{node_name}'")
        if node_name in visiting:
            raise GraphError(f"GraphDef contains a cycle through '{node_name}'")
        visiting.add(node_name)
        node_def = node_defs[node_name]
        inputs = []
        for input_name in node_def.input:
            base, port = _split_input(input_name)
            inputs.append(OutputRef(build(base), port))
        visiting.discard(node_name)
        if kinds[node_name] == OpKind.RESULT:
            results.append(node_def)
            return None
        node = graph.add_node(
            kinds[node_name],
            inputs,
            attrs=attrs_of(node_def),
            outputs=_output_types(node_def),
            name=node_name,
        )
        created[node_name] = node.id
        return node.id

    for node_name in node_defs:
        if kinds[node_name] == OpKind.RESULT:
            build(node_name)

    for node_def in sorted(results, key=lambda n: n.attr[RESULT_INDEX_ATTR].i):
        base, port = _split_input(node_def.input[0])
        graph.add_result(OutputRef(created[base], port), name=node_def.name, attrs=attrs_of(node_def))
    return graph


def save_graph(graph, path):
    """Saves a Graph (or GraphDef) to a file (binary or pbtxt)."""
    graph_def = to_graph_def(graph) if isinstance(graph, Graph) else graph
    # Ensure output directory exists
    output_dir = os.path.dirname(path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir, exist_ok=True)

    if path.endswith(".pbtxt"):
        with open(path, "w") as f:
            f.write(text_format.MessageToString(graph_def))
    else:
        with open(path, "wb") as f:
            f.write(graph_def.SerializeToString())


def load_graph(path, name=None) -> Graph:
    """Loads a Graph from a GraphDef file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Graph file not found: {path}")

    graph_def = tf.GraphDef()
    if path.endswith(".pbtxt"):
        with open(path, "r") as f:
            text_format.Merge(f.read(), graph_def)
    else:
        with open(path, "rb") as f:
            graph_def.ParseFromString(f.read())
    return from_graph_def(graph_def, name or os.path.splitext(os.path.basename(path))[0])
