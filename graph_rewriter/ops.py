"""
Operator catalog: the closed set of node kinds and their output type rules.

Only what the engine needs to check type/shape consistency lives here. There
are no numeric semantics; a kind is a tag plus an inference rule.
"""

import collections
import enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .errors import ShapeInferenceError


class OpKind(enum.Enum):
    PARAMETER = "Parameter"
    CONSTANT = "Constant"
    RESULT = "Result"
    IDENTITY = "Identity"
    CONVERT = "Convert"
    ADD = "Add"
    SUBTRACT = "Subtract"
    MULTIPLY = "Multiply"
    DIVIDE = "Divide"
    EXP = "Exp"
    LOG = "Log"
    ERF = "Erf"
    SIGMOID = "Sigmoid"
    RELU = "Relu"
    TANH = "Tanh"
    GELU_V2 = "Gelu-2"
    GELU_V7 = "Gelu-7"
    SOFTMAX = "Softmax"
    LOG_SOFTMAX = "LogSoftmax"
    REDUCE_MAX = "ReduceMax"
    REDUCE_SUM = "ReduceSum"
    MATMUL = "MatMul"
    CONCAT = "Concat"
    TRANSPOSE = "Transpose"
    RESHAPE = "Reshape"
    BROADCAST = "Broadcast"
    TILE = "Tile"

    @property
    def opset(self) -> int:
        """Op-set version in which this kind was introduced."""
        return OPSET_INTRODUCED.get(self, 1)


OPSET_INTRODUCED: Dict[OpKind, int] = {
    OpKind.GELU_V2: 2,
    OpKind.GELU_V7: 7,
    OpKind.LOG_SOFTMAX: 5,
    OpKind.BROADCAST: 3,
}


class TensorType(collections.namedtuple("TensorType", ["element_type", "shape"])):
    """Element type (numpy dtype) and static shape of one node output."""

    __slots__ = ()

    def __new__(cls, element_type, shape):
        return super().__new__(
            cls, np.dtype(element_type), tuple(int(d) for d in shape)
        )

    @property
    def rank(self) -> int:
        return len(self.shape)

    def __str__(self):
        dims = ",".join(str(d) for d in self.shape)
        return f"{self.element_type.name}{{{dims}}}"


UNARY_ELEMENTWISE = frozenset(
    {
        OpKind.RESULT,
        OpKind.IDENTITY,
        OpKind.EXP,
        OpKind.LOG,
        OpKind.ERF,
        OpKind.SIGMOID,
        OpKind.RELU,
        OpKind.TANH,
        OpKind.GELU_V2,
        OpKind.GELU_V7,
    }
)

BINARY_ELEMENTWISE = frozenset(
    {OpKind.ADD, OpKind.SUBTRACT, OpKind.MULTIPLY, OpKind.DIVIDE}
)

REDUCTIONS = frozenset({OpKind.REDUCE_MAX, OpKind.REDUCE_SUM})

# kind -> (min inputs, max inputs); None means unbounded
INPUT_ARITY = {
    OpKind.PARAMETER: (0, 0),
    OpKind.CONSTANT: (0, 0),
    OpKind.CONVERT: (1, 1),
    OpKind.SOFTMAX: (1, 1),
    OpKind.LOG_SOFTMAX: (1, 1),
    OpKind.REDUCE_MAX: (2, 2),
    OpKind.REDUCE_SUM: (2, 2),
    OpKind.MATMUL: (2, 2),
    OpKind.CONCAT: (1, None),
    OpKind.TRANSPOSE: (2, 2),
    OpKind.RESHAPE: (2, 2),
    OpKind.BROADCAST: (2, 2),
    OpKind.TILE: (2, 2),
}


def expected_arity(kind: OpKind):
    if kind in UNARY_ELEMENTWISE:
        return (1, 1)
    if kind in BINARY_ELEMENTWISE:
        return (2, 2)
    return INPUT_ARITY[kind]


def normalize_axis(axis: int, rank: int, kind: OpKind) -> int:
    if not -rank <= axis < max(rank, 1):
        raise ShapeInferenceError(
            f"{kind.value}: axis {axis} out of range for rank {rank}"
        )
    return axis + rank if axis < 0 else axis


def _broadcast(kind, shapes):
    try:
        return tuple(np.broadcast_shapes(*shapes))
    except ValueError:
        raise ShapeInferenceError(
            f"{kind.value}: shapes {list(shapes)} are not broadcastable"
        ) from None


def _same_element_type(kind, input_types):
    element_types = {t.element_type for t in input_types}
    if len(element_types) > 1:
        names = sorted(e.name for e in element_types)
        raise ShapeInferenceError(
            f"{kind.value}: inputs have mismatching element types {names}"
        )
    return input_types[0].element_type


def _int_values(kind, value, what):
    array = np.asarray(value)
    if array.dtype.kind not in "iu":
        raise ShapeInferenceError(f"{kind.value}: {what} must be integer")
    return [int(v) for v in array.reshape(-1)]


def infer_output_types(
    kind: OpKind,
    attrs: Dict[str, Any],
    input_types: Sequence[TensorType],
    input_values: Sequence[Optional[np.ndarray]],
) -> Optional[List[TensorType]]:
    """
    Derives the output types of a node from its inputs.

    Args:
        kind: Operator kind
        attrs: Node attributes
        input_types: Types of the node's inputs, in order
        input_values: Constant values feeding the inputs (None when not constant)

    Returns:
        List of output types, or None when the outputs cannot be derived
        (Parameter, or a shape argument that is not a constant).

    Raises:
        ShapeInferenceError: inputs are inconsistent with the operator.
    """
    low, high = expected_arity(kind)
    count = len(input_types)
    if count < low or (high is not None and count > high):
        raise ShapeInferenceError(
            f"{kind.value}: expected {low}..{high if high is not None else 'N'} "
            f"inputs, got {count}"
        )

    if kind == OpKind.PARAMETER:
        return None

    if kind == OpKind.CONSTANT:
        if "value" not in attrs:
            raise ShapeInferenceError("Constant: missing 'value' attribute")
        value = np.asarray(attrs["value"])
        return [TensorType(value.dtype, value.shape)]

    if kind in UNARY_ELEMENTWISE:
        return [input_types[0]]

    if kind in (OpKind.SOFTMAX, OpKind.LOG_SOFTMAX):
        data = input_types[0]
        normalize_axis(int(attrs.get("axis", 1)), data.rank, kind)
        return [data]

    if kind == OpKind.CONVERT:
        if "destination_type" not in attrs:
            raise ShapeInferenceError("Convert: missing 'destination_type' attribute")
        return [TensorType(attrs["destination_type"], input_types[0].shape)]

    if kind in BINARY_ELEMENTWISE:
        element_type = _same_element_type(kind, input_types)
        shape = _broadcast(kind, [t.shape for t in input_types])
        return [TensorType(element_type, shape)]

    if kind in REDUCTIONS:
        data = input_types[0]
        if input_values[1] is None:
            return None
        axes = {
            normalize_axis(a, data.rank, kind)
            for a in _int_values(kind, input_values[1], "axes")
        }
        keep_dims = bool(attrs.get("keep_dims", False))
        shape = []
        for i, dim in enumerate(data.shape):
            if i in axes:
                if keep_dims:
                    shape.append(1)
            else:
                shape.append(dim)
        return [TensorType(data.element_type, shape)]

    if kind == OpKind.MATMUL:
        a, b = input_types
        element_type = _same_element_type(kind, input_types)
        if a.rank < 2 or b.rank < 2:
            raise ShapeInferenceError("MatMul: inputs must have rank >= 2")
        a_rows, a_cols = a.shape[-2:]
        b_rows, b_cols = b.shape[-2:]
        if attrs.get("transpose_a", False):
            a_rows, a_cols = a_cols, a_rows
        if attrs.get("transpose_b", False):
            b_rows, b_cols = b_cols, b_rows
        if a_cols != b_rows:
            raise ShapeInferenceError(
                f"MatMul: inner dimensions differ ({a_cols} vs {b_rows})"
            )
        batch = _broadcast(kind, [a.shape[:-2], b.shape[:-2]])
        return [TensorType(element_type, batch + (a_rows, b_cols))]

    if kind == OpKind.CONCAT:
        element_type = _same_element_type(kind, input_types)
        first = input_types[0]
        axis = normalize_axis(int(attrs.get("axis", 0)), first.rank, kind)
        total = 0
        for t in input_types:
            if t.rank != first.rank or any(
                d != e for i, (d, e) in enumerate(zip(t.shape, first.shape)) if i != axis
            ):
                raise ShapeInferenceError(
                    f"Concat: shape {t.shape} incompatible with {first.shape} on axis {axis}"
                )
            total += t.shape[axis]
        shape = list(first.shape)
        shape[axis] = total
        return [TensorType(element_type, shape)]

    if kind == OpKind.TRANSPOSE:
        data = input_types[0]
        if input_values[1] is None:
            return None
        order = _int_values(kind, input_values[1], "order")
        if not order:
            order = list(reversed(range(data.rank)))
        if sorted(order) != list(range(data.rank)):
            raise ShapeInferenceError(
                f"Transpose: {order} is not a permutation of rank {data.rank}"
            )
        return [TensorType(data.element_type, [data.shape[i] for i in order])]

    if kind == OpKind.RESHAPE:
        data = input_types[0]
        if input_values[1] is None:
            return None
        target = _int_values(kind, input_values[1], "shape")
        if attrs.get("special_zero", False):
            target = [
                data.shape[i] if d == 0 and i < data.rank else d
                for i, d in enumerate(target)
            ]
        size = int(np.prod(data.shape, dtype=np.int64))
        if target.count(-1) > 1:
            raise ShapeInferenceError("Reshape: more than one -1 in target shape")
        if -1 in target:
            known = int(np.prod([d for d in target if d != -1], dtype=np.int64))
            if known == 0 or size % known:
                raise ShapeInferenceError(
                    f"Reshape: cannot reshape {data.shape} into {target}"
                )
            target[target.index(-1)] = size // known
        if int(np.prod(target, dtype=np.int64)) != size:
            raise ShapeInferenceError(f"Reshape: cannot reshape {data.shape} into {target}")
        return [TensorType(data.element_type, target)]

    if kind == OpKind.BROADCAST:
        data = input_types[0]
        if input_values[1] is None:
            return None
        target = _int_values(kind, input_values[1], "target shape")
        return [TensorType(data.element_type, _broadcast(kind, [data.shape, target]))]

    if kind == OpKind.TILE:
        data = input_types[0]
        if input_values[1] is None:
            return None
        repeats = _int_values(kind, input_values[1], "repeats")
        rank = max(data.rank, len(repeats))
        dims = [1] * (rank - data.rank) + list(data.shape)
        repeats = [1] * (rank - len(repeats)) + repeats
        return [TensorType(data.element_type, [d * r for d, r in zip(dims, repeats)])]

    raise ShapeInferenceError(f"No inference rule for {kind.value}")
