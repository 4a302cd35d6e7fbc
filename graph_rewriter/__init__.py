from .errors import (
    GraphRewriterError,
    GraphError,
    CycleError,
    ShapeInferenceError,
    RewriteError,
    PipelineError,
    LayoutError,
)
from .ops import OpKind, TensorType
from .ir import Graph, Node, OutputRef
from .core import (
    MatchContext,
    OpPattern,
    WildcardPattern,
    OptionalPattern,
    VariadicPattern,
    CommutativeOpPattern,
    match,
    Op,
    Any,
    OptionalInput,
    Variadic,
    CommutativeOp,
    ConstValue,
    ApplyStatus,
    ApplyResult,
    PassStats,
    BasePass,
    FunctionPass,
    MatcherPass,
    GraphRewrite,
)
from .validation import Violation, ViolationKind, validate_graph
from .equivalence import Comparison, compare_graphs, equivalent
from .runner import PassConfig, PassPipeline, PassManager, ValidationResult
from .layout import (
    Orientation,
    DnnComponent,
    retrieve_input_orientation,
    retrieve_output_orientation,
)
from .utils.logger import set_log_level, DEBUG, INFO, WARNING, ERROR

__all__ = [
    "GraphRewriterError",
    "GraphError",
    "CycleError",
    "ShapeInferenceError",
    "RewriteError",
    "PipelineError",
    "LayoutError",
    "OpKind",
    "TensorType",
    "Graph",
    "Node",
    "OutputRef",
    "MatchContext",
    "OpPattern",
    "WildcardPattern",
    "OptionalPattern",
    "VariadicPattern",
    "CommutativeOpPattern",
    "match",
    "Op",
    "Any",
    "OptionalInput",
    "Variadic",
    "CommutativeOp",
    "ConstValue",
    "ApplyStatus",
    "ApplyResult",
    "PassStats",
    "BasePass",
    "FunctionPass",
    "MatcherPass",
    "GraphRewrite",
    "Violation",
    "ViolationKind",
    "validate_graph",
    "Comparison",
    "compare_graphs",
    "equivalent",
    "PassConfig",
    "PassPipeline",
    "PassManager",
    "ValidationResult",
    "Orientation",
    "DnnComponent",
    "retrieve_input_orientation",
    "retrieve_output_orientation",
    "set_log_level",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
]
