"""Operator definitions and graph-import binding for symbolic tensor graphs.

Operators are declared once as immutable records and can then be built
natively, imported from an external graph interchange format, and
differentiated into further graph operators.

Example usage:
    from graph_ops import Graph, build_gradients, import_node, space_to_depth
    from graph_ops.importer import ExternalNode

    graph = Graph("model")
    x = graph.placeholder("x", shape=(1, 8, 8, 3))

    # Native construction
    y = space_to_depth(graph, x, block_size=2)
    graph.get_op(y.producer_node).int_args  # (2, 1)

    # Import from an external node
    node = ExternalNode(name="s2d", op="SpaceToDepth", inputs=["x"], attrs={"block_size": 2})
    record = import_node(node, inputs=[x])
    record.int_args  # (2, 1): data_format defaults to NHWC

    # Backward pass
    dy = graph.placeholder("dy", shape=y.shape)
    grads = build_gradients(graph, {y.name: dy})
"""

from .autodiff import GradientError, build_gradients
from .graph import Graph, SymbolicVariable
from .importer import (
    AttributeBag,
    ExternalGraph,
    ExternalNode,
    GraphImporter,
    GraphImportError,
    MissingAttribute,
    import_node,
)
from .ops import (
    AddN,
    AttributeMapping,
    AttributeSource,
    DepthToSpace,
    FieldSpec,
    InvalidConfiguration,
    OneHot,
    OpBindingError,
    OperatorRecord,
    OpRegistry,
    SpaceToDepth,
    UnsupportedExternalOperator,
    ZerosLike,
    add_n,
    depth_to_space,
    list_registered_ops,
    one_hot,
    register_op,
    space_to_depth,
    zeros_like,
)
from .serializer import (
    GraphSerializer,
    SerializationError,
    deserialize_graph,
    load_graph,
    save_graph,
    serialize_graph,
    validate_graph,
)

__version__ = "0.1.0"

__all__ = [
    # Graph
    "Graph",
    "SymbolicVariable",
    # Operator records
    "OperatorRecord",
    "FieldSpec",
    "AttributeMapping",
    "AttributeSource",
    "SpaceToDepth",
    "DepthToSpace",
    "OneHot",
    "ZerosLike",
    "AddN",
    # Native builders
    "space_to_depth",
    "depth_to_space",
    "one_hot",
    "zeros_like",
    "add_n",
    # Registry
    "OpRegistry",
    "register_op",
    "list_registered_ops",
    # Import
    "AttributeBag",
    "ExternalNode",
    "ExternalGraph",
    "GraphImporter",
    "import_node",
    # Errors
    "OpBindingError",
    "InvalidConfiguration",
    "MissingAttribute",
    "UnsupportedExternalOperator",
    "GraphImportError",
    "GradientError",
    "SerializationError",
    # Differentiation
    "build_gradients",
    # Serialization
    "serialize_graph",
    "deserialize_graph",
    "save_graph",
    "load_graph",
    "validate_graph",
    "GraphSerializer",
]
