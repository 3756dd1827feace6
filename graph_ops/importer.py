"""Graph import binder: builds operator records from external graph nodes.

The external interchange format is consumed already parsed: each node has
an op name, positional input edges and a bag of typed attributes. Field
values are read through each operator's attribute mapping descriptor and
the record's positional encoding is always re-derived from those fields,
never copied from the node.

Example usage:
    from graph_ops.importer import ExternalNode, import_node

    node = ExternalNode(name="s2d", op="SpaceToDepth", inputs=["x"],
                        attrs={"block_size": 2, "data_format": "NCHW"})
    record = import_node(node, inputs=[x])
    record.int_args  # (2, 0)
"""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import torch

from .graph import Graph, SymbolicVariable, str_to_dtype
from .ops.base import (
    AttributeMapping,
    AttributeSource,
    InvalidConfiguration,
    OpBindingError,
    OperatorRecord,
)
from .ops.registry import OpRegistry, resolve_registry

logger = logging.getLogger(__name__)

# Single-key wrappers used by AttrValue-style attribute encodings
_ATTR_VALUE_KEYS = ("s", "i", "f", "b", "type", "shape")

_EXTERNAL_DTYPES = {
    "DT_FLOAT": "float32",
    "DT_DOUBLE": "float64",
    "DT_HALF": "float16",
    "DT_BFLOAT16": "bfloat16",
    "DT_INT8": "int8",
    "DT_INT16": "int16",
    "DT_INT32": "int32",
    "DT_INT64": "int64",
    "DT_UINT8": "uint8",
    "DT_BOOL": "bool",
}

# Value held by a required input-sourced field until its edge is resolved
_UNRESOLVED_VALUES = {int: 0, float: 0.0, bool: False, str: "", tuple: ()}

# Typed value lists of a GraphDef tensor encoding
_TENSOR_VALUE_KEYS = (
    "floatVal", "doubleVal", "intVal", "int64Val", "boolVal",
    "float_val", "double_val", "int_val", "int64_val", "bool_val",
)


class MissingAttribute(OpBindingError):
    """Raised when a required field cannot be resolved and has no default."""

    def __init__(self, op_type: str, field_name: str, source: Optional[AttributeSource] = None):
        self.op_type = op_type
        self.field_name = field_name
        self.attr_name = source.attr_name if source is not None else None
        self.input_position = source.input_position if source is not None else None
        where = source.describe() if source is not None else "no mapped source"
        super().__init__(f"Missing required field '{field_name}' of op '{op_type}' ({where})")


class GraphImportError(OpBindingError):
    """Raised when a node's input edges cannot be wired during graph import."""

    pass


def coerce_value(value: Any, expected_type: type, op_type: str, field_name: str) -> Any:
    """Convert an external value to a field's declared type.

    Raises:
        InvalidConfiguration: If the value cannot represent that type.
    """
    if expected_type is str:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        if isinstance(value, str):
            return value
    elif expected_type is bool:
        if isinstance(value, bool):
            return value
    elif expected_type is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif expected_type is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif expected_type is tuple:
        if isinstance(value, (list, tuple)):
            return tuple(value)
    else:
        return value
    raise InvalidConfiguration(op_type, field_name, value)


class AttributeBag(Mapping[str, Any]):
    """Read-only view of a node's named attributes."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values = MappingProxyType(dict(values or {}))

    @classmethod
    def from_attr_values(cls, attrs: Mapping[str, Any]) -> "AttributeBag":
        """Build a bag from AttrValue-style encodings.

        ``{"i": 2}``, ``{"s": "NHWC"}``, ``{"f": 1.0}``, ``{"b": true}``,
        ``{"type": "DT_FLOAT"}``, ``{"shape": {...}}`` and
        ``{"list": {"i": [1, 2]}}`` are unwrapped; plain values pass through.
        """
        return cls({name: _unwrap_attr_value(value) for name, value in attrs.items()})

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def is_absent(self, name: str) -> bool:
        """True if the attribute is missing, ``None`` or an empty string.

        The external format does not distinguish an unset attribute from an
        empty one, so both count as absent.
        """
        value = self._values.get(name)
        return value is None or (isinstance(value, (str, bytes)) and len(value) == 0)

    def get_typed(self, name: str, expected_type: type, op_type: str = "", field_name: Optional[str] = None) -> Any:
        """Read an attribute converted to ``expected_type``.

        Raises:
            KeyError: If the attribute is absent.
            InvalidConfiguration: If the value has the wrong type.
        """
        if self.is_absent(name):
            raise KeyError(name)
        return coerce_value(self._values[name], expected_type, op_type, field_name or name)

    def __repr__(self) -> str:
        return f"AttributeBag({dict(self._values)!r})"


def _unwrap_attr_value(value: Any) -> Any:
    if not isinstance(value, dict) or len(value) != 1:
        return value
    key, inner = next(iter(value.items()))
    if key == "list":
        if isinstance(inner, dict):
            items: List[Any] = []
            for list_key, list_values in inner.items():
                items.extend(int(v) if list_key == "i" else v for v in list_values)
            return tuple(items)
        return tuple(inner)
    if key == "i" and isinstance(inner, str):
        # int64 values are emitted as strings by some JSON encoders
        return int(inner)
    if key in _ATTR_VALUE_KEYS:
        return inner
    return value


def _normalize_dtype(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return _EXTERNAL_DTYPES.get(value, value)


def _parse_shape(value: Any) -> Optional[Tuple[Optional[int], ...]]:
    """Shape from a plain list or a ``{"dim": [{"size": n}, ...]}`` encoding.

    Negative sizes mean unknown and become ``None``.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        if value.get("unknownRank") or value.get("unknown_rank"):
            return None
        value = [d.get("size", -1) for d in value.get("dim", [])]
    dims = []
    for d in value:
        size = int(d) if d is not None else -1
        dims.append(size if size >= 0 else None)
    return tuple(dims)


def _parse_tensor(value: Any) -> Tuple[Any, Optional[str]]:
    """Const value from a plain value or a ``{"tensor": {...}}`` encoding.

    Only the typed value lists (``floatVal``, ``intVal``, ...) are read;
    ``tensorContent`` bytes are not supported. A single stored value fills the
    whole shape. Returns ``(value, dtype)``.
    """
    if not isinstance(value, dict) or "tensor" not in value:
        return value, None
    tensor = value["tensor"]
    dtype = _normalize_dtype(tensor.get("dtype"))
    dims = _parse_shape(tensor.get("tensorShape", tensor.get("tensor_shape", {}))) or ()
    if any(d is None for d in dims):
        raise ValueError(f"Constant tensor has unknown dimensions {dims}")

    for key in _TENSOR_VALUE_KEYS:
        if key in tensor:
            values = [int(v) if key in ("int64Val", "int64_val") else v for v in tensor[key]]
            break
    else:
        raise ValueError(f"Constant tensor has no supported value list (keys: {sorted(tensor)})")

    numel = math.prod(dims)
    if len(values) == 1 and numel != 1:
        values = values * numel
    if len(values) != numel:
        raise ValueError(f"Constant tensor has {len(values)} values for shape {list(dims)}")
    data = torch.tensor(values, dtype=str_to_dtype(dtype) if dtype else None)
    return data.reshape(dims), dtype


def parse_edge(edge: str) -> Tuple[str, int, bool]:
    """Parse an input edge string into ``(node, output_index, is_control)``.

    ``"x"`` is output 0 of node ``x``, ``"x:1"`` is output 1 and ``"^x"`` is a
    control dependency on ``x``.
    """
    if edge.startswith("^"):
        return edge[1:], 0, True
    name, sep, idx = edge.rpartition(":")
    if sep and idx.isdigit():
        return name, int(idx), False
    return edge, 0, False


@dataclass
class ExternalNode:
    """A node of an external graph, already parsed.

    Attributes:
        name: Node name in the external graph.
        op: External operator name (e.g., ``"SpaceToDepth"``).
        inputs: Input edge strings, in positional order.
        attrs: Named attributes of the node.
    """

    name: str
    op: str
    inputs: List[str] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)

    def data_edges(self) -> List[Tuple[str, int]]:
        """Positional input edges as ``(node, output_index)``, control edges excluded."""
        edges = []
        for edge in self.inputs:
            name, idx, is_control = parse_edge(edge)
            if not is_control:
                edges.append((name, idx))
        return edges

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "op": self.op, "input": list(self.inputs), "attr": dict(self.attrs)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalNode":
        return cls(
            name=data["name"],
            op=data["op"],
            inputs=list(data.get("input", data.get("inputs", []))),
            attrs=dict(data.get("attr", data.get("attrs", {}))),
        )


@dataclass
class ExternalGraph:
    """Parsed external graph: nodes in topological order."""

    nodes: List[ExternalNode]
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalGraph":
        if not isinstance(data, dict):
            raise GraphImportError(f"External graph must be a JSON object, got {type(data).__name__}")
        nodes = data.get("node", data.get("nodes"))
        if nodes is None:
            raise GraphImportError("External graph has no 'node' list")
        return cls(nodes=[ExternalNode.from_dict(n) for n in nodes], name=data.get("name", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "node": [n.to_dict() for n in self.nodes]}

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ExternalGraph":
        """Load an external graph from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            GraphImportError: If the file is not a valid external graph.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"External graph file not found: {path}")
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return cls.from_dict(data)
        except json.JSONDecodeError as e:
            raise GraphImportError(f"Invalid JSON in {path}: {e}") from e
        except (KeyError, TypeError, AttributeError) as e:
            raise GraphImportError(f"Invalid external graph format in {path}: {e}") from e


def import_node(
    node: ExternalNode,
    attrs: Optional[AttributeBag] = None,
    mapping: Optional[AttributeMapping] = None,
    *,
    inputs: Sequence[SymbolicVariable] = (),
    input_values: Optional[Mapping[int, Any]] = None,
    registry: Optional[OpRegistry] = None,
) -> OperatorRecord:
    """Build an operator record from an external node.

    Args:
        node: The external node. Its op name selects the operator type.
        attrs: Attribute bag of the node. Defaults to ``node.attrs``.
        mapping: Attribute mapping descriptor. Defaults to the one
            registered for ``node.op``.
        inputs: Variables wired to the node's input edges, in positional
            order. Positions claimed by configuration fields are not
            passed on as tensor inputs.
        input_values: Values of configuration inputs already resolved by the
            caller (input position -> scalar).
        registry: Operator registry. Defaults to the process-wide one.

    Returns:
        The new record. Configuration inputs without a resolved value fall
        back to their default and are listed in ``record.pending_inputs``.
        A required one whose edge exists holds a zero value (``0``, ``0.0``,
        ``""``) until resolved with :meth:`OperatorRecord.with_fields`.

    Raises:
        UnsupportedExternalOperator: If ``node.op`` is not registered.
        MissingAttribute: If a required attribute is absent, or a required
            configuration input has no edge at all.
        InvalidConfiguration: If a value is outside the field's domain.
    """
    registry = resolve_registry(registry)
    op_cls = registry.resolve_external(node.op)
    if attrs is None:
        attrs = AttributeBag.from_attr_values(node.attrs)
    if mapping is None:
        mapping = registry.get_mapping(node.op)
    elif mapping.external_name != node.op:
        raise ValueError(f"Mapping for '{mapping.external_name}' cannot import node of op '{node.op}'")
    input_values = input_values or {}
    num_edges = max(len(node.data_edges()), len(inputs))

    values: Dict[str, Any] = {}
    pending: Dict[str, int] = {}
    for spec in op_cls.describe_fields():
        source = mapping.source_for(spec.name)
        if source is None:
            if spec.required:
                raise MissingAttribute(op_cls.op_name, spec.name)
            continue

        if source.attr_name is not None:
            if not attrs.is_absent(source.attr_name):
                values[spec.name] = attrs.get_typed(source.attr_name, spec.type, op_cls.op_name, spec.name)
                continue
        elif source.input_position in input_values:
            values[spec.name] = coerce_value(
                input_values[source.input_position], spec.type, op_cls.op_name, spec.name
            )
            continue
        elif source.has_default or source.input_position < num_edges:
            pending[spec.name] = source.input_position

        if source.has_default:
            values[spec.name] = source.default
        elif spec.name in pending:
            # Edge exists but its value is only known once the input is wired
            values[spec.name] = _UNRESOLVED_VALUES.get(spec.type)
        elif spec.required:
            raise MissingAttribute(op_cls.op_name, spec.name, source)
        logger.debug(
            "Node '%s' (%s): %s not given, using default %r",
            node.name, node.op, source.describe(), values.get(spec.name, spec.default),
        )

    claimed = mapping.input_positions()
    tensor_inputs = tuple(var for pos, var in enumerate(inputs) if pos not in claimed)
    record = op_cls(inputs=tensor_inputs, pending_inputs=pending, **values)
    logger.debug(
        "Imported node '%s' as %s int_args=%s float_args=%s",
        node.name, op_cls.op_name, list(record.int_args), list(record.float_args),
    )
    return record


class GraphImporter:
    """Imports a whole external graph into a :class:`Graph`.

    ``Placeholder`` and ``Const`` nodes become graph inputs and constants;
    every other node is bound with :func:`import_node`. Configuration inputs
    fed by scalar constants are resolved while wiring the edges.
    """

    PLACEHOLDER_OPS = ("Placeholder",)
    CONST_OPS = ("Const",)

    def __init__(self, strict: bool = True, registry: Optional[OpRegistry] = None):
        """Initialize the importer.

        Args:
            strict: If True, raise on the first node that cannot be imported.
                If False, skip it (and any node depending on it) with a warning.
            registry: Operator registry. Defaults to the process-wide one.
        """
        self.strict = strict
        self.registry = resolve_registry(registry)
        self.skipped: List[str] = []

    def import_graph(self, external: ExternalGraph, graph: Optional[Graph] = None) -> Graph:
        """Import every node of ``external`` into ``graph`` (or a new graph)."""
        if graph is None:
            graph = Graph(external.name)
        self.skipped = []
        produced: Dict[str, List[SymbolicVariable]] = {}

        for node in external.nodes:
            try:
                produced[node.name] = self._import_node(node, graph, produced)
            except OpBindingError as e:
                if self.strict:
                    raise
                logger.warning("Skipping node '%s' (%s): %s", node.name, node.op, e)
                self.skipped.append(node.name)

        logger.info(
            "Imported %d of %d nodes into graph '%s'",
            len(external.nodes) - len(self.skipped), len(external.nodes), graph.name,
        )
        return graph

    def _import_node(
        self,
        node: ExternalNode,
        graph: Graph,
        produced: Dict[str, List[SymbolicVariable]],
    ) -> List[SymbolicVariable]:
        attrs = AttributeBag.from_attr_values(node.attrs)

        if node.op in self.PLACEHOLDER_OPS:
            try:
                shape = _parse_shape(attrs.get("shape"))
            except (ValueError, TypeError, AttributeError) as e:
                raise GraphImportError(f"Invalid shape for placeholder '{node.name}': {e}") from e
            dtype = _normalize_dtype(attrs.get("dtype")) or "float32"
            return [graph.placeholder(graph.unique_name(node.name), shape=shape, dtype=dtype)]

        if node.op in self.CONST_OPS:
            if "value" not in attrs:
                raise GraphImportError(f"Const node '{node.name}' has no 'value' attribute")
            try:
                value, tensor_dtype = _parse_tensor(attrs["value"])
                dtype = _normalize_dtype(attrs.get("dtype")) or tensor_dtype
                return [graph.constant(graph.unique_name(node.name), value, dtype=dtype)]
            except (ValueError, TypeError, AttributeError, RuntimeError) as e:
                raise GraphImportError(f"Invalid constant '{node.name}': {e}") from e

        mapping = self.registry.get_mapping(node.op)
        inputs = self._wire_inputs(node, produced)
        input_values = self._constant_inputs(graph, inputs, mapping)
        record = import_node(
            node,
            attrs,
            mapping,
            inputs=inputs,
            input_values=input_values,
            registry=self.registry,
        )
        try:
            return graph.add_op(record, name=node.name)
        except ValueError as e:
            raise GraphImportError(f"Cannot add node '{node.name}' to graph: {e}") from e

    def _wire_inputs(
        self, node: ExternalNode, produced: Dict[str, List[SymbolicVariable]]
    ) -> List[SymbolicVariable]:
        inputs = []
        for src, idx in node.data_edges():
            outputs = produced.get(src)
            if outputs is None:
                raise GraphImportError(f"Input '{src}' of node '{node.name}' is not available")
            if idx >= len(outputs):
                raise GraphImportError(
                    f"Node '{src}' has {len(outputs)} outputs, but index {idx} requested by node '{node.name}'"
                )
            inputs.append(outputs[idx])
        return inputs

    @staticmethod
    def _constant_inputs(
        graph: Graph, inputs: Sequence[SymbolicVariable], mapping: AttributeMapping
    ) -> Dict[int, Any]:
        """Scalar constant values feeding configuration inputs (position -> value)."""
        values = {}
        for pos in mapping.input_positions():
            if pos >= len(inputs):
                continue
            tensor = graph.constants.get(inputs[pos].name)
            if tensor is not None and tensor.numel() == 1:
                values[pos] = tensor.item()
        return values
