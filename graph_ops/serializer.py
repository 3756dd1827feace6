"""Graph serializer for JSON serialization/deserialization."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .graph import Graph, SymbolicVariable
from .ops.base import OpBindingError
from .ops.registry import OpRegistry, resolve_registry


class SerializationError(Exception):
    """Raised when serialization/deserialization fails."""

    pass


def graph_from_dict(data: Dict[str, Any], registry: Optional[OpRegistry] = None) -> Graph:
    """Rebuild a graph from ``Graph.to_dict()`` output.

    Each op is reconstructed from its fields; the stored ``int_args`` and
    ``float_args`` are only compared against the re-derived encoding.

    Raises:
        SerializationError: If an op is unknown, its fields are invalid or the
            stored encoding disagrees with the fields.
    """
    registry = resolve_registry(registry)
    graph = Graph(data.get("name", ""))
    constants = data.get("constants", {})

    for var_data in data["variables"]:
        var = SymbolicVariable.from_dict(var_data)
        if var.producer_node is not None:
            continue
        if var.name in constants:
            const = constants[var.name]
            graph.constant(var.name, const["data"], dtype=const["dtype"])
        else:
            graph.placeholder(var.name, shape=var.shape, dtype=var.dtype)

    for op_data in data["ops"]:
        name = op_data["name"]
        try:
            op_cls = registry.get_op_class(op_data["op"])
        except KeyError as e:
            raise SerializationError(f"Op '{name}': {e}") from e

        inputs = [graph.get_variable(n) for n in op_data["inputs"]]
        fields = {
            k: tuple(v) if isinstance(v, list) else v
            for k, v in op_data.get("fields", {}).items()
        }
        try:
            record = op_cls(inputs=inputs, pending_inputs=op_data.get("pending_inputs", {}), **fields)
        except (OpBindingError, TypeError) as e:
            raise SerializationError(f"Op '{name}' has invalid fields: {e}") from e

        stored = (op_data.get("int_args"), op_data.get("float_args"))
        derived = (list(record.int_args), list(record.float_args))
        if stored != (None, None) and (stored[0] != derived[0] or stored[1] != derived[1]):
            raise SerializationError(
                f"Op '{name}' stored args {stored} do not match args {derived} derived from its fields"
            )

        graph.add_op(record, name=name)
        if graph.op_name_of(record) != name:
            raise SerializationError(f"Duplicate op name: {name}")

    for var_data in data["variables"]:
        if var_data.get("producer_node") is not None:
            graph.get_variable(var_data["name"])

    return graph


def serialize_graph(graph: Graph) -> str:
    """Serialize a Graph to JSON string.

    Args:
        graph: The graph to serialize.

    Returns:
        JSON string representation.
    """
    return json.dumps(graph.to_dict(), indent=2)


def deserialize_graph(json_str: str, registry: Optional[OpRegistry] = None) -> Graph:
    """Deserialize a Graph from JSON string.

    Raises:
        SerializationError: If deserialization fails.
    """
    try:
        data = json.loads(json_str)
        return graph_from_dict(data, registry)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Invalid JSON: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"Invalid graph format: {e}") from e


def save_graph(graph: Graph, path: Union[str, Path]) -> None:
    """Save a Graph to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(serialize_graph(graph))


def load_graph(path: Union[str, Path], registry: Optional[OpRegistry] = None) -> Graph:
    """Load a Graph from a JSON file.

    Raises:
        SerializationError: If loading fails.
        FileNotFoundError: If the file doesn't exist.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Graph file not found: {path}")

    with open(path, "r") as f:
        return deserialize_graph(f.read(), registry)


def validate_graph(graph: Graph) -> bool:
    """Validate the graph structure.

    Returns:
        True if valid, raises exception otherwise.

    Raises:
        SerializationError: If validation fails.
    """
    errors = []

    for name, record in graph.ops:
        if not record.op_name:
            errors.append(f"Op '{name}' missing op_name")
        for var in record.inputs:
            if not graph.has_variable(var):
                errors.append(f"Op '{name}': input '{var.name}' is not in the graph")
        if record.pending_inputs:
            pending = ", ".join(f"{k} (input {v})" for k, v in record.pending_inputs.items())
            errors.append(f"Op '{name}' has unresolved configuration inputs: {pending}")

    for var in graph.variables:
        if not var.dtype:
            errors.append(f"Variable '{var.name}': missing dtype")

    if errors:
        raise SerializationError(
            f"Graph validation failed with {len(errors)} errors:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    return True


class GraphSerializer:
    """Class-based interface for graph serialization."""

    def __init__(self, validate: bool = True, registry: Optional[OpRegistry] = None):
        """Initialize the serializer.

        Args:
            validate: If True, validate graphs before saving and after loading.
            registry: Operator registry used to rebuild ops.
        """
        self.validate = validate
        self.registry = registry

    def serialize(self, graph: Graph) -> str:
        if self.validate:
            validate_graph(graph)
        return serialize_graph(graph)

    def deserialize(self, json_str: str) -> Graph:
        graph = deserialize_graph(json_str, self.registry)
        if self.validate:
            validate_graph(graph)
        return graph

    def save(self, graph: Graph, path: Union[str, Path]) -> None:
        if self.validate:
            validate_graph(graph)
        save_graph(graph, path)

    def load(self, path: Union[str, Path]) -> Graph:
        graph = load_graph(path, self.registry)
        if self.validate:
            validate_graph(graph)
        return graph
