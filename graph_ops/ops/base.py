"""Operator record base class, field descriptors and import mapping descriptors."""

import dataclasses
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from ..graph import Graph, SymbolicVariable

logger = logging.getLogger(__name__)

# Shape/dtype pair describing one output of an operator
OutputMeta = Tuple[Optional[Tuple[Optional[int], ...]], str]


class _Required:
    def __repr__(self) -> str:
        return "REQUIRED"


# Marks a field or attribute source without a default value
REQUIRED: Any = _Required()


class OpBindingError(Exception):
    """Base class for errors raised while constructing or importing operators."""

    pass


class InvalidConfiguration(OpBindingError):
    """Raised when a field value lies outside the accepted domain."""

    def __init__(self, op_type: str, field_name: str, value: Any, allowed: Optional[Sequence[Any]] = None):
        self.op_type = op_type
        self.field_name = field_name
        self.value = value
        self.allowed = tuple(allowed) if allowed is not None else None
        message = f"Invalid value {value!r} for field '{field_name}' of op '{op_type}'"
        if self.allowed is not None:
            message += f" (expected one of {list(self.allowed)})"
        super().__init__(message)


class UnsupportedExternalOperator(OpBindingError):
    """Raised when an external operator name has no registered mapping."""

    def __init__(self, external_name: str):
        self.external_name = external_name
        super().__init__(f"No operator registered for external op '{external_name}'")


@dataclass(frozen=True)
class FieldSpec:
    """Named, typed configuration field of an operator type.

    Attributes:
        name: Field name (e.g., ``"block_size"``).
        type: Python type of the value (``int``, ``float``, ``str``, ``bool`` or ``tuple``).
        default: Default value, or ``REQUIRED`` when the field has none.
    """

    name: str
    type: type
    default: Any = REQUIRED

    @property
    def required(self) -> bool:
        return self.default is REQUIRED


@dataclass(frozen=True)
class AttributeSource:
    """Where the value of one field comes from in an external node.

    Exactly one of ``attr_name`` (a named attribute) or ``input_position``
    (an extra graph input at that position) is set. ``default`` is the value
    used when the external node omits it; ``REQUIRED`` means there is none.
    """

    attr_name: Optional[str] = None
    input_position: Optional[int] = None
    default: Any = REQUIRED

    def __post_init__(self):
        if (self.attr_name is None) == (self.input_position is None):
            raise ValueError("AttributeSource needs exactly one of attr_name or input_position")

    @property
    def has_default(self) -> bool:
        return self.default is not REQUIRED

    def describe(self) -> str:
        if self.attr_name is not None:
            return f"attribute '{self.attr_name}'"
        return f"input {self.input_position}"


def from_attr(name: str, default: Any = REQUIRED) -> AttributeSource:
    """Source a field from the named external attribute."""
    return AttributeSource(attr_name=name, default=default)


def from_input(position: int, default: Any = REQUIRED) -> AttributeSource:
    """Source a field from the extra graph input at ``position``."""
    return AttributeSource(input_position=position, default=default)


@dataclass(frozen=True)
class AttributeMapping:
    """Immutable table mapping internal field names to external sources."""

    external_name: str
    sources: Mapping[str, AttributeSource] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def source_for(self, field_name: str) -> Optional[AttributeSource]:
        return self.sources.get(field_name)

    def input_positions(self) -> Dict[int, str]:
        """Input positions claimed by configuration fields (position -> field name)."""
        return {
            src.input_position: name
            for name, src in self.sources.items()
            if src.input_position is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        for name, src in self.sources.items():
            entry: Dict[str, Any] = {}
            if src.attr_name is not None:
                entry["attr"] = src.attr_name
            else:
                entry["input"] = src.input_position
            if src.has_default:
                entry["default"] = src.default
            d[name] = entry
        return d


def check_int(op_type: str, field_name: str, value: Any, minimum: Optional[int] = None) -> None:
    """Raise :class:`InvalidConfiguration` unless ``value`` is an int (not a bool) ``>= minimum``."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidConfiguration(op_type, field_name, value)
    if minimum is not None and value < minimum:
        raise InvalidConfiguration(op_type, field_name, value)


@dataclass(frozen=True, eq=False)
class OperatorRecord:
    """Immutable descriptor of one operator instance.

    Subclasses declare their configuration as keyword-only dataclass fields
    and implement :meth:`flatten_args`. The positional encoding
    (``int_args``/``float_args``) is derived from the fields once, at
    construction, and can never be set on its own.

    Attributes:
        inputs: Tensor inputs of the operator. The owning graph holds them;
            the record only references them.
        pending_inputs: Fields whose value is expected from an extra graph
            input that was not resolved at import time (field -> position).
    """

    op_name: ClassVar[str] = ""
    external_names: ClassVar[Tuple[str, ...]] = ()
    mappings: ClassVar[Tuple[AttributeMapping, ...]] = ()
    num_outputs: ClassVar[int] = 1

    inputs: Tuple["SymbolicVariable", ...]
    pending_inputs: Mapping[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "pending_inputs", MappingProxyType(dict(self.pending_inputs)))
        self.validate()
        ints, floats = self.flatten_args()
        object.__setattr__(self, "_int_args", tuple(int(v) for v in ints))
        object.__setattr__(self, "_float_args", tuple(float(v) for v in floats))

    # -- capability interface ------------------------------------------------

    @classmethod
    def describe_fields(cls) -> Tuple[FieldSpec, ...]:
        """Configuration fields of this operator type, in declaration order."""
        base = {f.name for f in dataclasses.fields(OperatorRecord)}
        specs = []
        for f in dataclasses.fields(cls):
            if f.name in base:
                continue
            if f.default is not dataclasses.MISSING:
                default = f.default
            elif f.default_factory is not dataclasses.MISSING:
                default = f.default_factory()
            else:
                default = REQUIRED
            specs.append(FieldSpec(f.name, f.type, default))
        return tuple(specs)

    @classmethod
    def describe_mapping(cls, external_name: str) -> Mapping[str, AttributeSource]:
        """Field sources for import from ``external_name``."""
        for mapping in cls.mappings:
            if mapping.external_name == external_name:
                return mapping.sources
        raise UnsupportedExternalOperator(external_name)

    @classmethod
    def get_mapping(cls, external_name: str) -> AttributeMapping:
        for mapping in cls.mappings:
            if mapping.external_name == external_name:
                return mapping
        raise UnsupportedExternalOperator(external_name)

    def validate(self) -> None:
        """Check field values; raise :class:`InvalidConfiguration` on failure."""

    def flatten_args(self) -> Tuple[List[int], List[float]]:
        """Positional integer and float encoding of the fields."""
        return [], []

    def infer_outputs(self) -> List[OutputMeta]:
        """Shape and dtype of each output. Shapes are not validated."""
        if not self.inputs:
            return [(None, "float32")] * self.num_outputs
        first = self.inputs[0]
        return [(first.shape, first.dtype)] * self.num_outputs

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        """Build the ops computing input gradients from ``output_grads``.

        Returns one graph-registered variable per entry of ``inputs``.
        """
        raise NotImplementedError(f"Op '{self.op_name}' does not define a gradient")

    # -- derived state -------------------------------------------------------

    @property
    def int_args(self) -> Tuple[int, ...]:
        return self._int_args  # type: ignore[attr-defined]

    @property
    def float_args(self) -> Tuple[float, ...]:
        return self._float_args  # type: ignore[attr-defined]

    @property
    def fields(self) -> Dict[str, Any]:
        """Configuration field values by name."""
        return {spec.name: getattr(self, spec.name) for spec in self.describe_fields()}

    @property
    def is_resolved(self) -> bool:
        return not self.pending_inputs

    def with_fields(self, **values: Any) -> "OperatorRecord":
        """Return a copy with the given fields replaced and the args re-derived.

        Fields supplied here are removed from ``pending_inputs``.
        """
        pending = {k: v for k, v in self.pending_inputs.items() if k not in values}
        return dataclasses.replace(self, pending_inputs=pending, **values)

    def _link(self, graph: "Graph", record: "OperatorRecord") -> List["SymbolicVariable"]:
        """Register a gradient op in the graph that owns this op."""
        if not graph.owns(self):
            raise ValueError(
                f"Op '{self.op_name}' is not registered in graph '{graph.name}'; "
                f"gradient ops must be added to the owning graph"
            )
        outputs = graph.add_op(record)
        logger.debug(
            "Linked gradient of %s to %s", graph.op_name_of(self), graph.op_name_of(record)
        )
        return outputs

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "op": self.op_name,
            "inputs": [v.name for v in self.inputs],
            "fields": {k: list(v) if isinstance(v, tuple) else v for k, v in self.fields.items()},
            "int_args": list(self.int_args),
            "float_args": list(self.float_args),
        }
        if self.pending_inputs:
            d["pending_inputs"] = dict(self.pending_inputs)
        return d
