"""Symbolic graph: variables, constants and the registry of operator instances."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import torch

from .ops.base import OperatorRecord

logger = logging.getLogger(__name__)

_DTYPE_MAP = {
    "float32": torch.float32,
    "float64": torch.float64,
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
    "int8": torch.int8,
    "int16": torch.int16,
    "int32": torch.int32,
    "int64": torch.int64,
    "uint8": torch.uint8,
    "bool": torch.bool,
}


def dtype_to_str(dtype: torch.dtype) -> str:
    """Convert torch dtype to string representation."""
    return str(dtype).replace("torch.", "")


def str_to_dtype(dtype_str: str) -> torch.dtype:
    """Convert a dtype string to a torch dtype.

    Raises:
        ValueError: If the dtype is not supported.
    """
    try:
        return _DTYPE_MAP[dtype_str]
    except KeyError:
        raise ValueError(f"Unsupported dtype '{dtype_str}'") from None


@dataclass(eq=False)
class SymbolicVariable:
    """Named handle to a tensor-valued node in a graph (no data).

    Variables compare by identity: two handles with the same name from
    different graphs are different variables.

    Attributes:
        name: Unique variable name within the graph.
        shape: Static shape if known. Individual dimensions may be ``None``.
        dtype: String representation of the data type (e.g., ``"float32"``).
        producer_node: Name of the op that produced this variable.
            ``None`` for placeholders and constants.
        producer_output_idx: Index into the producer op's outputs.
    """

    name: str
    shape: Optional[Tuple[Optional[int], ...]] = None
    dtype: str = "float32"
    producer_node: Optional[str] = None
    producer_output_idx: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "shape": list(self.shape) if self.shape is not None else None,
            "dtype": self.dtype,
        }
        if self.producer_node is not None:
            d["producer_node"] = self.producer_node
            d["producer_output_idx"] = self.producer_output_idx
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SymbolicVariable":
        shape = data.get("shape")
        return cls(
            name=data["name"],
            shape=tuple(shape) if shape is not None else None,
            dtype=data.get("dtype", "float32"),
            producer_node=data.get("producer_node"),
            producer_output_idx=data.get("producer_output_idx", 0),
        )


class Graph:
    """Owning container for symbolic variables and operator records.

    The graph owns every variable and op registered in it. Records only
    reference their input variables; registering a record here names it
    and creates its output variables.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.constants: Dict[str, torch.Tensor] = {}
        self._variables: Dict[str, SymbolicVariable] = {}
        self._ops: Dict[str, OperatorRecord] = {}
        self._op_outputs: Dict[str, List[SymbolicVariable]] = {}
        self._op_names: Dict[int, str] = {}
        self._name_counts: Dict[str, int] = defaultdict(int)

    # -- naming ---------------------------------------------------------------

    def _is_taken(self, name: str) -> bool:
        return name in self._variables or name in self._ops

    def unique_name(self, base: str) -> str:
        """Return ``base`` or ``base_<n>``, whichever is still free."""
        if not self._is_taken(base):
            return base
        while True:
            self._name_counts[base] += 1
            candidate = f"{base}_{self._name_counts[base]}"
            if not self._is_taken(candidate):
                return candidate

    # -- variables --------------------------------------------------------------

    def _add_variable(self, var: SymbolicVariable) -> SymbolicVariable:
        if var.name in self._variables:
            raise ValueError(f"Variable '{var.name}' already exists in graph '{self.name}'")
        self._variables[var.name] = var
        return var

    def placeholder(
        self,
        name: str,
        shape: Optional[Sequence[Optional[int]]] = None,
        dtype: str = "float32",
    ) -> SymbolicVariable:
        """Register a graph input."""
        return self._add_variable(
            SymbolicVariable(name=name, shape=tuple(shape) if shape is not None else None, dtype=dtype)
        )

    def constant(self, name: str, value: Any, dtype: Optional[str] = None) -> SymbolicVariable:
        """Register a constant tensor and return its variable."""
        torch_dtype = str_to_dtype(dtype) if dtype is not None else None
        tensor = torch.as_tensor(value, dtype=torch_dtype)
        var = self._add_variable(
            SymbolicVariable(name=name, shape=tuple(tensor.shape), dtype=dtype_to_str(tensor.dtype))
        )
        self.constants[name] = tensor
        return var

    def get_variable(self, name: str) -> SymbolicVariable:
        if name not in self._variables:
            raise KeyError(f"Variable '{name}' not found in graph '{self.name}'")
        return self._variables[name]

    def has_variable(self, var: SymbolicVariable) -> bool:
        """True if ``var`` itself (not just its name) belongs to this graph."""
        return self._variables.get(var.name) is var

    @property
    def variables(self) -> List[SymbolicVariable]:
        return list(self._variables.values())

    @property
    def placeholders(self) -> List[SymbolicVariable]:
        return [
            v for v in self._variables.values()
            if v.producer_node is None and v.name not in self.constants
        ]

    # -- ops ----------------------------------------------------------------------

    def add_op(self, record: OperatorRecord, name: Optional[str] = None) -> List[SymbolicVariable]:
        """Register an operator record and create its output variables.

        Args:
            record: The record to register.
            name: Requested op name. Defaults to the record's ``op_name``;
                a numeric suffix is added when the name is taken.

        Returns:
            The op's output variables.

        Raises:
            ValueError: If the record is already registered or one of its
                inputs is not a variable of this graph.
        """
        if self.owns(record):
            raise ValueError(f"Op '{self.op_name_of(record)}' is already registered in graph '{self.name}'")
        for var in record.inputs:
            if not isinstance(var, SymbolicVariable) or not self.has_variable(var):
                raise ValueError(
                    f"Input {getattr(var, 'name', var)!r} of op '{record.op_name}' "
                    f"is not a variable of graph '{self.name}'"
                )

        op_name = self.unique_name(name or record.op_name)
        self._ops[op_name] = record
        self._op_names[id(record)] = op_name

        outputs = []
        for idx, (shape, dtype) in enumerate(record.infer_outputs()):
            # First output shares the op's name, the rest are "<op>:<idx>"
            out_name = op_name if idx == 0 else self.unique_name(f"{op_name}:{idx}")
            var = SymbolicVariable(
                name=out_name,
                shape=shape,
                dtype=dtype,
                producer_node=op_name,
                producer_output_idx=idx,
            )
            outputs.append(self._add_variable(var))
        self._op_outputs[op_name] = outputs

        logger.debug(
            "Added op %s (%s) int_args=%s float_args=%s",
            op_name, record.op_name, list(record.int_args), list(record.float_args),
        )
        return outputs

    def owns(self, record: OperatorRecord) -> bool:
        """True if ``record`` is registered in this graph."""
        op_name = self._op_names.get(id(record))
        return op_name is not None and self._ops.get(op_name) is record

    def op_name_of(self, record: OperatorRecord) -> str:
        if not self.owns(record):
            raise KeyError(f"Op '{record.op_name}' is not registered in graph '{self.name}'")
        return self._op_names[id(record)]

    def get_op(self, name: str) -> OperatorRecord:
        if name not in self._ops:
            raise KeyError(f"Op '{name}' not found in graph '{self.name}'")
        return self._ops[name]

    def outputs_of(self, op: Any) -> List[SymbolicVariable]:
        """Output variables of an op, given its name or its record."""
        op_name = op if isinstance(op, str) else self.op_name_of(op)
        if op_name not in self._op_outputs:
            raise KeyError(f"Op '{op_name}' not found in graph '{self.name}'")
        return list(self._op_outputs[op_name])

    def consumers(self, var: SymbolicVariable) -> List[str]:
        """Names of the ops that take ``var`` as an input."""
        return [
            name for name, record in self._ops.items()
            if any(inp is var for inp in record.inputs)
        ]

    @property
    def ops(self) -> List[Tuple[str, OperatorRecord]]:
        """``(name, record)`` pairs in registration order."""
        return list(self._ops.items())

    # -- serialization --------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        d: Dict[str, Any] = {
            "name": self.name,
            "variables": [v.to_dict() for v in self._variables.values()],
            "ops": [dict(name=name, **record.to_dict()) for name, record in self._ops.items()],
        }
        if self.constants:
            d["constants"] = {
                k: {"data": v.tolist(), "dtype": dtype_to_str(v.dtype)}
                for k, v in self.constants.items()
            }
        return d

    def __repr__(self) -> str:
        return (
            f"Graph(name='{self.name}', "
            f"ops={len(self._ops)}, "
            f"variables={len(self._variables)}, "
            f"constants={len(self.constants)})"
        )
