"""Elementwise helper ops used by gradient construction."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from .base import OperatorRecord
from .registry import register_op

if TYPE_CHECKING:
    from ..graph import Graph, SymbolicVariable


@register_op
@dataclass(frozen=True, eq=False, kw_only=True)
class ZerosLike(OperatorRecord):
    """Tensor of zeros with the shape and dtype of the input."""

    op_name = "zeroslike"
    external_names = ("ZerosLike",)

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        return self._link(graph, ZerosLike(inputs=(self.inputs[0],)))


@register_op
@dataclass(frozen=True, eq=False, kw_only=True)
class AddN(OperatorRecord):
    """Elementwise sum of all inputs."""

    op_name = "mergeadd"
    external_names = ("AddN",)

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        # d(sum)/d(x_i) = 1: every input receives the output gradient unchanged
        if not graph.owns(self):
            raise ValueError(f"Op '{self.op_name}' is not registered in graph '{graph.name}'")
        return [output_grads[0]] * len(self.inputs)


def zeros_like(graph: "Graph", x: "SymbolicVariable", name: Optional[str] = None) -> "SymbolicVariable":
    return graph.add_op(ZerosLike(inputs=(x,)), name=name)[0]


def add_n(graph: "Graph", *xs: "SymbolicVariable", name: Optional[str] = None) -> "SymbolicVariable":
    if not xs:
        raise ValueError("add_n needs at least one input")
    return graph.add_op(AddN(inputs=xs), name=name)[0]
