"""Categorical-to-indicator expansion (one-hot)."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from .base import AttributeMapping, InvalidConfiguration, OperatorRecord, OutputMeta, check_int, from_attr, from_input
from .math_ops import ZerosLike
from .registry import register_op

if TYPE_CHECKING:
    from ..graph import Graph, SymbolicVariable


@register_op
@dataclass(frozen=True, eq=False, kw_only=True)
class OneHot(OperatorRecord):
    """Expand integer indices into indicator vectors of length ``depth``.

    The encoding is always ``int_args = [depth, axis]`` and
    ``float_args = [on, off]``, whichever way the record was built.

    When imported, ``depth``, ``on`` and ``off`` arrive as extra graph
    inputs (positions 1, 2 and 3) rather than attributes; ``axis`` is an
    attribute. The indices tensor is input 0.
    """

    op_name = "onehot"
    external_names = ("OneHot",)
    mappings = (
        AttributeMapping(
            "OneHot",
            {
                "depth": from_input(1),
                "on": from_input(2, default=1.0),
                "off": from_input(3, default=0.0),
                "axis": from_attr("axis", default=-1),
            },
        ),
    )

    depth: int
    axis: int = -1
    on: float = 1.0
    off: float = 0.0

    def validate(self) -> None:
        check_int(self.op_name, "depth", self.depth, minimum=0)
        check_int(self.op_name, "axis", self.axis, minimum=-1)
        for name in ("on", "off"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise InvalidConfiguration(self.op_name, name, value)

    def flatten_args(self) -> Tuple[List[int], List[float]]:
        return [self.depth, self.axis], [self.on, self.off]

    def infer_outputs(self) -> List[OutputMeta]:
        shape = self.inputs[0].shape
        if shape is None:
            return [(None, "float32")]
        rank = len(shape)
        pos = self.axis if self.axis >= 0 else rank + 1 + self.axis
        if not 0 <= pos <= rank:
            return [(None, "float32")]
        out = tuple(shape[:pos]) + (self.depth,) + tuple(shape[pos:])
        return [(out, "float32")]

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        # Indices are not differentiable
        return self._link(graph, ZerosLike(inputs=(self.inputs[0],)))


def one_hot(
    graph: "Graph",
    indices: "SymbolicVariable",
    depth: int,
    axis: int = -1,
    on: float = 1.0,
    off: float = 0.0,
    name: Optional[str] = None,
) -> "SymbolicVariable":
    """Add a one-hot op to ``graph`` and return its output."""
    record = OneHot(inputs=(indices,), depth=depth, axis=axis, on=on, off=off)
    return graph.add_op(record, name=name)[0]
