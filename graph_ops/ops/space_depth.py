"""Space-to-depth and depth-to-space rearrangements.

Both operators move data between the spatial (H, W) and channel (C)
dimensions of a 4D tensor for a given block size, in either ``NHWC`` or
``NCHW`` layout. Each is the exact inverse of the other, so the gradient of
one is the other applied to the output gradient with the same configuration.

Example:
    block_size = 4, data_format = "NHWC"
    input shape  = [128, 16, 16, 3]
    output shape = [128, 16/4, 16/4, 3*4*4]

Import policy (both operators):
    block_size  <- attribute ``block_size`` (required)
    data_format <- attribute ``data_format``; absent or empty means ``NHWC``
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from .base import AttributeMapping, InvalidConfiguration, OperatorRecord, OutputMeta, check_int, from_attr
from .registry import register_op

if TYPE_CHECKING:
    from ..graph import Graph, SymbolicVariable

NHWC = "NHWC"
NCHW = "NCHW"

# Layout tag -> integer flag appended after the block size
DATA_FORMATS = {NCHW: 0, NHWC: 1}


def layout_flag(data_format: str) -> int:
    """Integer encoding of a layout tag (``NHWC`` -> 1, ``NCHW`` -> 0)."""
    return DATA_FORMATS[data_format]


def _scale(dim: Optional[int], factor: int, divide: bool) -> Optional[int]:
    if dim is None:
        return None
    return dim // factor if divide else dim * factor


@dataclass(frozen=True, eq=False, kw_only=True)
class _BlockRearrange(OperatorRecord):
    block_size: int
    data_format: str = NHWC

    # True when the op moves spatial blocks into channels
    to_depth = True

    def validate(self) -> None:
        check_int(self.op_name, "block_size", self.block_size, minimum=1)
        if self.data_format not in DATA_FORMATS:
            raise InvalidConfiguration(self.op_name, "data_format", self.data_format, tuple(DATA_FORMATS))

    def flatten_args(self) -> Tuple[List[int], List[float]]:
        return [self.block_size, layout_flag(self.data_format)], []

    def infer_outputs(self) -> List[OutputMeta]:
        x = self.inputs[0]
        if x.shape is None or len(x.shape) != 4:
            return [(None, x.dtype)]

        b = self.block_size
        area = b * b
        if self.data_format == NHWC:
            spatial_idx, channel_idx = (1, 2), 3
        else:
            spatial_idx, channel_idx = (2, 3), 1

        shape = list(x.shape)
        for i in spatial_idx:
            shape[i] = _scale(x.shape[i], b, divide=self.to_depth)
        shape[channel_idx] = _scale(x.shape[channel_idx], area, divide=not self.to_depth)
        return [(tuple(shape), x.dtype)]


@register_op
@dataclass(frozen=True, eq=False, kw_only=True)
class SpaceToDepth(_BlockRearrange):
    """Move ``block_size x block_size`` spatial blocks into the channel dimension."""

    op_name = "space_to_depth"
    external_names = ("SpaceToDepth",)
    mappings = (
        AttributeMapping(
            "SpaceToDepth",
            {
                "block_size": from_attr("block_size"),
                "data_format": from_attr("data_format", default=NHWC),
            },
        ),
    )

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        inverse = DepthToSpace(
            inputs=(output_grads[0],), block_size=self.block_size, data_format=self.data_format
        )
        return self._link(graph, inverse)


@register_op
@dataclass(frozen=True, eq=False, kw_only=True)
class DepthToSpace(_BlockRearrange):
    """Move channel data out into ``block_size x block_size`` spatial blocks."""

    op_name = "depth_to_space"
    external_names = ("DepthToSpace",)
    mappings = (
        AttributeMapping(
            "DepthToSpace",
            {
                "block_size": from_attr("block_size"),
                "data_format": from_attr("data_format", default=NHWC),
            },
        ),
    )

    to_depth = False

    def gradient(self, graph: "Graph", output_grads: Sequence["SymbolicVariable"]) -> List["SymbolicVariable"]:
        inverse = SpaceToDepth(
            inputs=(output_grads[0],), block_size=self.block_size, data_format=self.data_format
        )
        return self._link(graph, inverse)


def space_to_depth(
    graph: "Graph",
    x: "SymbolicVariable",
    block_size: int,
    data_format: str = NHWC,
    name: Optional[str] = None,
) -> "SymbolicVariable":
    """Add a space-to-depth op to ``graph`` and return its output."""
    record = SpaceToDepth(inputs=(x,), block_size=block_size, data_format=data_format)
    return graph.add_op(record, name=name)[0]


def depth_to_space(
    graph: "Graph",
    x: "SymbolicVariable",
    block_size: int,
    data_format: str = NHWC,
    name: Optional[str] = None,
) -> "SymbolicVariable":
    """Add a depth-to-space op to ``graph`` and return its output."""
    record = DepthToSpace(inputs=(x,), block_size=block_size, data_format=data_format)
    return graph.add_op(record, name=name)[0]
