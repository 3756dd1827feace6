"""Operator definitions and registry.

This module provides:
- base: the operator record base class, field and attribute mapping descriptors
- registry: the closed registry of operator types (internal and external names)
- space_depth: SpaceToDepth / DepthToSpace
- one_hot: OneHot
- math_ops: ZerosLike / AddN, used when building gradients

Custom operators are registered with the class decorator:

    from dataclasses import dataclass
    from graph_ops.ops import OperatorRecord, register_op

    @register_op
    @dataclass(frozen=True, eq=False, kw_only=True)
    class MyOp(OperatorRecord):
        op_name = "my_op"
        external_names = ("MyOp",)
        scale: int

        def flatten_args(self):
            return [self.scale], []
"""

from .base import (
    AttributeMapping,
    AttributeSource,
    FieldSpec,
    InvalidConfiguration,
    OpBindingError,
    OperatorRecord,
    UnsupportedExternalOperator,
    from_attr,
    from_input,
)
from .math_ops import AddN, ZerosLike, add_n, zeros_like
from .one_hot import OneHot, one_hot
from .registry import (
    OpRegistry,
    default_registry,
    get_mapping,
    get_op_class,
    is_supported_external_op,
    list_registered_ops,
    register_op,
    resolve_external,
)
from .space_depth import (
    DATA_FORMATS,
    NCHW,
    NHWC,
    DepthToSpace,
    SpaceToDepth,
    depth_to_space,
    layout_flag,
    space_to_depth,
)

__all__ = [
    "AttributeMapping",
    "AttributeSource",
    "FieldSpec",
    "InvalidConfiguration",
    "OpBindingError",
    "OperatorRecord",
    "UnsupportedExternalOperator",
    "from_attr",
    "from_input",
    "OpRegistry",
    "default_registry",
    "get_mapping",
    "get_op_class",
    "is_supported_external_op",
    "list_registered_ops",
    "register_op",
    "resolve_external",
    "SpaceToDepth",
    "DepthToSpace",
    "OneHot",
    "ZerosLike",
    "AddN",
    "space_to_depth",
    "depth_to_space",
    "one_hot",
    "zeros_like",
    "add_n",
    "layout_flag",
    "DATA_FORMATS",
    "NHWC",
    "NCHW",
]
