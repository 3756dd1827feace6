"""Operator registry for native construction and external import."""

from typing import Dict, List, Optional, Type, TypeVar

from .base import AttributeMapping, OperatorRecord, UnsupportedExternalOperator

R = TypeVar("R", bound=Type[OperatorRecord])


class OpRegistry:
    """Closed registry of operator types.

    Operator types are indexed by their internal name and by every external
    name they can be imported from. Lookups are exact matches only.
    """

    def __init__(self):
        self._by_name: Dict[str, Type[OperatorRecord]] = {}
        self._by_external: Dict[str, Type[OperatorRecord]] = {}

    def register(self, cls: R) -> R:
        """Register an operator class.

        Raises:
            ValueError: If the internal or an external name is already taken,
                or if a declared mapping names an unknown external op.
        """
        if not cls.op_name:
            raise ValueError(f"{cls.__name__} does not define op_name")
        if cls.op_name in self._by_name:
            raise ValueError(f"Operator '{cls.op_name}' already registered")

        mapped = {m.external_name for m in cls.mappings}
        unknown = mapped - set(cls.external_names)
        if unknown:
            raise ValueError(f"{cls.__name__} declares mappings for undeclared external names {sorted(unknown)}")

        for external_name in cls.external_names:
            if external_name in self._by_external:
                owner = self._by_external[external_name].op_name
                raise ValueError(f"External op '{external_name}' already registered by '{owner}'")

        self._by_name[cls.op_name] = cls
        for external_name in cls.external_names:
            self._by_external[external_name] = cls
        return cls

    def get_op_class(self, op_name: str) -> Type[OperatorRecord]:
        """Get the operator class for an internal op name.

        Raises:
            KeyError: If no operator is registered under ``op_name``.
        """
        try:
            return self._by_name[op_name]
        except KeyError:
            raise KeyError(f"Unknown operator '{op_name}'") from None

    def resolve_external(self, external_name: str) -> Type[OperatorRecord]:
        """Get the operator class importable from ``external_name``.

        Raises:
            UnsupportedExternalOperator: If nothing is registered under that name.
        """
        cls = self._by_external.get(external_name)
        if cls is None:
            raise UnsupportedExternalOperator(external_name)
        return cls

    def get_mapping(self, external_name: str) -> AttributeMapping:
        """Get the attribute mapping descriptor for an external op name."""
        cls = self.resolve_external(external_name)
        for mapping in cls.mappings:
            if mapping.external_name == external_name:
                return mapping
        # Declared alias without attribute mapping: every field uses its default
        return AttributeMapping(external_name)

    def is_supported_external_op(self, external_name: str) -> bool:
        return external_name in self._by_external

    def list_registered_ops(self) -> Dict[str, List[str]]:
        """Map each internal op name to its external names."""
        return {name: list(cls.external_names) for name, cls in self._by_name.items()}

    def __contains__(self, op_name: str) -> bool:
        return op_name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)


# Process-wide registry, populated when the op modules are imported
_DEFAULT_REGISTRY = OpRegistry()


def default_registry() -> OpRegistry:
    return _DEFAULT_REGISTRY


def register_op(cls: R) -> R:
    """Class decorator registering an operator type in the default registry.

    Example:
        @register_op
        @dataclass(frozen=True, eq=False, kw_only=True)
        class MyOp(OperatorRecord):
            op_name = "my_op"
            external_names = ("MyOp",)
    """
    return _DEFAULT_REGISTRY.register(cls)


def get_op_class(op_name: str) -> Type[OperatorRecord]:
    return _DEFAULT_REGISTRY.get_op_class(op_name)


def resolve_external(external_name: str) -> Type[OperatorRecord]:
    return _DEFAULT_REGISTRY.resolve_external(external_name)


def get_mapping(external_name: str) -> AttributeMapping:
    return _DEFAULT_REGISTRY.get_mapping(external_name)


def is_supported_external_op(external_name: str) -> bool:
    """Check if an external operator can be imported."""
    return _DEFAULT_REGISTRY.is_supported_external_op(external_name)


def list_registered_ops() -> Dict[str, List[str]]:
    """List all registered operators with their external names."""
    return _DEFAULT_REGISTRY.list_registered_ops()


def resolve_registry(registry: Optional[OpRegistry]) -> OpRegistry:
    return registry if registry is not None else _DEFAULT_REGISTRY
