"""
Layer Definition Registry

Catalog of named layer types (parameter schema + shape rule) and library
groups. Populated once at startup, then frozen; a frozen registry is safe to
share between threads compiling different models.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from .errors import NotFoundError, RegistryFrozenError
from .rules import RuleKind, ShapeRule
from .types import ParameterSet, ParameterSpec


@dataclass(frozen=True)
class LayerType:
    """A named, reusable transformation with default parameters and a shape rule."""

    name: str
    parameters: tuple[ParameterSpec, ...] = ()
    rule: ShapeRule = ShapeRule(RuleKind.POINTWISE)
    axis_params: tuple[str, ...] = ()
    description: str = ""

    @property
    def defaults(self) -> ParameterSet:
        """Parameters that have a default value."""
        return ParameterSet({p.name: p.default for p in self.parameters if p.default is not None})

    def spec(self, key: str) -> Optional[ParameterSpec]:
        """Look a parameter up by name or alias."""
        for param in self.parameters:
            if param.matches(key):
                return param
        return None

    def parameter_names(self) -> list[str]:
        return [p.name for p in self.parameters]


class LayerRegistry:
    """Central registry for layer types and library groups."""

    def __init__(self):
        self._layers: dict[str, LayerType] = {}
        self._groups: dict[str, tuple[str, ...]] = {}
        self._frozen = False

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        name: str,
        defaults: Mapping[str, Any],
        shape_rule: ShapeRule,
        axis_params: Iterable[str] = (),
    ) -> LayerType:
        """Register a layer type from a plain `name -> default` mapping."""
        layer = LayerType(
            name=name,
            parameters=tuple(ParameterSpec(k, v) for k, v in defaults.items()),
            rule=shape_rule,
            axis_params=tuple(axis_params),
        )
        self.register_layer(layer)
        return layer

    def register_layer(self, layer: LayerType) -> None:
        """Register a fully described layer type."""
        self._check_writable(layer.name)
        self._layers[layer.name] = layer

    def register_group(self, name: str, members: Iterable[str]) -> None:
        """Register a library group; `use <group>` imports every member."""
        self._check_writable(name)
        members = tuple(members)
        for member in members:
            if member not in self._layers:
                raise NotFoundError(member, hint=f"register it before group '{name}'")
        self._groups[name] = members

    def freeze(self) -> LayerRegistry:
        """Make the registry read-only. Returns self for chaining."""
        self._layers = MappingProxyType(dict(self._layers))
        self._groups = MappingProxyType(dict(self._groups))
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self, name: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(name)

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, name: str) -> LayerType:
        """Get a layer type by name or raise NotFoundError."""
        layer = self._layers.get(name)
        if layer is None:
            hint = "it is a library group; use a member name" if name in self._groups else None
            raise NotFoundError(name, hint=hint)
        return layer

    def get(self, name: str) -> Optional[LayerType]:
        return self._layers.get(name)

    def expand(self, name: str) -> tuple[str, ...]:
        """Layer names an import of `name` brings into scope."""
        if name in self._groups:
            return self._groups[name]
        if name in self._layers:
            return (name,)
        raise NotFoundError(name)

    def __contains__(self, name: object) -> bool:
        return name in self._layers or name in self._groups

    # =========================================================================
    # Listing
    # =========================================================================

    def list_layers(self) -> list[str]:
        """List all registered layer type names."""
        return list(self._layers.keys())

    def list_groups(self) -> list[str]:
        """List all registered group names."""
        return list(self._groups.keys())

    def list_all(self) -> dict[str, list[str]]:
        """List all registered definitions by category."""
        return {
            "layers": self.list_layers(),
            "groups": self.list_groups(),
        }


@lru_cache(maxsize=1)
def default_registry() -> LayerRegistry:
    """The standard library, built once per process and frozen."""
    from .stdlib import install_standard_library

    registry = LayerRegistry()
    install_standard_library(registry)
    return registry.freeze()
