"""
Resolution Phase: Imports, Type Overrides and Hyperparameters

This module handles:
1. Import resolution: expanding `use` names (layers or groups) into the set of
   layer types the model may reference
2. Reference checking: every layer a node composes must be imported
3. Parameter merging: layer defaults < model-level `[<Type>]` overrides
4. Hyperparameter collection: the model's global variables by symbol

Every problem is collected; resolution raises a single ValidationError at the
end so the author sees all of them at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from .errors import (
    DSLError,
    DuplicateOverrideError,
    NotFoundError,
    ParameterTypeError,
    UnknownParameterError,
    UnresolvedImportError,
    ValidationError,
    WarningCode,
    WarningCollector,
)
from .model import Assignment, ModelDefinition
from .registry import LayerRegistry, LayerType, default_registry
from .types import Hyperparameter, ParameterSet, ValueType


# =============================================================================
# Resolved Model
# =============================================================================


@dataclass(frozen=True)
class ResolvedModel:
    """A model definition with every name bound to a registry entry."""

    definition: ModelDefinition

    # Layer names brought into scope by `use`, in import order
    imported: tuple[str, ...] = ()

    # Imported layer types and their parameters after type-block overrides
    layer_types: Mapping[str, LayerType] = field(default_factory=dict)
    type_parameters: Mapping[str, ParameterSet] = field(default_factory=dict)

    # Model-level variables by symbol
    hyperparameters: Mapping[str, Hyperparameter] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def hyperparameter_values(self) -> dict[str, Any]:
        return {s: h.value for s, h in self.hyperparameters.items() if h.is_bound}

    def parameters_for(self, layer: str) -> ParameterSet:
        return self.type_parameters[layer]


# =============================================================================
# Parameter merging
# =============================================================================


def merge_parameters(
    layer_type: LayerType,
    base: ParameterSet,
    assignments: Iterable[Assignment],
    tier: str,
    errors: list[DSLError],
    node: Optional[int] = None,
    seen: Optional[set[str]] = None,
) -> ParameterSet:
    """Apply one precedence tier of assignments on top of `base`.

    Keys may use a parameter's name or its alias; both fold to the canonical
    name before the duplicate check. Problems are appended to `errors` and the
    offending assignment is skipped.
    """
    seen = set() if seen is None else seen
    overrides: dict[str, Any] = {}

    for assignment in assignments:
        spec = layer_type.spec(assignment.key)
        if spec is None:
            errors.append(
                UnknownParameterError(
                    layer_type.name, assignment.key, node=node, known=layer_type.parameter_names()
                )
            )
            continue

        if spec.name in seen:
            errors.append(DuplicateOverrideError(layer_type.name, spec.name, tier, node=node))
            continue
        seen.add(spec.name)

        given = ValueType.of(assignment.value)
        if not spec.value_type.accepts(given):
            errors.append(
                ParameterTypeError(
                    layer_type.name, spec.name, spec.value_type.value, assignment.value, node=node
                )
            )
            continue

        overrides[spec.name] = assignment.value

    return base.merged(overrides)


# =============================================================================
# Resolver
# =============================================================================


class ModelResolver:
    """Binds a ModelDefinition to the layer registry."""

    def __init__(
        self,
        registry: Optional[LayerRegistry] = None,
        warnings: Optional[WarningCollector] = None,
        warn_unused_imports: bool = True,
    ):
        self.registry = registry or default_registry()
        self.warnings = warnings if warnings is not None else WarningCollector()
        self.warn_unused_imports = warn_unused_imports

    def resolve(self, definition: ModelDefinition) -> ResolvedModel:
        errors: list[DSLError] = []

        imported = self._resolve_imports(definition, errors)
        layer_types = {name: self.registry.lookup(name) for name in imported}
        type_parameters = {name: layer.defaults for name, layer in layer_types.items()}

        self._apply_type_overrides(definition, layer_types, type_parameters, errors)
        self._check_references(definition, imported, errors)
        hyperparameters = self._collect_hyperparameters(definition, errors)

        if errors:
            raise ValidationError(errors)

        self._check_usage(definition)

        return ResolvedModel(
            definition=definition,
            imported=tuple(imported),
            layer_types=MappingProxyType(layer_types),
            type_parameters=MappingProxyType(type_parameters),
            hyperparameters=MappingProxyType(hyperparameters),
        )

    def _resolve_imports(self, definition: ModelDefinition, errors: list[DSLError]) -> list[str]:
        imported: dict[str, None] = {}
        for name in definition.imports:
            try:
                members = self.registry.expand(name)
            except NotFoundError:
                errors.append(UnresolvedImportError(name, reason="not in the layer registry"))
                continue
            for member in members:
                imported.setdefault(member, None)
        return list(imported)

    def _apply_type_overrides(
        self,
        definition: ModelDefinition,
        layer_types: dict[str, LayerType],
        type_parameters: dict[str, ParameterSet],
        errors: list[DSLError],
    ) -> None:
        seen_by_type: dict[str, set[str]] = {}
        for block in definition.type_overrides:
            layer = layer_types.get(block.layer)
            if layer is None:
                errors.append(self._unresolved(block.layer))
                continue
            type_parameters[block.layer] = merge_parameters(
                layer,
                type_parameters[block.layer],
                block.assignments,
                "model-level type block",
                errors,
                seen=seen_by_type.setdefault(block.layer, set()),
            )

    def _check_references(
        self,
        definition: ModelDefinition,
        imported: list[str],
        errors: list[DSLError],
    ) -> None:
        in_scope = set(imported)
        for node in definition.nodes:
            if node.index == 0:
                continue
            for name in node.layer_names:
                if name not in in_scope:
                    errors.append(self._unresolved(name, node=node.index))

    def _unresolved(self, name: str, node: Optional[int] = None) -> DSLError:
        if name not in self.registry:
            error = NotFoundError(name)
            return error.at_node(node) if node is not None else error
        return UnresolvedImportError(name, reason="not imported", node=node, hint=f"add 'use {name}'")

    def _collect_hyperparameters(
        self,
        definition: ModelDefinition,
        errors: list[DSLError],
    ) -> dict[str, Hyperparameter]:
        hyperparameters: dict[str, Hyperparameter] = {}
        for hp in definition.hyperparameters:
            if hp.symbol in hyperparameters:
                errors.append(DuplicateOverrideError(definition.name, hp.symbol, "model variables"))
                continue
            hyperparameters[hp.symbol] = hp
        return hyperparameters

    def _check_usage(self, definition: ModelDefinition) -> None:
        used = set(definition.referenced_layers)

        if self.warn_unused_imports:
            for name in definition.imports:
                if not used.intersection(self.registry.expand(name)):
                    self.warnings.warn(WarningCode.W001, f"'{name}' is imported but never used", layer=name)

        for block in definition.type_overrides:
            if block.layer not in used:
                self.warnings.warn(
                    WarningCode.W002,
                    f"override block for '{block.layer}' has no effect: no node uses it",
                    layer=block.layer,
                )


def resolve_model(
    definition: ModelDefinition,
    registry: Optional[LayerRegistry] = None,
    warn_unused_imports: bool = True,
) -> tuple[ResolvedModel, WarningCollector]:
    """Resolve a model definition.

    Returns:
        Tuple of (resolved model, warnings)

    Raises:
        ValidationError: every resolution problem found.
    """
    warnings = WarningCollector()
    resolver = ModelResolver(registry, warnings, warn_unused_imports)
    return resolver.resolve(definition), warnings
