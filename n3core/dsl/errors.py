"""
DSL Error definitions and error codes.

Error codes:
- E001-E016: Compilation errors
- W001-W003: Warnings

Every error carries the offending node index and/or layer type name when one
is known, so a list of errors can be shown to the author as-is.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence


class ErrorCode(str, Enum):
    """Compilation error codes."""

    E001 = "E001"  # Illegal symbolic arithmetic (division by zero)
    E002 = "E002"  # Unknown layer type
    E003 = "E003"  # Unresolved import
    E004 = "E004"  # Parameter set twice at the same precedence tier
    E005 = "E005"  # Shape rule applied to a shape of the wrong rank
    E006 = "E006"  # Declared and inferred shapes disagree
    E007 = "E007"  # Node indices are not 0..n-1
    E008 = "E008"  # Undeclared symbol
    E009 = "E009"  # Axis parameter out of range
    E010 = "E010"  # Parameter value of the wrong type
    E011 = "E011"  # Unknown parameter for a layer type
    E012 = "E012"  # Input node has no declared shape
    E013 = "E013"  # Spatial extent smaller than the kernel
    E014 = "E014"  # Aggregate of collected diagnostics
    E015 = "E015"  # Registration into a frozen registry
    E016 = "E016"  # Inline model holds more than node lines


class WarningCode(str, Enum):
    """Compilation warning codes."""

    W001 = "W001"  # Imported layer type never used
    W002 = "W002"  # Type override block for a type no node uses
    W003 = "W003"  # Declared shape trusted over inferred shape


@dataclass
class SourceLocation:
    """Source location for error reporting."""

    file: Optional[str]
    line: int
    column: int
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    def __str__(self) -> str:
        if self.file:
            return f"{self.file}:{self.line}:{self.column}"
        return f"line {self.line}, column {self.column}"


class DSLError(Exception):
    """Base exception for all DSL errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        node: Optional[int] = None,
        layer: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.node = node
        self.layer = layer
        self.location = location
        self.hint = hint
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [f"[{self.code.value}]"]
        if self.location:
            parts.append(f" at {self.location}")
        if self.node is not None:
            parts.append(f" node #{self.node}")
        if self.layer:
            parts.append(f" ({self.layer})")
        if len(parts) > 1:
            parts.append(":")
        parts.append(f" {self.message}")
        if self.hint:
            parts.append(f"\n  hint: {self.hint}")
        return "".join(parts)

    def at_node(self, node: int, layer: Optional[str] = None) -> "DSLError":
        """Attach node/layer context if the raiser did not know it."""
        if self.node is None:
            self.node = node
        if self.layer is None and layer is not None:
            self.layer = layer
        self.args = (self._format_message(),)
        return self

    def at_location(self, location: Optional[SourceLocation]) -> "DSLError":
        """Attach the source position if the raiser did not know it."""
        if self.location is None and location is not None:
            self.location = location
            self.args = (self._format_message(),)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "node": self.node,
            "layer": self.layer,
            "location": str(self.location) if self.location else None,
            "hint": self.hint,
        }


class DSLArithmeticError(DSLError, ArithmeticError):
    """Illegal symbolic operation, e.g. division by the literal zero."""

    def __init__(self, message: str, node: Optional[int] = None, layer: Optional[str] = None):
        super().__init__(ErrorCode.E001, message, node=node, layer=layer)


class NotFoundError(DSLError, LookupError):
    """Unknown layer type name."""

    def __init__(self, name: str, hint: Optional[str] = None):
        self.name = name
        super().__init__(ErrorCode.E002, f"unknown layer type '{name}'", layer=name, hint=hint)


class UnresolvedImportError(DSLError):
    """A name used by the model cannot be bound to a registry entry."""

    def __init__(
        self,
        name: str,
        reason: str = "no registry entry",
        node: Optional[int] = None,
        hint: Optional[str] = None,
    ):
        self.name = name
        super().__init__(
            ErrorCode.E003,
            f"cannot resolve '{name}': {reason}",
            node=node,
            layer=name,
            hint=hint,
        )


class DuplicateOverrideError(DSLError):
    """The same parameter is set twice at the same precedence tier."""

    def __init__(self, layer: str, param: str, tier: str, node: Optional[int] = None):
        self.param = param
        self.tier = tier
        super().__init__(
            ErrorCode.E004,
            f"parameter '{param}' is set more than once in the {tier}",
            node=node,
            layer=layer,
        )


class ShapeArityError(DSLError):
    """A shape rule was applied to a shape with the wrong number of axes."""

    def __init__(self, layer: str, expected: str, rank: int, node: Optional[int] = None):
        self.expected = expected
        self.rank = rank
        super().__init__(
            ErrorCode.E005,
            f"expected an input of {expected} axes, got {rank}",
            node=node,
            layer=layer,
        )


class ShapeMismatchError(DSLError):
    """Declared shape and inferred shape disagree."""

    def __init__(
        self,
        node: Optional[int],
        declared: Any,
        inferred: Any,
        axis: Optional[int] = None,
        layer: Optional[str] = None,
        what: str = "declared shape",
    ):
        self.declared = declared
        self.inferred = inferred
        self.axis = axis
        where = f" at axis {axis}" if axis is not None else ""
        super().__init__(
            ErrorCode.E006,
            f"{what} ({declared}) does not match inferred shape ({inferred}){where}",
            node=node,
            layer=layer,
        )


class NonContiguousIndexError(DSLError):
    """Node indices are not exactly 0..n-1 in ascending order."""

    def __init__(self, expected: int, found: int, node: Optional[int] = None):
        self.expected = expected
        self.found = found
        super().__init__(
            ErrorCode.E007,
            f"expected node #{expected}, found #{found}",
            node=found if node is None else node,
            hint="nodes must be numbered 0, 1, 2, ... without gaps",
        )


class UndeclaredSymbolError(DSLError):
    """A symbol is neither a hyperparameter nor introduced by the input node."""

    def __init__(self, symbol: str, node: Optional[int] = None, layer: Optional[str] = None):
        self.symbol = symbol
        super().__init__(
            ErrorCode.E008,
            f"undeclared symbol '{symbol}'",
            node=node,
            layer=layer,
        )


class AxisRangeError(DSLError):
    """An axis-selecting parameter does not index into the shape."""

    def __init__(self, layer: str, param: str, axis: Any, rank: int, node: Optional[int] = None):
        self.param = param
        self.axis = axis
        self.rank = rank
        super().__init__(
            ErrorCode.E009,
            f"'{param}' = {axis} is out of range for a shape of {rank} axes",
            node=node,
            layer=layer,
        )


class ParameterTypeError(DSLError):
    """A parameter value has the wrong type."""

    def __init__(
        self,
        layer: Optional[str],
        param: str,
        expected: Any,
        given: Any,
        node: Optional[int] = None,
    ):
        self.param = param
        super().__init__(
            ErrorCode.E010,
            f"'{param}' expects a value of type {expected}, got {given!r}",
            node=node,
            layer=layer,
        )


class UnknownParameterError(DSLError):
    """A parameter name is not part of the layer type's schema."""

    def __init__(self, layer: str, param: str, node: Optional[int] = None, known: Iterable[str] = ()):
        self.param = param
        known = sorted(known)
        super().__init__(
            ErrorCode.E011,
            f"no such parameter '{param}'",
            node=node,
            layer=layer,
            hint=f"known parameters: {', '.join(known)}" if known else None,
        )


class MissingInputShapeError(DSLError):
    """The input node has no declared shape."""

    def __init__(self, node: int = 0):
        super().__init__(
            ErrorCode.E012,
            "the input node must declare its shape",
            node=node,
            hint="e.g. '#0 Input = Ic, H, W'",
        )


class KernelExtentError(DSLError):
    """A spatial extent is smaller than the kernel applied to it."""

    def __init__(self, layer: str, axis: int, extent: Any, kernel: Any, node: Optional[int] = None):
        self.axis = axis
        super().__init__(
            ErrorCode.E013,
            f"axis {axis} has extent {extent}, smaller than kernel size {kernel}",
            node=node,
            layer=layer,
        )


class RegistryFrozenError(DSLError):
    """Registration attempted after the registry was frozen."""

    def __init__(self, name: str):
        super().__init__(
            ErrorCode.E015,
            f"cannot register '{name}': the registry is frozen",
            layer=name,
        )


class InlineModelError(DSLError):
    """An inline model declares something other than node lines."""

    def __init__(self, model: str, what: str, node: Optional[int] = None):
        self.model = model
        super().__init__(
            ErrorCode.E016,
            f"inline model '{model}' cannot declare {what}",
            node=node,
            hint="move it to the enclosing model",
        )


class ValidationError(DSLError):
    """Aggregate of every diagnostic collected during a compilation phase."""

    def __init__(self, diagnostics: Sequence[DSLError]):
        self.diagnostics = list(diagnostics)
        lines = [str(d) for d in self.diagnostics]
        super().__init__(
            ErrorCode.E014,
            f"{len(self.diagnostics)} problem(s) found" + "".join(f"\n  {line}" for line in lines),
        )

    @property
    def codes(self) -> list[ErrorCode]:
        return [d.code for d in self.diagnostics]


@dataclass
class DSLWarning:
    """Warning message from compilation."""

    code: WarningCode
    message: str
    node: Optional[int] = None
    layer: Optional[str] = None

    def __str__(self) -> str:
        where = f" node #{self.node}" if self.node is not None else ""
        if self.layer:
            where += f" ({self.layer})"
        return f"[{self.code.value}]{where}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "node": self.node,
            "layer": self.layer,
        }


class WarningCollector:
    """Collects warnings during compilation."""

    def __init__(self):
        self.warnings: list[DSLWarning] = []

    def warn(
        self,
        code: WarningCode,
        message: str,
        node: Optional[int] = None,
        layer: Optional[str] = None,
    ):
        self.warnings.append(DSLWarning(code, message, node, layer))

    def extend(self, warnings: Iterable[DSLWarning]):
        self.warnings.extend(warnings)

    def clear(self):
        self.warnings.clear()

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def codes(self) -> set[WarningCode]:
        return {w.code for w in self.warnings}

    def __iter__(self):
        return iter(self.warnings)

    def __len__(self) -> int:
        return len(self.warnings)
