"""
AST Node Definitions for the model DSL

The parser is an external collaborator; these are the node types it hands to
the compiler. A model file such as

    use Conv2d
    use Linear
    use ReLU
    use Softmax
    use Transform

    [LeNet]
        * N: number of classes = 10

        [Conv2d]
            * kernel size = 5
            * stride = 2

        #0 Input                = Ic, H, W
        #1 Conv2d + ReLU        = 32, H/2, W/2
        #2 Conv2d + ReLU        = 64, H/4, W/4
        #3 Transform            = 64 * (H/4) * (W/4)
        #4 Linear + Softmax     = N

parses to Program(uses=[UseDecl(...)...], model=ModelBlock(...)).
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .errors import SourceLocation


# =============================================================================
# Base Node Types
# =============================================================================


@dataclass
class ASTNode:
    """Base class for all AST nodes."""

    # kw_only=True allows subclasses to have required positional fields
    location: Optional[SourceLocation] = field(default=None, repr=False, compare=False, kw_only=True)


# =============================================================================
# Expression Nodes
# =============================================================================


@dataclass
class Literal(ASTNode):
    """Literal value."""

    value: Union[int, float, bool, str]

    def __str__(self) -> str:
        return repr(self.value)


@dataclass
class Identifier(ASTNode):
    """Identifier reference."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class BinaryOp(ASTNode):
    """Binary operation expression."""

    left: "Expression"
    op: str  # +, -, *, /
    right: "Expression"

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


@dataclass
class UnaryOp(ASTNode):
    """Unary operation expression."""

    op: str  # -
    operand: "Expression"

    def __str__(self) -> str:
        return f"{self.op}{self.operand}"


Expression = Union[Literal, Identifier, BinaryOp, UnaryOp]


# =============================================================================
# Declarations
# =============================================================================


@dataclass
class UseDecl(ASTNode):
    """Import of a layer type or library group.

    Example: use Conv2d
    """

    name: str


@dataclass
class VariableDecl(ASTNode):
    """`* <description>[: <alias>] = <value>` line.

    The DSL writes the alias first when there is one:
        * N: number of classes = 10   -> alias "N", description "number of classes"
        * stride = 2                  -> alias None, description "stride"
    """

    description: str
    value: Optional["Expression"] = None
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        return self.alias or self.description


@dataclass
class TypeBlock(ASTNode):
    """Model-level override block for one layer type.

    Example:
        [Conv2d]
            * stride = 2
    """

    name: str
    variables: List[VariableDecl] = field(default_factory=list)


@dataclass
class LayerCall(ASTNode):
    """One component of a node's composition, with inline overrides.

    Example: Conv2d (stride=1)

    `repeat` applies the same layer that many times in a row, each pass with
    the same parameters.
    """

    name: str
    kwargs: List[VariableDecl] = field(default_factory=list)
    repeat: int = 1


@dataclass
class NodeLine(ASTNode):
    """`#<index> <calls> = <shape>` line.

    Example: #1 Conv2d + ReLU = 32, H/2, W/2

    A node may instead hold an inline model, whose own node lines (numbered
    from 1; its input is the previous node's output) run in place of `calls`:

        #2 [Inner Model]
            #1 Linear = 22
    """

    index: int
    calls: List[LayerCall] = field(default_factory=list)
    shape: Optional[List["Expression"]] = None
    label: Optional[str] = None
    model: Optional["ModelBlock"] = None


@dataclass
class ModelBlock(ASTNode):
    """Top-level `[<ModelName>]` block."""

    name: str
    variables: List[VariableDecl] = field(default_factory=list)
    type_blocks: List[TypeBlock] = field(default_factory=list)
    nodes: List[NodeLine] = field(default_factory=list)


@dataclass
class Program(ASTNode):
    """A parsed model file."""

    uses: List[UseDecl] = field(default_factory=list)
    model: Optional[ModelBlock] = None
    source_file: Optional[str] = None

    @property
    def imports(self) -> List[str]:
        return [u.name for u in self.uses]
