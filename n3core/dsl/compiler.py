"""
Model DSL Compiler

Main entry point for compiling a parsed model description to a resolved Graph.

The compilation pipeline is:
1. Lower: Program AST -> ModelDefinition
2. Resolve: imports, type-block overrides, hyperparameters
3. Plan: node numbering, inline overrides, final parameters per step
4. Infer: shape rules applied node by node, checked against declared shapes
5. Validate: symbols, ranks and axis parameters over the whole graph

Each phase either completes or reports every problem it found; compilation
never continues past a failed phase.

Example usage:
    from n3core.dsl import compile_model

    graph = compile_model(program)           # raises on error
    graph.bound_shapes()[-1]                 # Shape(10) for N = 10

    # Or with more control
    compiler = Compiler(CompilerOptions(trust_declared_shapes=True))
    result = compiler.compile_program(program)
    for warning in result.warnings:
        print(warning)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core.config.compiler_config import CompilerOptions
from ..utils.logger import get_logger, setup_logger
from .ast_nodes import Program
from .errors import DSLError, ValidationError, WarningCollector
from .graph_builder import GraphBuilder
from .inference import ShapeInferencer
from .ir import Graph
from .model import ModelDefinition
from .registry import LayerRegistry, default_registry
from .resolver import ModelResolver, ResolvedModel
from .validator import GraphValidator


# =============================================================================
# Compilation Result
# =============================================================================


@dataclass
class CompilationResult:
    """Result of compiling one model."""

    # Resolved graph (None when compilation failed)
    graph: Optional[Graph] = None

    # Resolved model (for reference)
    resolved: Optional[ResolvedModel] = None

    # Warnings generated during compilation
    warnings: WarningCollector = field(default_factory=WarningCollector)

    # Every diagnostic of the phase that failed
    errors: List[DSLError] = field(default_factory=list)

    # Whether compilation succeeded
    success: bool = True

    def fail(self, error: DSLError) -> None:
        if isinstance(error, ValidationError):
            self.errors.extend(error.diagnostics)
        else:
            self.errors.append(error)
        self.success = False
        self.graph = None

    def raise_for_errors(self) -> None:
        """Raise the single error, or a ValidationError carrying all of them."""
        if not self.errors:
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise ValidationError(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "graph": self.graph.to_dict() if self.graph is not None else None,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }

    def print_summary(self):
        """Print a summary of compilation results."""
        print(f"Compilation {'succeeded' if self.success else 'failed'}")
        if self.graph is not None:
            print(f"  Model: {self.graph.name} ({len(self.graph)} nodes)")
            for node in self.graph.nodes:
                layers = " + ".join(node.layers) or (node.label or "Input")
                print(f"    #{node.index} {layers} = {node.output_shape}")

        if self.warnings.has_warnings():
            print(f"  Warnings: {len(self.warnings)}")
            for warning in self.warnings:
                print(f"    {warning}")

        if self.errors:
            print(f"  Errors: {len(self.errors)}")
            for error in self.errors:
                print(f"    {error}")


# =============================================================================
# Compiler Class
# =============================================================================


class Compiler:
    """Model DSL Compiler.

    Stateless between compilations; one instance (and its frozen registry)
    may compile many models, from several threads.
    """

    def __init__(
        self,
        options: Optional[CompilerOptions] = None,
        registry: Optional[LayerRegistry] = None,
    ):
        self.options = options or CompilerOptions()
        self.registry = registry or default_registry()
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on options."""
        defaults = CompilerOptions()
        if (
            self.options.log_file is not None
            or self.options.json_logging
            or self.options.log_level != defaults.log_level
        ):
            setup_logger(
                log_level=self.options.log_level,
                log_file=self.options.log_file,
                append=True,
                json_logging=self.options.json_logging,
            )

    def compile_program(self, program: Program) -> CompilationResult:
        """Compile a parsed program."""
        result = CompilationResult()
        name = program.model.name if program.model is not None else "<none>"
        logger = get_logger().bind(model=name)

        try:
            logger.debug(f"Lowering model '{name}'")
            definition = ModelDefinition.from_ast(program)
        except DSLError as e:
            logger.error(f"Compilation error: {e}")
            result.fail(e)
            return result

        return self._compile(definition, result, logger)

    def compile_definition(self, definition: ModelDefinition) -> CompilationResult:
        """Compile an already-lowered model definition."""
        return self._compile(definition, CompilationResult(), get_logger().bind(model=definition.name))

    def _compile(self, definition: ModelDefinition, result: CompilationResult, logger) -> CompilationResult:
        try:
            logger.info("Resolving imports and type overrides")
            resolver = ModelResolver(self.registry, result.warnings, self.options.warn_unused_imports)
            resolved = resolver.resolve(definition)
            result.resolved = resolved

            logger.info("Planning graph")
            builder = GraphBuilder(resolved)
            plan = builder.plan()

            logger.info(f"Inferring shapes over {len(plan)} nodes")
            inference = ShapeInferencer(
                self.options.trust_declared_shapes, resolved.hyperparameter_values
            ).infer(plan)
            result.warnings.extend(inference.warnings)
            if not inference.complete:
                raise ValidationError(inference.errors)

            logger.info("Validating graph")
            graph = builder.assemble(inference)
            errors = inference.errors + GraphValidator(graph).collect()
            if errors:
                raise ValidationError(errors)

            result.graph = graph
            result.success = True
            logger.info(f"Compiled '{graph.name}': output shape ({graph.output_shape})")

        except DSLError as e:
            logger.error(f"Compilation error: {e}")
            result.fail(e)

        for warning in result.warnings:
            logger.warning(str(warning))

        return result


# =============================================================================
# Convenience Functions
# =============================================================================


def compile_model(
    program: Union[Program, ModelDefinition],
    registry: Optional[LayerRegistry] = None,
    options: Optional[CompilerOptions] = None,
    raise_on_error: bool = True,
) -> Union[Graph, CompilationResult]:
    """Compile a model.

    This is the main entry point for compilation.

    Args:
        program: Parsed Program AST, or an already-lowered ModelDefinition
        registry: Layer registry; the standard library by default
        options: Compiler options
        raise_on_error: Return the Graph and raise on failure (default), or
            return the full CompilationResult either way

    Returns:
        The resolved Graph, or a CompilationResult when raise_on_error is False

    Raises:
        DSLError: the error, when there is exactly one
        ValidationError: every diagnostic, when there are several
    """
    compiler = Compiler(options, registry)
    if isinstance(program, ModelDefinition):
        result = compiler.compile_definition(program)
    else:
        result = compiler.compile_program(program)

    if not raise_on_error:
        return result
    result.raise_for_errors()
    return result.graph


def compile_models(
    programs: List[Program],
    registry: Optional[LayerRegistry] = None,
    options: Optional[CompilerOptions] = None,
) -> List[CompilationResult]:
    """Compile several independent models with one compiler."""
    compiler = Compiler(options, registry)
    return [compiler.compile_program(program) for program in programs]


__all__ = [
    "CompilationResult",
    "Compiler",
    "CompilerOptions",
    "compile_model",
    "compile_models",
]
