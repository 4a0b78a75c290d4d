"""Tests for symbolic dimensions: construction, equivalence, substitution, evaluation."""

from fractions import Fraction

import pytest
import sympy as sp

from n3core.dsl.dim import ConcreteDimValue, Dim, DimExpr, equivalent, free_symbols, resolve_bindings, simplify
from n3core.dsl.errors import DSLArithmeticError, ErrorCode, UndeclaredSymbolError
from n3core.dsl.types import Shape

H, W, a, b = Dim("H"), Dim("W"), Dim("a"), Dim("b")


# ---------------------------------------------------------------------------
# Equivalence
# ---------------------------------------------------------------------------


def test_product_is_commutative_under_equivalence():
    assert equivalent(a * b, b * a)


def test_exact_equality_keeps_written_form():
    assert a * b != b * a
    assert a * b == a * b


def test_flatten_extent_is_order_independent():
    written = 64 * (H / 4) * (W / 4)
    reordered = (W / 4) * 64 * (H / 4)
    assert written.equivalent(reordered)
    assert written.equivalent(4 * H * W)


def test_repeated_halving_matches_quartering():
    assert equivalent((H / 2) / 2, H / 4)
    assert not equivalent(H / 2, H / 4)


def test_like_terms_collect():
    assert equivalent(H + H, 2 * H)
    assert equivalent(H - H, 0)
    assert equivalent((H + 1) * (H - 1), H * H - 1)


def test_rational_expressions_compare_by_cross_multiplication():
    assert equivalent(H / W, (2 * H) / (2 * W))
    assert equivalent(1 / H + 1 / W, (H + W) / (H * W))


def test_normal_form_is_a_reduced_sympy_expression():
    form = (64 * (H / 4) * (W / 4)).normal_form()
    assert isinstance(form, sp.Expr)
    assert form == 4 * sp.Symbol("H") * sp.Symbol("W")
    assert (H / W).normal_form() == sp.Symbol("H") / sp.Symbol("W")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def test_rendering_uses_minimal_parentheses():
    assert str(H - (W - 1)) == "H - (W - 1)"
    assert str((H + 1) * W) == "(H + 1) * W"
    assert str(H / (W * 2)) == "H / (W * 2)"
    assert str(H * 2 + 1) == "H * 2 + 1"


# ---------------------------------------------------------------------------
# Substitution and simplification
# ---------------------------------------------------------------------------


def test_substitute_returns_new_expression():
    expr = H / 4
    bound = expr.substitute({"H": 28})
    assert expr == DimExpr("/", H, ConcreteDimValue(4))
    assert bound.simplify() == ConcreteDimValue(7)


def test_substitute_leaves_unmapped_symbols():
    assert (H * W).substitute({"H": 2}) == DimExpr("*", ConcreteDimValue(2), W)


def test_simplify_folds_trivial_identities():
    assert simplify(H * 1) == H
    assert simplify(1 * H) == H
    assert simplify(H + 0) == H
    assert simplify(H / 1) == H
    assert simplify(H * 0) == ConcreteDimValue(0)


def test_simplify_keeps_non_integral_division():
    expr = (H / 4).substitute({"H": 30}).simplify()
    assert isinstance(expr, DimExpr)
    assert expr.evaluate({}) == Fraction(15, 2)


def test_simplify_folds_constant_subtrees_only():
    expr = simplify((ConcreteDimValue(2) * 3) * H)
    assert expr == DimExpr("*", ConcreteDimValue(6), H)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def test_evaluate_is_exact():
    assert (64 * (H / 4) * (W / 4)).evaluate({"H": 28, "W": 28}) == 3136
    assert (H / 3).evaluate({"H": 2}) == Fraction(2, 3)


def test_evaluate_missing_binding_raises():
    with pytest.raises(UndeclaredSymbolError) as excinfo:
        (H * W).evaluate({"H": 2})
    assert excinfo.value.symbol == "W"
    assert excinfo.value.code == ErrorCode.E008


def test_free_symbols():
    assert free_symbols(64 * (H / 4) * (W / 4)) == {"H", "W"}
    assert free_symbols(7) == set()


def test_concrete_values():
    assert (ConcreteDimValue(3) * 4).is_concrete()
    assert (ConcreteDimValue(3) * 4).concrete_value() == 12
    assert not (H * 4).is_concrete()
    assert (H - H + 5).is_concrete()


# ---------------------------------------------------------------------------
# Division by zero
# ---------------------------------------------------------------------------


def test_division_by_literal_zero_raises():
    with pytest.raises(DSLArithmeticError) as excinfo:
        H / 0
    assert excinfo.value.code == ErrorCode.E001


def test_division_by_zero_is_an_arithmetic_error():
    with pytest.raises(ArithmeticError):
        H / (W - W)


def test_substitution_into_zero_divisor_raises():
    with pytest.raises(DSLArithmeticError):
        (H / W).substitute({"W": 0})


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------


def test_shape_equivalence_is_axis_wise():
    declared = Shape.of(64, H / 4, W / 4)
    inferred = Shape.of(64, (H / 2) / 2, (W / 2) / 2)
    assert declared.equivalent(inferred)
    assert declared.mismatched_axes(Shape.of(64, H / 4, W / 2)) == [2]
    assert not declared.equivalent(Shape.of(64, H / 4))


def test_shape_product_flattens_all_axes():
    flat = Shape.of(64, H / 4, W / 4).product()
    assert flat.rank == 1
    assert flat[0].equivalent(64 * (H / 4) * (W / 4))


def test_shape_evaluate_and_render():
    s = Shape.of("Ic", H / 2, W / 2)
    assert str(s) == "Ic, H / 2, W / 2"
    assert s.evaluate({"Ic": 1, "H": 28, "W": 28}) == (1, 14, 14)
    assert s.to_ir() == ["Ic", "H / 2", "W / 2"]


def test_shape_equivalence_with_bound_values():
    assert Shape.of(10).mismatched_axes(Shape.of("N")) == [0]
    assert Shape.of(10).equivalent(Shape.of("N"), {"N": 10})
    assert Shape.of(20, H).equivalent(Shape.of(Dim("N") * 2, H), {"N": 10})


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


def test_resolve_bindings_follows_references():
    bound = resolve_bindings({"N": 10, "M": Dim("N") * 2, "rate": 0.5, "name": "mnist"})
    assert set(bound) == {"N", "M"}
    assert bound["N"] == ConcreteDimValue(10)
    assert bound["M"].concrete_value() == 20


def test_resolve_bindings_stops_on_cycles():
    bound = resolve_bindings({"A": Dim("B") + 1, "B": Dim("A") + 1})
    assert not bound["A"].is_concrete()
