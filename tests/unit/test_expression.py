# tests/unit/test_expression.py

import math

import numpy as np
import pytest

from cogtiler.exceptions import ConfigurationError, ExpressionError
from cogtiler.render.expression import parse_expression

def test_precedence_and_canonical_form():
    expr = parse_expression("1 + 2 * 3")
    assert expr.canonical == "(1.0 + (2.0 * 3.0))"

def test_unary_minus_binds_looser_than_power():
    expr = parse_expression("-2 ** 2")

    assert expr.canonical == "(-(2.0 ** 2.0))"
    assert expr.evaluate({1: np.zeros(1)})[0] == pytest.approx(-4.0)

def test_power_is_right_associative():
    expr = parse_expression("2 ** 3 ** 2")
    assert expr.evaluate({1: np.zeros(1)})[0] == pytest.approx(512.0)

def test_equivalent_spellings_share_canonical_form():
    assert parse_expression("b1+2").canonical == parse_expression(" ( b1 + 2 ) ").canonical
    assert parse_expression("b1+2") == parse_expression("(b1 + 2.0)")

def test_band_references():
    expr = parse_expression("(band4 - b3) / (b4 + b3)")
    assert expr.bands == (3, 4)

def test_normalized_difference():
    expr = parse_expression("(b2 - b1) / (b2 + b1)")
    red = np.array([[10.0, 20.0]])
    nir = np.array([[30.0, 20.0]])

    result = expr.evaluate({1: red, 2: nir})

    assert result.shape == (1, 2)
    assert result.dtype == np.float64
    np.testing.assert_allclose(result, [[0.5, 0.0]])

def test_constant_expression_broadcasts():
    expr = parse_expression("b1 * 0 + 7")
    result = expr.evaluate({1: np.ones((2, 3))})

    np.testing.assert_array_equal(result, np.full((2, 3), 7.0))

@pytest.mark.parametrize("text, value, expected", [
    ("sqrt(b1)", 16.0, 4.0),
    ("log2(b1)", 8.0, 3.0),
    ("exp2(b1)", 3.0, 8.0),
    ("log10(b1)", 1000.0, 3.0),
    ("log(b1)", math.e, 1.0),
    ("exp(b1)", 0.0, 1.0),
    ("abs(b1)", -2.5, 2.5),
    ("sign(b1)", -3.0, -1.0),
    ("sign(b1)", 0.0, 0.0),
    ("radians(b1)", 180.0, math.pi),
    ("degrees(b1)", math.pi, 180.0),
    ("sin(b1)", math.pi / 2, 1.0),
    ("cos(b1)", 0.0, 1.0),
    ("tan(b1)", math.pi / 4, 1.0),
    ("asin(b1)", 1.0, math.pi / 2),
    ("acos(b1)", 1.0, 0.0),
    ("atan(b1)", 1.0, math.pi / 4),
])
def test_functions(text, value, expected):
    result = parse_expression(text).evaluate({1: np.array([value])})
    assert result[0] == pytest.approx(expected)

def test_division_by_zero_yields_non_finite():
    result = parse_expression("b1 / b2").evaluate({1: np.array([1.0, 0.0]), 2: np.array([0.0, 0.0])})

    assert np.isinf(result[0])
    assert np.isnan(result[1])

@pytest.mark.parametrize("text", [
    "b1 +",
    "(b1",
    "b1 b2",
    "foo + 1",
    "floor(b1)",
    "b0",
    "b1 % 2",
    "",
])
def test_invalid_expressions(text):
    with pytest.raises(ExpressionError):
        parse_expression(text)

def test_expression_error_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_expression("nope(b1)")

def test_missing_band_on_evaluate():
    expr = parse_expression("b1 + b2")
    with pytest.raises(ExpressionError, match="needs bands"):
        expr.evaluate({1: np.zeros(2)})

def test_glsl_generation():
    assert parse_expression("b1 ** 2").to_glsl() == "pow(b1_value, 2.0)"
    assert parse_expression("sqrt(b2) - 1").to_glsl() == "(sqrt(b2_value) - 1.0)"
    assert "log(b1_value)" in parse_expression("log10(b1)").to_glsl()
