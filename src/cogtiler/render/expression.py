# src/cogtiler/render/expression.py

"""
Band arithmetic expressions.

Expressions such as `(b4 - b3) / (b4 + b3)` or `sqrt(b1) * 2` are parsed
once into a small AST. The AST has a canonical text form used as a cache
key, and two code generators: numexpr source for CPU evaluation and GLSL
source for the fragment shader.

Grammar (lowest to highest precedence):
    expr     := term (('+' | '-') term)*
    term     := unary (('*' | '/') unary)*
    unary    := ('+' | '-') unary | power
    power    := primary ('**' unary)?
    primary  := NUMBER | BAND | FUNC '(' expr ')' | '(' expr ')'

Bands are written `b<N>` or `band<N>` with N 1-based.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Tuple, Union

import numexpr as ne
import numpy as np

from ..exceptions import ExpressionError

log = logging.getLogger(__name__)

__all__ = [
    "FUNCTIONS",
    "Number",
    "BandRef",
    "UnaryOp",
    "BinaryOp",
    "Call",
    "Expression",
    "parse_expression"
]

LN2 = 0.6931471805599453
LN10 = 2.302585092994046
DEG_TO_RAD = 0.017453292519943295
RAD_TO_DEG = 57.29577951308232

# name -> (numexpr template, GLSL template)
FUNCTIONS: Dict[str, Tuple[str, str]] = {
    "radians": ("({0} * %r)" % DEG_TO_RAD, "radians({0})"),
    "degrees": ("({0} * %r)" % RAD_TO_DEG, "degrees({0})"),
    "sin": ("sin({0})", "sin({0})"),
    "asin": ("arcsin({0})", "asin({0})"),
    "cos": ("cos({0})", "cos({0})"),
    "acos": ("arccos({0})", "acos({0})"),
    "tan": ("tan({0})", "tan({0})"),
    "atan": ("arctan({0})", "atan({0})"),
    "log2": ("(log({0}) / %r)" % LN2, "log2({0})"),
    "log": ("log({0})", "log({0})"),
    "log10": ("log10({0})", "(log({0}) / %r)" % LN10),
    "sqrt": ("sqrt({0})", "sqrt({0})"),
    "exp2": ("exp({0} * %r)" % LN2, "exp2({0})"),
    "exp": ("exp({0})", "exp({0})"),
    "abs": ("abs({0})", "abs({0})"),
    "sign": ("where({0} > 0, 1.0, where({0} < 0, -1.0, 0.0))", "sign({0})"),
}

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>\*\*|[-+*/()])"
    r")"
)
_BAND_RE = re.compile(r"^(?:b|band)(\d+)$")

def _glsl_float(value: float) -> str:
    text = repr(float(value))
    if text in ("inf", "-inf", "nan"):
        raise ExpressionError(f"Cannot express {text} in GLSL")
    if "." not in text and "e" not in text:
        text += ".0"
    return text

@dataclass(frozen=True)
class Number:
    value: float

    def canonical(self) -> str:
        return repr(self.value)

    def to_numexpr(self) -> str:
        return repr(self.value)

    def to_glsl(self) -> str:
        return _glsl_float(self.value)

    def bands(self) -> Tuple[int, ...]:
        return ()

@dataclass(frozen=True)
class BandRef:
    index: int

    def canonical(self) -> str:
        return f"b{self.index}"

    def to_numexpr(self) -> str:
        return f"b{self.index}"

    def to_glsl(self) -> str:
        return f"b{self.index}_value"

    def bands(self) -> Tuple[int, ...]:
        return (self.index,)

@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"

    def canonical(self) -> str:
        return f"({self.op}{self.operand.canonical()})"

    def to_numexpr(self) -> str:
        return f"({self.op}{self.operand.to_numexpr()})"

    def to_glsl(self) -> str:
        return f"({self.op}{self.operand.to_glsl()})"

    def bands(self) -> Tuple[int, ...]:
        return self.operand.bands()

@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"

    def canonical(self) -> str:
        return f"({self.left.canonical()} {self.op} {self.right.canonical()})"

    def to_numexpr(self) -> str:
        return f"({self.left.to_numexpr()} {self.op} {self.right.to_numexpr()})"

    def to_glsl(self) -> str:
        if self.op == "**":
            return f"pow({self.left.to_glsl()}, {self.right.to_glsl()})"
        return f"({self.left.to_glsl()} {self.op} {self.right.to_glsl()})"

    def bands(self) -> Tuple[int, ...]:
        return self.left.bands() + self.right.bands()

@dataclass(frozen=True)
class Call:
    name: str
    arg: "Node"

    def canonical(self) -> str:
        return f"{self.name}({self.arg.canonical()})"

    def to_numexpr(self) -> str:
        return FUNCTIONS[self.name][0].format(self.arg.to_numexpr())

    def to_glsl(self) -> str:
        return FUNCTIONS[self.name][1].format(self.arg.to_glsl())

    def bands(self) -> Tuple[int, ...]:
        return self.arg.bands()

Node = Union[Number, BandRef, UnaryOp, BinaryOp, Call]

def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character {text[pos:].strip()[:1]!r} at position {pos} in {text!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens

class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def _peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else (None, None)

    def _next(self):
        token = self._peek()
        self.pos += 1
        return token

    def _expect_op(self, op: str) -> None:
        kind, value = self._next()
        if kind != "op" or value != op:
            raise ExpressionError(f"Expected {op!r} but found {value!r} in {self.text!r}")

    def parse(self) -> Node:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self._expr()
        if self.pos != len(self.tokens):
            raise ExpressionError(f"Unexpected token {self._peek()[1]!r} in {self.text!r}")
        return node

    def _expr(self) -> Node:
        node = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            op = self._next()[1]
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._peek() in (("op", "*"), ("op", "/")):
            op = self._next()[1]
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._peek() in (("op", "+"), ("op", "-")):
            op = self._next()[1]
            return UnaryOp(op, self._unary())
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._peek() == ("op", "**"):
            self._next()
            return BinaryOp("**", base, self._unary())
        return base

    def _primary(self) -> Node:
        kind, value = self._next()
        if kind == "number":
            return Number(float(value))
        if kind == "name":
            band = _BAND_RE.match(value)
            if band:
                index = int(band.group(1))
                if index < 1:
                    raise ExpressionError(f"Band indices start at 1, got {value!r}")
                return BandRef(index)
            if value in FUNCTIONS:
                self._expect_op("(")
                arg = self._expr()
                self._expect_op(")")
                return Call(value, arg)
            raise ExpressionError(f"Unknown identifier {value!r} in {self.text!r}")
        if (kind, value) == ("op", "("):
            node = self._expr()
            self._expect_op(")")
            return node
        if kind is None:
            raise ExpressionError(f"Unexpected end of expression {self.text!r}")
        raise ExpressionError(f"Unexpected token {value!r} in {self.text!r}")

class Expression:
    """
    A parsed band expression.

    Attributes:
        source: Expression text as written.
        ast: Root node.
        canonical: Fully parenthesized normal form, equal for equivalent
            spellings ("b1+2" and "( b1 + 2 )").
        bands: Sorted distinct band indices referenced.
    """

    def __init__(self, source: str, ast: Node):
        self.source = source
        self.ast = ast
        self.canonical = ast.canonical()
        self.bands = tuple(sorted(set(ast.bands())))
        self._numexpr = ast.to_numexpr()

    def __repr__(self) -> str:
        return f"Expression({self.canonical!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Expression) and other.canonical == self.canonical

    def __hash__(self) -> int:
        return hash(self.canonical)

    def to_numexpr(self) -> str:
        return self._numexpr

    def to_glsl(self) -> str:
        return self.ast.to_glsl()

    def evaluate(self, arrays: Dict[int, np.ndarray]) -> np.ndarray:
        """
        Evaluate over per-band arrays of identical shape.

        Args:
            arrays: 1-based band index -> samples.

        Returns:
            np.ndarray: float64 result with the arrays' shape.
        """
        missing = [b for b in self.bands if b not in arrays]
        if missing:
            raise ExpressionError(f"Expression {self.source!r} needs bands {missing}")

        local_dict = {f"b{b}": np.asarray(arrays[b], dtype=np.float64) for b in self.bands}
        shape = next(iter(arrays.values())).shape if arrays else ()
        with np.errstate(all="ignore"):
            result = ne.evaluate(self._numexpr, local_dict=local_dict, global_dict={})
        return np.broadcast_to(np.asarray(result, dtype=np.float64), shape).copy()

@lru_cache(maxsize=128)
def parse_expression(text: str) -> Expression:
    """
    Parse an expression string.

    Raises:
        ExpressionError: On syntax errors, unknown identifiers or functions.
    """
    if not isinstance(text, str):
        raise ExpressionError(f"Expression must be a string, got {type(text).__name__}")
    ast = _Parser(text).parse()
    log.debug(f"Parsed expression {text!r} -> {ast.canonical()}")
    return Expression(text, ast)
