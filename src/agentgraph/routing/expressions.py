"""
Safe expression language for custom routing conditions.

Custom-expression conditions are written in a small JavaScript-like grammar
and interpreted here instead of being executed as host code. Only names from
the evaluation namespace (``state``, ``artifacts``, ``currentNode``) can be
referenced, and only a fixed set of read-only methods can be called.

Supported syntax:
- Literals: numbers, 'single' or "double" quoted strings, true, false, null, undefined
- Member access: ``state.score``, ``state['review-status']``, ``artifacts.length``
- Methods: ``includes``, ``startsWith``, ``endsWith``
- Unary ``!`` and ``-``, arithmetic ``+ - * / %``
- Comparison ``< <= > >=``, equality ``== != === !==``
- Logical ``&&`` and ``||`` with short-circuit evaluation
- Parentheses

Values follow JavaScript coercion rules (truthiness, ``Number()``,
``String()``, loose and strict equality) so that conditions written for the
workflow editor behave the same here.
"""

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ExpressionEvaluationError, ExpressionSyntaxError

logger = logging.getLogger(__name__)


class _Undefined:
    """Singleton standing in for JavaScript ``undefined``."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

ALLOWED_METHODS = frozenset({"includes", "startsWith", "endsWith"})

_KEYWORDS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": UNDEFINED,
}

# Longest operators first so '===' wins over '=='
_OPERATORS = (
    "===", "!==", "==", "!=", "<=", ">=", "&&", "||",
    "<", ">", "!", "+", "-", "*", "/", "%",
)
_PUNCTUATION = ".[](),"

_NUMBER_RE = re.compile(r"(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


# =============================================================================
# JAVASCRIPT VALUE SEMANTICS
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nullish(value: Any) -> bool:
    """True for null (None) and undefined."""
    return value is None or value is UNDEFINED


def to_number(value: Any) -> float:
    """Coerce a value the way JavaScript ``Number(value)`` does."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    if value is None:
        return 0.0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        lowered = text.lower()
        if lowered.startswith(("0x", "0o", "0b")):
            try:
                return float(int(text, 0))
            except ValueError:
                return math.nan
        if not re.fullmatch(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", text):
            return math.nan
        return float(text)
    if isinstance(value, (list, tuple)):
        return to_number(to_js_string(value))
    return math.nan


def to_js_string(value: Any) -> str:
    """Coerce a value the way JavaScript ``String(value)`` does."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        if isinstance(value, float):
            if math.isnan(value):
                return "NaN"
            if math.isinf(value):
                return "Infinity" if value > 0 else "-Infinity"
            if value.is_integer():
                return str(int(value))
        return str(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if is_nullish(item) else to_js_string(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness."""
    if is_nullish(value):
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def strict_equals(left: Any, right: Any) -> bool:
    """JavaScript ``===``: no coercion, booleans are not numbers."""
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, bool) and isinstance(right, bool):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None or right is None or left is UNDEFINED or right is UNDEFINED:
        return left is right
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return type(left) is type(right) and left == right


def loose_equals(left: Any, right: Any) -> bool:
    """JavaScript ``==``."""
    if is_nullish(left) or is_nullish(right):
        return is_nullish(left) and is_nullish(right)
    if isinstance(left, bool):
        return loose_equals(to_number(left), right)
    if isinstance(right, bool):
        return loose_equals(left, to_number(right))
    if _is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and _is_number(right):
        return to_number(left) == right
    if isinstance(left, (dict, list)) and not isinstance(right, (dict, list)):
        return loose_equals(to_js_string(left), right)
    if isinstance(right, (dict, list)) and not isinstance(left, (dict, list)):
        return loose_equals(left, to_js_string(right))
    return strict_equals(left, right)


def _js_compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _js_divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def _js_modulo(left: float, right: float) -> float:
    if right == 0 or math.isinf(left) or math.isnan(left) or math.isnan(right):
        return math.nan
    if math.isinf(right):
        return left
    return math.fmod(left, right)


def _normalize_number(value: float) -> Any:
    """Keep integral results as ints so they print and compare cleanly."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# =============================================================================
# TOKENIZER
# =============================================================================

@dataclass(frozen=True)
class Token:
    kind: str  # number, string, ident, op, punct, eof
    value: Any
    position: int


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens."""
    tokens: List[Token] = []
    index = 0
    length = len(source)

    while index < length:
        char = source[index]

        if char.isspace():
            index += 1
            continue

        if char.isdigit() or (char == "." and index + 1 < length and source[index + 1].isdigit()):
            match = _NUMBER_RE.match(source, index)
            text = match.group(0)
            number = float(text)
            tokens.append(Token("number", _normalize_number(number), index))
            index = match.end()
            continue

        if char in ("'", '"'):
            value, index = _read_string(source, index)
            tokens.append(Token("string", value, index))
            continue

        match = _IDENT_RE.match(source, index)
        if match:
            tokens.append(Token("ident", match.group(0), index))
            index = match.end()
            continue

        for op in _OPERATORS:
            if source.startswith(op, index):
                tokens.append(Token("op", op, index))
                index += len(op)
                break
        else:
            if char in _PUNCTUATION:
                tokens.append(Token("punct", char, index))
                index += 1
            else:
                raise ExpressionSyntaxError(
                    f"Unexpected character '{char}' at position {index}",
                    expression=source,
                    position=index,
                )

    tokens.append(Token("eof", None, length))
    return tokens


def _read_string(source: str, start: int) -> Tuple[str, int]:
    quote = source[start]
    chars: List[str] = []
    index = start + 1
    while index < len(source):
        char = source[index]
        if char == "\\" and index + 1 < len(source):
            escaped = source[index + 1]
            chars.append(_ESCAPES.get(escaped, escaped))
            index += 2
            continue
        if char == quote:
            return "".join(chars), index + 1
        chars.append(char)
        index += 1
    raise ExpressionSyntaxError(
        f"Unterminated string starting at position {start}",
        expression=source,
        position=start,
    )


# =============================================================================
# SYNTAX TREE
# =============================================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class Member:
    target: Any
    key: Any  # str for dotted access, node for computed access
    computed: bool = False


@dataclass(frozen=True)
class MethodCall:
    target: Any
    method: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    op: str
    left: Any
    right: Any


class _Parser:
    """Recursive-descent parser, one method per precedence level."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    def parse(self):
        if self._peek().kind == "eof":
            raise self._error("Empty expression")
        node = self._parse_or()
        token = self._peek()
        if token.kind != "eof":
            raise self._error(f"Unexpected token '{token.value}'", token)
        return node

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "eof":
            self.index += 1
        return token

    def _match(self, kind: str, *values: str) -> Optional[Token]:
        token = self._peek()
        if token.kind == kind and (not values or token.value in values):
            return self._advance()
        return None

    def _expect(self, kind: str, value: str) -> Token:
        token = self._match(kind, value)
        if token is None:
            found = self._peek()
            found_text = "end of expression" if found.kind == "eof" else f"'{found.value}'"
            raise self._error(f"Expected '{value}' but found {found_text}", found)
        return token

    def _error(self, message: str, token: Optional[Token] = None) -> ExpressionSyntaxError:
        position = (token or self._peek()).position
        return ExpressionSyntaxError(message, expression=self.source, position=position)

    def _parse_or(self):
        node = self._parse_and()
        while self._match("op", "||"):
            node = Logical("||", node, self._parse_and())
        return node

    def _parse_and(self):
        node = self._parse_equality()
        while self._match("op", "&&"):
            node = Logical("&&", node, self._parse_equality())
        return node

    def _parse_equality(self):
        node = self._parse_relational()
        while True:
            token = self._match("op", "==", "!=", "===", "!==")
            if token is None:
                return node
            node = Binary(token.value, node, self._parse_relational())

    def _parse_relational(self):
        node = self._parse_additive()
        while True:
            token = self._match("op", "<", "<=", ">", ">=")
            if token is None:
                return node
            node = Binary(token.value, node, self._parse_additive())

    def _parse_additive(self):
        node = self._parse_multiplicative()
        while True:
            token = self._match("op", "+", "-")
            if token is None:
                return node
            node = Binary(token.value, node, self._parse_multiplicative())

    def _parse_multiplicative(self):
        node = self._parse_unary()
        while True:
            token = self._match("op", "*", "/", "%")
            if token is None:
                return node
            node = Binary(token.value, node, self._parse_unary())

    def _parse_unary(self):
        token = self._match("op", "!", "-")
        if token is not None:
            return Unary(token.value, self._parse_unary())
        return self._parse_postfix()

    def _parse_postfix(self):
        node = self._parse_primary()
        while True:
            if self._match("punct", "."):
                name_token = self._peek()
                if name_token.kind != "ident":
                    raise self._error("Expected property name after '.'", name_token)
                self._advance()
                if self._match("punct", "("):
                    if name_token.value not in ALLOWED_METHODS:
                        raise self._error(f"Unsupported method '{name_token.value}'", name_token)
                    node = MethodCall(node, name_token.value, self._parse_arguments())
                else:
                    node = Member(node, name_token.value)
            elif self._match("punct", "["):
                key = self._parse_or()
                self._expect("punct", "]")
                node = Member(node, key, computed=True)
            elif self._peek().kind == "punct" and self._peek().value == "(":
                raise self._error("Only whitelisted methods can be called")
            else:
                return node

    def _parse_arguments(self) -> Tuple[Any, ...]:
        args = []
        if self._match("punct", ")"):
            return tuple(args)
        while True:
            args.append(self._parse_or())
            if self._match("punct", ")"):
                return tuple(args)
            self._expect("punct", ",")

    def _parse_primary(self):
        token = self._peek()
        if token.kind in ("number", "string"):
            self._advance()
            return Literal(token.value)
        if token.kind == "ident":
            self._advance()
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return Identifier(token.value)
        if self._match("punct", "("):
            node = self._parse_or()
            self._expect("punct", ")")
            return node
        if token.kind == "eof":
            raise self._error("Unexpected end of expression", token)
        raise self._error(f"Unexpected token '{token.value}'", token)


# =============================================================================
# INTERPRETER
# =============================================================================

class Expression:
    """A parsed expression that can be evaluated repeatedly."""

    def __init__(self, source: str, tree: Any):
        self.source = source
        self.tree = tree

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def evaluate(self, namespace: Dict[str, Any]) -> Any:
        """
        Evaluate against a namespace of top-level names.

        Raises:
            ExpressionEvaluationError: On unknown names or invalid operations
        """
        return self._eval(self.tree, namespace)

    def evaluate_bool(self, namespace: Dict[str, Any]) -> bool:
        return is_truthy(self.evaluate(namespace))

    def _fail(self, message: str) -> ExpressionEvaluationError:
        return ExpressionEvaluationError(message, expression=self.source)

    def _eval(self, node: Any, namespace: Dict[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            if node.name not in namespace:
                raise self._fail(f"{node.name} is not defined")
            return namespace[node.name]

        if isinstance(node, Member):
            target = self._eval(node.target, namespace)
            key = self._eval(node.key, namespace) if node.computed else node.key
            return self._get_member(target, key)

        if isinstance(node, MethodCall):
            target = self._eval(node.target, namespace)
            args = [self._eval(arg, namespace) for arg in node.args]
            return self._call_method(target, node.method, args)

        if isinstance(node, Unary):
            operand = self._eval(node.operand, namespace)
            if node.op == "!":
                return not is_truthy(operand)
            return _normalize_number(-to_number(operand))

        if isinstance(node, Logical):
            left = self._eval(node.left, namespace)
            if node.op == "&&":
                return self._eval(node.right, namespace) if is_truthy(left) else left
            return left if is_truthy(left) else self._eval(node.right, namespace)

        if isinstance(node, Binary):
            left = self._eval(node.left, namespace)
            right = self._eval(node.right, namespace)
            return self._binary(node.op, left, right)

        raise self._fail(f"Unsupported expression node {type(node).__name__}")

    def _get_member(self, target: Any, key: Any) -> Any:
        if is_nullish(target):
            raise self._fail(
                f"Cannot read properties of {to_js_string(target)} (reading '{to_js_string(key)}')"
            )
        if isinstance(target, dict):
            return target.get(to_js_string(key), UNDEFINED)
        if isinstance(target, (list, tuple, str)):
            if key == "length":
                return len(target)
            if _is_number(key) or isinstance(key, str):
                number = to_number(key)
                if not math.isnan(number) and number.is_integer() and 0 <= number < len(target):
                    return target[int(number)]
            return UNDEFINED
        return UNDEFINED

    def _call_method(self, target: Any, method: str, args: List[Any]) -> Any:
        if is_nullish(target):
            raise self._fail(
                f"Cannot read properties of {to_js_string(target)} (reading '{method}')"
            )
        argument = args[0] if args else UNDEFINED
        if method == "includes":
            if isinstance(target, (list, tuple)):
                return any(strict_equals(item, argument) for item in target)
            if isinstance(target, str):
                return to_js_string(argument) in target
        elif isinstance(target, str):
            if method == "startsWith":
                return target.startswith(to_js_string(argument))
            if method == "endsWith":
                return target.endswith(to_js_string(argument))
        raise self._fail(f"{method} is not a function on {type(target).__name__}")

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op in ("<", "<=", ">", ">="):
            return _js_compare(op, left, right)
        if op == "+":
            if isinstance(left, str) or isinstance(right, str):
                return to_js_string(left) + to_js_string(right)
            return _normalize_number(to_number(left) + to_number(right))

        a, b = to_number(left), to_number(right)
        if op == "-":
            return _normalize_number(a - b)
        if op == "*":
            return _normalize_number(a * b)
        if op == "/":
            return _normalize_number(_js_divide(a, b))
        return _normalize_number(_js_modulo(a, b))


@lru_cache(maxsize=256)
def parse_expression(source: str) -> Expression:
    """
    Parse an expression string.

    Args:
        source: Expression text

    Returns:
        Parsed, reusable Expression

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression
    """
    if not isinstance(source, str):
        raise ExpressionSyntaxError(
            f"Expression must be a string, got {type(source).__name__}",
            expression=str(source),
        )
    return Expression(source, _Parser(source).parse())


def check_expression_syntax(source: str) -> Optional[str]:
    """Return a syntax error message, or None when the expression parses."""
    try:
        parse_expression(source)
    except ExpressionSyntaxError as e:
        return e.message
    return None


def evaluate_expression(source: str, namespace: Dict[str, Any]) -> bool:
    """Parse and evaluate an expression, returning its truthiness."""
    return parse_expression(source).evaluate_bool(namespace)
