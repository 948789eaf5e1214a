"""Boolean condition language used by step conditions.

Grammar::

    expression := or_expr
    or_expr    := and_expr ("||" and_expr)*
    and_expr   := comparison ("&&" comparison)*
    comparison := unary (("<" | ">" | "<=" | ">=" | "==" | "!=") unary)?
    unary      := ("!" | "-") unary | primary
    primary    := NUMBER | STRING | VARIABLE | "true" | "false" | "null"
                | "(" expression ")"

Variables are written ``$name`` and may address nested mappings or
sequences with dotted segments (``$analysis.scores.0``). Input is tokenised
against this closed alphabet before parsing; anything else is rejected and
nothing is ever handed to ``eval``.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Deque, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import ConditionError

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 1000
MAX_NESTING_DEPTH = 32

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<variable>\$[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op><=|>=|==|!=|&&|\|\||<|>|!|-|\(|\))
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None}
_COMPARISONS = {"<", ">", "<=", ">=", "==", "!="}
_ESCAPE_RE = re.compile(r"\\(.)")


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    pos: int


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Variable:
    name: str
    path: Tuple[str, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, Variable, Unary, Binary]


def tokenize(expression: str) -> List[Token]:
    """Split ``expression`` into tokens, rejecting anything outside the grammar."""
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ConditionError(
            f"Expression longer than {MAX_EXPRESSION_LENGTH} characters"
        )
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise ConditionError(
                f"Invalid character {expression[pos]!r} at position {pos}"
            )
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "word" and text not in _KEYWORDS:
            raise ConditionError(f"Unknown identifier {text!r} at position {pos}")
        if kind != "ws":
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: Sequence[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise ConditionError("Empty expression")
        node = self._or()
        token = self._peek()
        if token is not None:
            raise ConditionError(
                f"Unexpected token {token.value!r} at position {token.pos}"
            )
        return node

    def _peek(self) -> Optional[Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _accept(self, *ops: str) -> Optional[Token]:
        token = self._peek()
        if token is not None and token.kind == "op" and token.value in ops:
            self._index += 1
            return token
        return None

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = Binary("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._comparison()
        while self._accept("&&"):
            node = Binary("&&", node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._unary()
        token = self._accept(*_COMPARISONS)
        if token is not None:
            node = Binary(token.value, node, self._unary())
            chained = self._peek()
            if chained is not None and chained.value in _COMPARISONS:
                raise ConditionError(
                    f"Chained comparison at position {chained.pos}; use && instead"
                )
        return node

    def _descend(self, token: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise ConditionError(
                f"Expression nested deeper than {MAX_NESTING_DEPTH} levels at position {token.pos}"
            )

    def _unary(self) -> Node:
        token = self._accept("!", "-")
        if token is not None:
            self._descend(token)
            node = Unary(token.value, self._unary())
            self._depth -= 1
            return node
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise ConditionError("Unexpected end of expression")
        self._index += 1
        if token.kind == "number":
            text = token.value
            return Literal(float(text) if "." in text else int(text))
        if token.kind == "string":
            return Literal(_ESCAPE_RE.sub(r"\1", token.value[1:-1]))
        if token.kind == "word":
            return Literal(_KEYWORDS[token.value])
        if token.kind == "variable":
            name, *path = token.value[1:].split(".")
            return Variable(name, tuple(path))
        if token.value == "(":
            self._descend(token)
            node = self._or()
            if not self._accept(")"):
                raise ConditionError(f"Unclosed parenthesis at position {token.pos}")
            self._depth -= 1
            return node
        raise ConditionError(f"Unexpected token {token.value!r} at position {token.pos}")


@lru_cache(maxsize=256)
def parse(expression: str) -> Node:
    """Parse ``expression`` into an AST, raising ``ConditionError`` if invalid."""
    return _Parser(tokenize(expression)).parse()


def _lookup(node: Variable, variables: Mapping[str, Any]) -> Any:
    value = variables.get(node.name)
    for segment in node.path:
        if isinstance(value, Mapping):
            value = value.get(segment)
        elif isinstance(value, (list, tuple)) and segment.isdigit():
            index = int(segment)
            value = value[index] if index < len(value) else None
        else:
            return None
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    comparable = (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )
    if not comparable:
        raise ConditionError(
            f"Cannot compare {type(left).__name__} {op} {type(right).__name__}"
        )
    if op == "<":
        return left < right
    if op == ">":
        return left > right
    if op == "<=":
        return left <= right
    return left >= right


def _eval(node: Node, variables: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Variable):
        return _lookup(node, variables)
    if isinstance(node, Unary):
        operand = _eval(node.operand, variables)
        if node.op == "!":
            return not operand
        if not _is_number(operand):
            raise ConditionError(f"Cannot negate {type(operand).__name__}")
        return -operand
    if node.op == "&&":
        return bool(_eval(node.left, variables)) and bool(_eval(node.right, variables))
    if node.op == "||":
        return bool(_eval(node.left, variables)) or bool(_eval(node.right, variables))
    return _compare(node.op, _eval(node.left, variables), _eval(node.right, variables))


class ExpressionEvaluator:
    """Evaluates condition expressions; never raises."""

    def __init__(self, max_diagnostics: int = 100) -> None:
        self.diagnostics: Deque[str] = deque(maxlen=max_diagnostics)

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> bool:
        """Return the truth value of ``expression``; ``False`` on any error."""
        try:
            return bool(_eval(parse(expression), variables))
        except ConditionError as e:
            self._record(expression, str(e))
        except (TypeError, ValueError, RecursionError) as e:
            self._record(expression, f"evaluation failed: {e}")
        return False

    def _record(self, expression: str, reason: str) -> None:
        message = f"Condition {expression!r} evaluated to false: {reason}"
        logger.warning(message)
        self.diagnostics.append(message)
