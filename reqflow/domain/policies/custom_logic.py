"""CustomLogicPolicy — bounded boolean predicates over request attributes.

Expressions are compiled into a small AST and interpreted by a tree walker.
Nothing is ever handed to ``eval``.

Grammar::

    expr       := or_expr
    or_expr    := and_expr (("or" | "||") and_expr)*
    and_expr   := not_expr (("and" | "&&") not_expr)*
    not_expr   := ("not" | "!") not_expr | comparison
    comparison := operand (("==" | "!=" | "<" | "<=" | ">" | ">=" | "in") operand)?
    operand    := literal | list | attribute | "(" expr ")"
    attribute  := "priority" | "form_data" ("." name)+

Example: ``priority >= 'high' and form_data.amount > 500``
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any

from reqflow.domain.errors import CustomLogicError
from reqflow.domain.value_objects.enums import RequestPriority, UserRole

_TOKEN_RE = re.compile(
    r"""
    (?P<NUMBER>\d+(?:\.\d+)?)
  | (?P<STRING>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<OP>==|!=|<=|>=|&&|\|\||[<>!()\[\],\-])
  | (?P<NAME>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<SKIP>\s+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

_COMPARISON_OPS = {"==", "!=", "<", "<=", ">", ">=", "in"}
_KEYWORD_LITERALS = {"true": True, "false": False, "null": None}


# ─── AST ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class ListLiteral:
    items: tuple[Any, ...]


@dataclass(frozen=True)
class Attribute:
    path: tuple[str, ...]


@dataclass(frozen=True)
class Not:
    operand: Node


@dataclass(frozen=True)
class BoolOp:
    op: str  # "and" | "or"
    operands: tuple[Node, ...]


@dataclass(frozen=True)
class Compare:
    op: str
    left: Node
    right: Node


Node = Literal | ListLiteral | Attribute | Not | BoolOp | Compare


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str


# ─── Parsing ────────────────────────────────────────────────────────


def _tokenize(expr: str) -> list[_Token]:
    tokens: list[_Token] = []
    for match in _TOKEN_RE.finditer(expr):
        kind = match.lastgroup
        text = match.group()
        if kind == "SKIP":
            continue
        if kind == "MISMATCH":
            raise CustomLogicError(f"Unexpected character {text!r} at {match.start()}")
        if kind == "NAME" and text.lower() in ("and", "or", "not", "in"):
            kind = "OP"
            text = text.lower()
        tokens.append(_Token(kind, text))
    return tokens


class _Parser:
    def __init__(self, tokens: list[_Token], max_nodes: int, max_depth: int):
        self._tokens = tokens
        self._pos = 0
        self._nodes = 0
        self._max_nodes = max_nodes
        self._depth = 0
        self._max_depth = max_depth

    def parse(self) -> Node:
        if not self._tokens:
            raise CustomLogicError("Empty expression")
        node = self._or()
        if self._pos != len(self._tokens):
            raise CustomLogicError(f"Unexpected token {self._peek().text!r}")
        return node

    def _peek(self) -> _Token | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> _Token:
        tok = self._peek()
        if tok is None:
            raise CustomLogicError("Unexpected end of expression")
        self._pos += 1
        return tok

    def _accept_op(self, *ops: str) -> str | None:
        tok = self._peek()
        if tok is not None and tok.kind == "OP" and tok.text in ops:
            self._pos += 1
            return tok.text
        return None

    def _expect_op(self, op: str) -> None:
        if self._accept_op(op) is None:
            tok = self._peek()
            raise CustomLogicError(f"Expected {op!r}, got {tok.text if tok else 'end'!r}")

    def _descend(self) -> None:
        # Parentheses and "not" recurse without necessarily adding nodes
        self._depth += 1
        if self._depth > self._max_depth:
            raise CustomLogicError("Expression nested too deeply")

    def _node(self, node: Node) -> Node:
        self._nodes += 1
        if self._nodes > self._max_nodes:
            raise CustomLogicError("Expression is too complex")
        return node

    def _or(self) -> Node:
        operands = [self._and()]
        while self._accept_op("or", "||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else self._node(BoolOp("or", tuple(operands)))

    def _and(self) -> Node:
        operands = [self._not()]
        while self._accept_op("and", "&&"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else self._node(BoolOp("and", tuple(operands)))

    def _not(self) -> Node:
        if self._accept_op("not", "!"):
            self._descend()
            operand = self._not()
            self._depth -= 1
            return self._node(Not(operand))
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._operand()
        tok = self._peek()
        if tok is not None and tok.kind == "OP" and tok.text in _COMPARISON_OPS:
            self._pos += 1
            right = self._operand()
            return self._node(Compare(tok.text, left, right))
        return left

    def _operand(self) -> Node:
        if self._accept_op("("):
            self._descend()
            node = self._or()
            self._expect_op(")")
            self._depth -= 1
            return node
        if self._accept_op("["):
            items: list[Any] = []
            if not self._accept_op("]"):
                items.append(self._scalar())
                while self._accept_op(","):
                    items.append(self._scalar())
                self._expect_op("]")
            return self._node(ListLiteral(tuple(items)))
        tok = self._peek()
        if tok is not None and tok.kind == "NAME" and tok.text.lower() not in _KEYWORD_LITERALS:
            self._pos += 1
            return self._node(_attribute(tok.text))
        return self._node(Literal(self._scalar()))

    def _scalar(self) -> Any:
        negative = self._accept_op("-") is not None
        tok = self._next()
        if tok.kind == "NUMBER":
            value = float(tok.text) if "." in tok.text else int(tok.text)
            return -value if negative else value
        if negative:
            raise CustomLogicError("'-' must precede a number")
        if tok.kind == "STRING":
            return re.sub(r"\\(.)", r"\1", tok.text[1:-1])
        if tok.kind == "NAME" and tok.text.lower() in _KEYWORD_LITERALS:
            return _KEYWORD_LITERALS[tok.text.lower()]
        raise CustomLogicError(f"Expected a value, got {tok.text!r}")


def _attribute(name: str) -> Attribute:
    path = tuple(name.split("."))
    if path == ("priority",):
        return Attribute(path)
    if path[0] == "form_data" and len(path) > 1:
        return Attribute(path)
    raise CustomLogicError(f"Unknown attribute {name!r}")


# ─── Evaluation ─────────────────────────────────────────────────────


def _priority_rank(value: Any) -> int | None:
    if isinstance(value, RequestPriority):
        return value.rank
    if isinstance(value, str):
        try:
            return RequestPriority(value.lower()).rank
        except ValueError:
            return None
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, RequestPriority) else value


def _equals(left: Any, right: Any) -> bool:
    left, right = _plain(left), _plain(right)
    if left == right:
        return True
    a, b = _as_number(left), _as_number(right)
    return a is not None and b is not None and a == b


def _order(op: str, left: Any, right: Any, by_priority: bool) -> bool:
    if by_priority:
        a, b = _priority_rank(left), _priority_rank(right)
    else:
        a, b = _as_number(left), _as_number(right)
    if a is None or b is None:
        return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


class _Run:
    """One evaluation with its own step and time budget."""

    def __init__(self, attributes: dict[str, Any], max_steps: int, deadline: float):
        self._attrs = attributes
        self._steps = 0
        self._max_steps = max_steps
        self._deadline = deadline

    def eval(self, node: Node) -> Any:
        self._steps += 1
        if self._steps > self._max_steps:
            raise CustomLogicError("Evaluation step budget exceeded")
        if time.monotonic() > self._deadline:
            raise CustomLogicError("Evaluation time budget exceeded")

        if isinstance(node, Literal):
            return node.value
        if isinstance(node, ListLiteral):
            return list(node.items)
        if isinstance(node, Attribute):
            return self._resolve(node.path)
        if isinstance(node, Not):
            return not self.eval(node.operand)
        if isinstance(node, BoolOp):
            if node.op == "and":
                return all(self.eval(operand) for operand in node.operands)
            return any(self.eval(operand) for operand in node.operands)
        if isinstance(node, Compare):
            return self._compare(node)
        raise CustomLogicError(f"Unsupported node {type(node).__name__}")

    def _resolve(self, path: tuple[str, ...]) -> Any:
        value: Any = self._attrs
        for part in path:
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value

    def _compare(self, node: Compare) -> bool:
        left = self.eval(node.left)
        right = self.eval(node.right)
        if node.op == "==":
            return _equals(left, right)
        if node.op == "!=":
            return not _equals(left, right)
        if node.op == "in":
            if isinstance(right, list):
                return any(_equals(left, item) for item in right)
            if isinstance(right, str) and isinstance(left, str):
                return left in right
            return False
        by_priority = _is_priority(node.left) or _is_priority(node.right)
        return _order(node.op, left, right, by_priority)


def _is_priority(node: Node) -> bool:
    return isinstance(node, Attribute) and node.path == ("priority",)


def _walk(node: Node):
    yield node
    if isinstance(node, Not):
        yield from _walk(node.operand)
    elif isinstance(node, BoolOp):
        for operand in node.operands:
            yield from _walk(operand)
    elif isinstance(node, Compare):
        yield from _walk(node.left)
        yield from _walk(node.right)


class CustomLogicEvaluator:
    """Compiles and evaluates custom rule predicates under hard budgets."""

    def __init__(
        self,
        max_length: int = 2000,
        max_steps: int = 500,
        timeout_ms: int = 50,
        max_depth: int = 32,
    ):
        self._max_length = max_length
        self._max_steps = max_steps
        self._max_depth = max_depth
        self._timeout = timeout_ms / 1000.0
        self._cache: dict[str, Node] = {}

    def compile(self, expr: str) -> Node:
        if expr in self._cache:
            return self._cache[expr]
        if len(expr) > self._max_length:
            raise CustomLogicError(f"Expression longer than {self._max_length} characters")
        try:
            node = _Parser(_tokenize(expr), self._max_steps, self._max_depth).parse()
        except RecursionError:
            raise CustomLogicError("Expression nested too deeply") from None
        self._cache[expr] = node
        return node

    def evaluate(self, expr: str, attributes: dict[str, Any]) -> bool:
        """Evaluate *expr* against ``{priority, form_data}``.

        Raises:
            CustomLogicError: unparseable expression or exhausted budget.
        """
        node = self.compile(expr)
        run = _Run(attributes, self._max_steps, time.monotonic() + self._timeout)
        try:
            return bool(run.eval(node))
        except RecursionError:
            raise CustomLogicError("Expression nested too deeply") from None

    def referenced_roles(self, expr: str) -> list[str]:
        """Org role names that appear as string literals in *expr*."""
        known = {role.value for role in UserRole}
        roles: list[str] = []
        for node in _walk(self.compile(expr)):
            values: tuple[Any, ...] = ()
            if isinstance(node, Literal):
                values = (node.value,)
            elif isinstance(node, ListLiteral):
                values = node.items
            for value in values:
                if isinstance(value, str) and value in known and value not in roles:
                    roles.append(value)
        return roles
