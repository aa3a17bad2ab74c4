"""Parser for spreadsheet-style source formulas.

Converts a formula such as ``ln(["206/238"]) * 2 + lambda238`` into an
expression tree using recursive descent.

Operator precedence (lowest to highest):
1. = <> < <= > >=
2. + -
3. * /
4. ^
5. unary -
6. function call, grouping, names, numbers

Names that are not plain identifiers are written as ``["name"]``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from ._errors import ArityMismatchError, FormulaSyntaxError, UnknownOperationError
from ._operations import default_catalog
from ._tree import ConstantNode, OperationNode, VariableNode

if TYPE_CHECKING:
    from ._operations import OperationCatalog
    from ._tree import ExpressionNode


class TokenType(Enum):
    NUMBER = auto()
    NAME = auto()
    QUOTED_NAME = auto()  # ["name"]
    OPERATOR = auto()
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    EOF = auto()


@dataclass(frozen=True, slots=True)
class Token:
    type: TokenType
    value: str
    position: int


# Order matters: longer operators before their prefixes.
_TOKEN_PATTERNS = [
    (re.compile(r"\s+"), None),
    (re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"), TokenType.NUMBER),
    (re.compile(r'\[\s*"((?:[^"\\]|\\.)*)"\s*\]'), TokenType.QUOTED_NAME),
    (re.compile(r"[A-Za-z_][A-Za-z0-9_]*"), TokenType.NAME),
    (re.compile(r"<=|>=|<>|[-+*/^<>=]"), TokenType.OPERATOR),
    (re.compile(r"\("), TokenType.LPAREN),
    (re.compile(r"\)"), TokenType.RPAREN),
    (re.compile(r","), TokenType.COMMA),
]

_COMPARISON = frozenset({"=", "<>", "<", "<=", ">", ">="})
_ADDITIVE = frozenset({"+", "-"})
_MULTIPLICATIVE = frozenset({"*", "/"})


def tokenize(source: str) -> list[Token]:
    """Split a formula into tokens, ending with an EOF token.

    Raises:
        FormulaSyntaxError: On a character that starts no token.

    """
    tokens: list[Token] = []
    position = 0
    while position < len(source):
        for pattern, token_type in _TOKEN_PATTERNS:
            match = pattern.match(source, position)
            if match is None:
                continue
            if token_type is TokenType.QUOTED_NAME:
                value = re.sub(r"\\(.)", r"\1", match.group(1))
                tokens.append(Token(token_type, value, position))
            elif token_type is not None:
                tokens.append(Token(token_type, match.group(0), position))
            position = match.end()
            break
        else:
            msg = f"Unexpected character '{source[position]}'"
            raise FormulaSyntaxError(msg, position)
    tokens.append(Token(TokenType.EOF, "", len(source)))
    return tokens


class Parser:
    """Recursive descent parser producing expression tree nodes.

    Usage:
        node = Parser("ln(x) / 2").parse()
    """

    def __init__(self, source: str, catalog: OperationCatalog | None = None) -> None:
        self.source = source
        self.catalog = catalog or default_catalog()
        self.tokens = tokenize(source)
        self.position = 0

    def parse(self) -> ExpressionNode:
        if self._current().type is TokenType.EOF:
            msg = "Empty formula"
            raise FormulaSyntaxError(msg, 0)

        node = self._parse_comparison()

        if self._current().type is not TokenType.EOF:
            msg = f"Unexpected token '{self._current().value}'"
            raise FormulaSyntaxError(msg, self._current().position)
        return node

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _current(self) -> Token:
        return self.tokens[self.position]

    def _advance(self) -> Token:
        token = self.tokens[self.position]
        if token.type is not TokenType.EOF:
            self.position += 1
        return token

    def _at_operator(self, symbols: frozenset[str]) -> bool:
        token = self._current()
        return token.type is TokenType.OPERATOR and token.value in symbols

    def _expect(self, token_type: TokenType, message: str) -> Token:
        if self._current().type is token_type:
            return self._advance()
        raise FormulaSyntaxError(message, self._current().position)

    def _binary(self, symbol: str, left: ExpressionNode, right: ExpressionNode) -> OperationNode:
        return OperationNode(self.catalog.get_infix(symbol), (left, right))

    # -------------------------------------------------------------------------
    # Grammar, lowest precedence first
    # -------------------------------------------------------------------------

    def _parse_comparison(self) -> ExpressionNode:
        left = self._parse_additive()
        while self._at_operator(_COMPARISON):
            symbol = self._advance().value
            left = self._binary(symbol, left, self._parse_additive())
        return left

    def _parse_additive(self) -> ExpressionNode:
        left = self._parse_multiplicative()
        while self._at_operator(_ADDITIVE):
            symbol = self._advance().value
            left = self._binary(symbol, left, self._parse_multiplicative())
        return left

    def _parse_multiplicative(self) -> ExpressionNode:
        left = self._parse_power()
        while self._at_operator(_MULTIPLICATIVE):
            symbol = self._advance().value
            left = self._binary(symbol, left, self._parse_power())
        return left

    def _parse_power(self) -> ExpressionNode:
        left = self._parse_unary()
        while self._at_operator(frozenset({"^"})):
            self._advance()
            left = self._binary("^", left, self._parse_unary())
        return left

    def _parse_unary(self) -> ExpressionNode:
        if self._at_operator(_ADDITIVE):
            symbol = self._advance().value
            operand = self._parse_unary()
            if symbol == "+":
                return operand
            if isinstance(operand, ConstantNode):
                return ConstantNode(-operand.value)
            return self._binary("*", ConstantNode(-1.0), operand)
        return self._parse_primary()

    def _parse_primary(self) -> ExpressionNode:
        token = self._current()

        if token.type is TokenType.NUMBER:
            self._advance()
            return ConstantNode(float(token.value))

        if token.type is TokenType.QUOTED_NAME:
            self._advance()
            return VariableNode(token.value)

        if token.type is TokenType.NAME:
            self._advance()
            if self._current().type is TokenType.LPAREN:
                return self._parse_call(token)
            return VariableNode(token.value)

        if token.type is TokenType.LPAREN:
            self._advance()
            node = self._parse_comparison()
            self._expect(TokenType.RPAREN, "Expected ')'")
            return node

        if token.type is TokenType.EOF:
            msg = "Unexpected end of formula"
            raise FormulaSyntaxError(msg, token.position)
        msg = f"Unexpected token '{token.value}'"
        raise FormulaSyntaxError(msg, token.position)

    def _parse_call(self, name_token: Token) -> ExpressionNode:
        self._expect(TokenType.LPAREN, "Expected '('")
        arguments: list[ExpressionNode] = []
        if self._current().type is not TokenType.RPAREN:
            arguments.append(self._parse_comparison())
            while self._current().type is TokenType.COMMA:
                self._advance()
                arguments.append(self._parse_comparison())
        self._expect(TokenType.RPAREN, f"Expected ')' after arguments of '{name_token.value}'")

        try:
            descriptor = self.catalog.get(name_token.value)
            return OperationNode(descriptor, tuple(arguments))
        except UnknownOperationError as e:
            msg = f"Unknown function '{name_token.value}'"
            raise FormulaSyntaxError(msg, name_token.position) from e
        except ArityMismatchError as e:
            raise FormulaSyntaxError(str(e), name_token.position) from e


def parse_formula(source: str, catalog: OperationCatalog | None = None) -> ExpressionNode:
    """Parse a source formula into an expression tree."""
    return Parser(source, catalog).parse()
