"""solhorn Lexer — Solidity-subset tokenizer with line/column tracking.

Produces a flat token stream. Comments (`//`, `/* */`, NatSpec) are dropped.
Type names such as `uint256` are plain identifiers; the resolver decides.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from solhorn.errors import SourceLocation, syntax_error, CompileError


class TokenType(Enum):
    # Keywords
    PRAGMA = auto()
    CONTRACT = auto()
    INTERFACE = auto()
    LIBRARY = auto()
    ABSTRACT = auto()
    IS = auto()
    FUNCTION = auto()
    CONSTRUCTOR = auto()
    RETURNS = auto()
    RETURN = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    DO = auto()
    FOR = auto()
    BREAK = auto()
    CONTINUE = auto()
    EMIT = auto()
    EVENT = auto()
    MAPPING = auto()
    TRUE = auto()
    FALSE = auto()
    DELETE = auto()
    MODIFIER = auto()
    IMPORT = auto()

    # Literals
    NUMBER_LIT = auto()
    HEX_LIT = auto()
    STRING_LIT = auto()

    # Identifier
    IDENT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    STAR_STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    INC = auto()
    DEC = auto()
    EQ = auto()
    NEQ = auto()
    GTE = auto()
    LTE = auto()
    GT = auto()
    LT = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    BIT_AND = auto()
    BIT_OR = auto()
    BIT_XOR = auto()
    BIT_NOT = auto()
    SHL = auto()
    SHR = auto()
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    MINUS_ASSIGN = auto()
    STAR_ASSIGN = auto()
    SLASH_ASSIGN = auto()
    PERCENT_ASSIGN = auto()
    FAT_ARROW = auto()
    QUESTION = auto()
    DOT = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COLON = auto()
    COMMA = auto()
    SEMICOLON = auto()

    # Special
    EOF = auto()


KEYWORDS: dict[str, TokenType] = {
    "pragma": TokenType.PRAGMA,
    "contract": TokenType.CONTRACT,
    "interface": TokenType.INTERFACE,
    "library": TokenType.LIBRARY,
    "abstract": TokenType.ABSTRACT,
    "is": TokenType.IS,
    "function": TokenType.FUNCTION,
    "constructor": TokenType.CONSTRUCTOR,
    "returns": TokenType.RETURNS,
    "return": TokenType.RETURN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "do": TokenType.DO,
    "for": TokenType.FOR,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "emit": TokenType.EMIT,
    "event": TokenType.EVENT,
    "mapping": TokenType.MAPPING,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "delete": TokenType.DELETE,
    "modifier": TokenType.MODIFIER,
    "import": TokenType.IMPORT,
}

# Longest operators first so that `>=` wins over `>`.
OPERATORS: list[tuple[str, TokenType]] = [
    ("**", TokenType.STAR_STAR),
    ("++", TokenType.INC),
    ("--", TokenType.DEC),
    ("+=", TokenType.PLUS_ASSIGN),
    ("-=", TokenType.MINUS_ASSIGN),
    ("*=", TokenType.STAR_ASSIGN),
    ("/=", TokenType.SLASH_ASSIGN),
    ("%=", TokenType.PERCENT_ASSIGN),
    ("==", TokenType.EQ),
    ("!=", TokenType.NEQ),
    (">=", TokenType.GTE),
    ("<=", TokenType.LTE),
    ("=>", TokenType.FAT_ARROW),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("<<", TokenType.SHL),
    (">>", TokenType.SHR),
    ("+", TokenType.PLUS),
    ("-", TokenType.MINUS),
    ("*", TokenType.STAR),
    ("/", TokenType.SLASH),
    ("%", TokenType.PERCENT),
    ("=", TokenType.ASSIGN),
    ("!", TokenType.NOT),
    (">", TokenType.GT),
    ("<", TokenType.LT),
    ("&", TokenType.BIT_AND),
    ("|", TokenType.BIT_OR),
    ("^", TokenType.BIT_XOR),
    ("~", TokenType.BIT_NOT),
    ("?", TokenType.QUESTION),
    (".", TokenType.DOT),
    ("{", TokenType.LBRACE),
    ("}", TokenType.RBRACE),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("[", TokenType.LBRACKET),
    ("]", TokenType.RBRACKET),
    (":", TokenType.COLON),
    (",", TokenType.COMMA),
    (";", TokenType.SEMICOLON),
]


@dataclass
class Token:
    type: TokenType
    value: str
    location: SourceLocation

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.location})"


class Lexer:
    """Tokenizer for Solidity source code."""

    def __init__(self, source: str, filename: str = "<stdin>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1

    def _loc(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.filename)

    def _peek(self) -> Optional[str]:
        if self.pos < len(self.source):
            return self.source[self.pos]
        return None

    def _peek_ahead(self, offset: int = 1) -> Optional[str]:
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return None

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace_and_comments(self) -> None:
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch in (" ", "\t", "\r", "\n"):
                self._advance()
            elif ch == "/" and self._peek_ahead() == "/":
                while self.pos < len(self.source) and self.source[self.pos] != "\n":
                    self._advance()
            elif ch == "/" and self._peek_ahead() == "*":
                loc = self._loc()
                self._advance()
                self._advance()
                while True:
                    if self.pos >= len(self.source):
                        raise CompileError(syntax_error("Unterminated comment", loc))
                    if self.source[self.pos] == "*" and self._peek_ahead() == "/":
                        self._advance()
                        self._advance()
                        break
                    self._advance()
            else:
                break

    def _read_string(self) -> Token:
        loc = self._loc()
        quote = self._advance()
        value = ""
        while self.pos < len(self.source):
            ch = self._advance()
            if ch == quote:
                return Token(TokenType.STRING_LIT, value, loc)
            if ch == "\n":
                break
            if ch == "\\" and self.pos < len(self.source):
                next_ch = self._advance()
                escape_map = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}
                value += escape_map.get(next_ch, next_ch)
            else:
                value += ch
        raise CompileError(syntax_error("Unterminated string literal", loc))

    def _read_number(self) -> Token:
        loc = self._loc()
        if self._peek() == "0" and self._peek_ahead() in ("x", "X"):
            self._advance()
            self._advance()
            digits = ""
            while self.pos < len(self.source) and (
                self.source[self.pos] in "0123456789abcdefABCDEF_"
            ):
                digits += self._advance()
            digits = digits.replace("_", "")
            if not digits:
                raise CompileError(syntax_error("Malformed hex literal", loc))
            return Token(TokenType.HEX_LIT, "0x" + digits, loc)

        value = ""
        while self.pos < len(self.source) and (
            self.source[self.pos].isdigit() or self.source[self.pos] == "_"
        ):
            value += self._advance()
        if self._peek() == "." and (self._peek_ahead() or "").isdigit():
            raise CompileError(syntax_error("Fractional literals are not supported", loc))
        if self._peek() in ("e", "E") and (self._peek_ahead() or "").isdigit():
            self._advance()
            exponent = ""
            while self.pos < len(self.source) and self.source[self.pos].isdigit():
                exponent += self._advance()
            return Token(TokenType.NUMBER_LIT, str(int(value.replace("_", "")) * 10 ** int(exponent)), loc)
        return Token(TokenType.NUMBER_LIT, value.replace("_", ""), loc)

    def _read_identifier(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and (
            self.source[self.pos].isalnum() or self.source[self.pos] in "_$"
        ):
            value += self._advance()
        token_type = KEYWORDS.get(value, TokenType.IDENT)
        return Token(token_type, value, loc)

    def _read_pragma_body(self) -> list[Token]:
        """Words up to the closing `;`, kept verbatim (`^0.8.0` is not a number)."""
        tokens: list[Token] = []
        while True:
            while self.pos < len(self.source) and self.source[self.pos] in " \t\r\n":
                self._advance()
            if self.pos >= len(self.source) or self.source[self.pos] == ";":
                return tokens
            loc = self._loc()
            word = ""
            while self.pos < len(self.source) and self.source[self.pos] not in " \t\r\n;":
                word += self._advance()
            tokens.append(Token(TokenType.IDENT, word, loc))

    def _read_operator(self) -> Token:
        loc = self._loc()
        for text, token_type in OPERATORS:
            if self.source.startswith(text, self.pos):
                for _ in text:
                    self._advance()
                return Token(token_type, text, loc)
        ch = self._advance()
        raise CompileError(syntax_error(f"Unexpected character '{ch}'", loc))

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while self.pos < len(self.source):
            self._skip_whitespace_and_comments()
            if self.pos >= len(self.source):
                break

            ch = self._peek()
            if ch in ('"', "'"):
                tokens.append(self._read_string())
            elif ch.isdigit():
                tokens.append(self._read_number())
            elif ch.isalpha() or ch in "_$":
                tokens.append(self._read_identifier())
                if tokens[-1].type == TokenType.PRAGMA:
                    tokens.extend(self._read_pragma_body())
            else:
                tokens.append(self._read_operator())

        tokens.append(Token(TokenType.EOF, "", self._loc()))
        return tokens


def tokenize(source: str, filename: str = "<stdin>") -> list[Token]:
    """Convenience function to tokenize Solidity source code."""
    return Lexer(source, filename).tokenize()
