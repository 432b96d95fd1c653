"""Trace language lexer with line/column tracking.

Newlines are significant: a statement ends at ``;`` or at the end of its
line. ``//`` and ``#`` start comments that run to the end of the line.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from borrowstack.errors import SourceLocation, syntax_error, TraceError


class TokenType(Enum):
    # Keywords
    LET = auto()
    MUT = auto()
    AS = auto()
    CONST = auto()

    # Literals
    INT_LIT = auto()

    # Identifier
    IDENT = auto()

    # Operators
    AMP = auto()
    STAR = auto()
    MINUS = auto()
    ASSIGN = auto()
    DOUBLE_COLON = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    COLON = auto()
    SEMICOLON = auto()

    # Special
    NEWLINE = auto()
    EOF = auto()


DIGITS = "0123456789"

KEYWORDS: dict[str, TokenType] = {
    "let": TokenType.LET,
    "mut": TokenType.MUT,
    "as": TokenType.AS,
    "const": TokenType.CONST,
}

_SINGLE: dict[str, TokenType] = {
    "&": TokenType.AMP,
    "*": TokenType.STAR,
    "-": TokenType.MINUS,
    "=": TokenType.ASSIGN,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ";": TokenType.SEMICOLON,
}


@dataclass
class Token:
    type: TokenType
    value: str
    location: SourceLocation

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.location})"


class Lexer:
    """Tokenizer for trace source."""

    def __init__(self, source: str, filename: str = "<trace>"):
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

    def _skip_blanks_and_comments(self) -> None:
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch in (" ", "\t", "\r"):
                self._advance()
            elif ch == "#" or (ch == "/" and self._peek_ahead() == "/"):
                while self.pos < len(self.source) and self.source[self.pos] != "\n":
                    self._advance()
            else:
                break

    def _read_number(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and self.source[self.pos] in DIGITS + "_":
            value += self._advance()
        return Token(TokenType.INT_LIT, value.replace("_", ""), loc)

    def _read_identifier(self) -> Token:
        loc = self._loc()
        value = ""
        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] == "_"):
            value += self._advance()
        token_type = KEYWORDS.get(value, TokenType.IDENT)
        return Token(token_type, value, loc)

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while self.pos < len(self.source):
            self._skip_blanks_and_comments()
            if self.pos >= len(self.source):
                break

            ch = self._peek()
            loc = self._loc()

            if ch == "\n":
                self._advance()
                tokens.append(Token(TokenType.NEWLINE, "\\n", loc))
            elif ch in DIGITS:
                tokens.append(self._read_number())
            elif ch.isalpha() or ch == "_":
                tokens.append(self._read_identifier())
            elif ch == ":":
                self._advance()
                if self._peek() == ":":
                    self._advance()
                    tokens.append(Token(TokenType.DOUBLE_COLON, "::", loc))
                else:
                    tokens.append(Token(TokenType.COLON, ":", loc))
            elif ch in _SINGLE:
                self._advance()
                tokens.append(Token(_SINGLE[ch], ch, loc))
            else:
                self._advance()
                raise TraceError(syntax_error(f"Unexpected character '{ch}'", loc))

        tokens.append(Token(TokenType.EOF, "", self._loc()))
        return tokens


def tokenize(source: str, filename: str = "<trace>") -> list[Token]:
    """Convenience function to tokenize trace source."""
    return Lexer(source, filename).tokenize()
