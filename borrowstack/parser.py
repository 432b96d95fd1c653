"""Recursive-descent parser for the trace language.

    let x = 2;                  declare (immutable)
    let mut x = 2;              declare (mutable)
    let x: Cell = 2;            declare (interior-mutable)
    let x = Cell::new(2);       declare (interior-mutable)
    let r = &x;                 shared borrow
    let m = &mut x;             unique borrow
    let p = m as *const i32;    reborrow as const raw pointer
    let q = p as *mut i32;      reborrow as mut raw pointer
    let i = q as usize;         cast to integer (erases provenance)
    let v = *p;                 read
    *p = 5;                     write
    x = 5;                      write through the variable itself
    opaque(p);                  external call

Casts chain (``&mut x as *const i32 as *mut i32``); every link becomes its
own operation, with intermediate results bound to temporaries.
"""

from __future__ import annotations

from typing import Optional

from borrowstack.errors import SourceLocation, TraceError, syntax_error
from borrowstack.lexer import Token, TokenType, tokenize
from borrowstack.ops import (
    Program, Declare, Borrow, Reborrow, CastToInteger, Read, Write, ExternalCall,
)
from borrowstack.permissions import BorrowKind

CELL_TYPES = {"Cell", "UnsafeCell", "RefCell"}
INT_TYPES = {
    "usize", "isize",
    "u8", "u16", "u32", "u64", "u128",
    "i8", "i16", "i32", "i64", "i128",
}

_TERMINATORS = (TokenType.SEMICOLON, TokenType.NEWLINE, TokenType.EOF)


class Parser:
    """Parses a token stream into a Program."""

    def __init__(self, tokens: list[Token], name: str = "<trace>", source: Optional[str] = None):
        self.tokens = tokens
        self.pos = 0
        self.program = Program(name=name, source=source)

    # -------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TokenType.EOF:
            self.pos += 1
        return tok

    def _expect(self, tt: TokenType, what: str) -> Token:
        tok = self._peek()
        if tok.type != tt:
            raise TraceError(syntax_error(
                f"Expected {what}, got {tok.value!r}" if tok.value else f"Expected {what}",
                tok.location,
            ))
        return self._advance()

    def _error(self, message: str, tok: Optional[Token] = None) -> TraceError:
        tok = tok or self._peek()
        return TraceError(syntax_error(message, tok.location))

    # -------------------------------------------------------------------
    # Program
    # -------------------------------------------------------------------

    def parse(self) -> Program:
        while not self._at(TokenType.EOF):
            if self._at(TokenType.SEMICOLON, TokenType.NEWLINE):
                self._advance()
                continue
            self._parse_statement()
            if not self._at(*_TERMINATORS):
                raise self._error(f"Expected end of statement, got {self._peek().value!r}")
        return self.program

    def _parse_statement(self) -> None:
        tok = self._peek()
        if tok.type == TokenType.LET:
            self._parse_let()
        elif tok.type == TokenType.STAR:
            self._parse_deref_statement()
        elif tok.type == TokenType.IDENT and self._peek(1).type == TokenType.ASSIGN:
            self._parse_assign()
        elif tok.type == TokenType.IDENT and self._peek(1).type == TokenType.LPAREN:
            self._parse_call()
        else:
            raise self._error(f"Unexpected {tok.value!r} at start of statement", tok)

    def _parse_let(self) -> None:
        let_tok = self._advance()
        loc = let_tok.location
        mutable = False
        if self._at(TokenType.MUT):
            self._advance()
            mutable = True
        name = self._expect(TokenType.IDENT, "binding name").value

        annotated_cell = False
        if self._at(TokenType.COLON):
            self._advance()
            annotated_cell = self._parse_type_annotation()

        self._expect(TokenType.ASSIGN, "'='")

        if self._at(TokenType.INT_LIT, TokenType.MINUS):
            value = self._parse_int()
            self.program.add(Declare(name, value, mutable, annotated_cell, loc))
        elif self._at(TokenType.IDENT) and self._peek(1).type == TokenType.DOUBLE_COLON:
            value = self._parse_cell_constructor()
            self.program.add(Declare(name, value, mutable, True, loc))
        elif self._at(TokenType.STAR):
            self._advance()
            source = self._expect(TokenType.IDENT, "pointer name").value
            self.program.add(Read(source, name, loc))
        else:
            self._parse_pointer_expr(loc, result=name)

    def _parse_type_annotation(self) -> bool:
        ty = self._expect(TokenType.IDENT, "type name").value
        return ty in CELL_TYPES

    def _parse_cell_constructor(self) -> int:
        ty = self._advance()
        if ty.value not in CELL_TYPES:
            raise self._error(f"Unknown constructor '{ty.value}::new'", ty)
        self._expect(TokenType.DOUBLE_COLON, "'::'")
        ctor = self._expect(TokenType.IDENT, "'new'")
        if ctor.value != "new":
            raise self._error(f"Unknown constructor '{ty.value}::{ctor.value}'", ctor)
        self._expect(TokenType.LPAREN, "'('")
        value = self._parse_int()
        self._expect(TokenType.RPAREN, "')'")
        return value

    def _parse_deref_statement(self) -> None:
        star = self._advance()
        source = self._expect(TokenType.IDENT, "pointer name").value
        if self._at(TokenType.ASSIGN):
            self._advance()
            self.program.add(Write(source, self._parse_int(), star.location))
        else:
            self.program.add(Read(source, None, star.location))

    def _parse_assign(self) -> None:
        target = self._advance()
        self._expect(TokenType.ASSIGN, "'='")
        self.program.add(Write(target.value, self._parse_int(), target.location))

    def _parse_call(self) -> None:
        func = self._advance()
        self._expect(TokenType.LPAREN, "'('")
        source = self._parse_pointer_expr(func.location, result=None)
        self._expect(TokenType.RPAREN, "')'")
        self.program.add(ExternalCall(source, func.value, func.location))

    # -------------------------------------------------------------------
    # Pointer expressions
    # -------------------------------------------------------------------

    def _parse_pointer_expr(self, loc: SourceLocation, result: Optional[str]) -> str:
        """Parse ``primary (as cast)*`` and emit one operation per link.

        With ``result`` set, the last link binds it; a bare name in a ``let``
        is a read of that name. Returns the name holding the final pointer.
        """
        links: list[tuple[str, Optional[BorrowKind], str]] = []

        if self._at(TokenType.AMP):
            self._advance()
            kind = BorrowKind.SHARED
            if self._at(TokenType.MUT):
                self._advance()
                kind = BorrowKind.UNIQUE
            target = self._expect(TokenType.IDENT, "variable name").value
            links.append(("borrow", kind, target))
            current = None
        else:
            current = self._expect(TokenType.IDENT, "pointer or variable name").value

        while self._at(TokenType.AS):
            self._advance()
            links.append(self._parse_cast())

        if not links:
            if result is not None:
                self.program.add(Read(current, result, loc))
            return current

        for i, (what, kind, target) in enumerate(links):
            last = i == len(links) - 1
            name = result if (last and result is not None) else self.program.fresh()
            if what == "borrow":
                self.program.add(Borrow(target, kind, name, loc))
            elif what == "reborrow":
                self.program.add(Reborrow(current, kind, name, loc))
            else:
                self.program.add(CastToInteger(current, name, loc))
            current = name
        return current

    def _parse_cast(self) -> tuple[str, Optional[BorrowKind], str]:
        if self._at(TokenType.STAR):
            self._advance()
            if self._at(TokenType.CONST):
                self._advance()
                kind = BorrowKind.SHARED
            elif self._at(TokenType.MUT):
                self._advance()
                kind = BorrowKind.UNIQUE
            else:
                raise self._error("Expected 'const' or 'mut' after '*'")
            if self._at(TokenType.IDENT):
                self._advance()  # pointee type, not modelled
            return ("reborrow", kind, "")
        ty = self._expect(TokenType.IDENT, "cast target type")
        if ty.value not in INT_TYPES:
            raise self._error(f"Unsupported cast target '{ty.value}'", ty)
        return ("to_int", None, "")

    def _parse_int(self) -> int:
        negative = False
        if self._at(TokenType.MINUS):
            self._advance()
            negative = True
        tok = self._expect(TokenType.INT_LIT, "integer literal")
        value = int(tok.value)
        return -value if negative else value


def parse(source: str, filename: str = "<trace>", name: Optional[str] = None) -> Program:
    """Parse trace source into a Program."""
    tokens = tokenize(source, filename)
    return Parser(tokens, name=name or filename, source=source).parse()
