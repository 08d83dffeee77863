# parsing/dsl_parser.py
"""Parser for the name list structure DSL.

The format follows the block syntax of the target game's configuration
files::

    HUMAN = {
        prefix = "HUM_"
        character_names = {
            names1 = {
                weight = 50
                first_names_male = { theme = "river clan given names" }
                first_names_female = { }
            }
            legacy = { 10 OLD_NAME_A OLD_NAME_B }
        }
    }

``#`` starts a comment that runs to the end of the line and commas are
ignored. Parsing is all-or-nothing: the first structural error raises
:class:`ParseError` and no partial tree is returned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from core.errors import ConflictingWeightError, ParseError

from models import ConfigNode

RESERVED_ASSIGNMENTS = frozenset({"prefix", "weight", "theme"})

_TOKEN_PATTERNS = [
    ("COMMENT", r"#[^\n]*"),
    ("NEWLINE", r"\n"),
    ("SKIP", r"[ \t\r,]+"),
    ("LBRACE", r"\{"),
    ("RBRACE", r"\}"),
    ("EQUALS", r"="),
    ("STRING", r'"(?:[^"\\\n]|\\.)*"'),
    ("NUMBER", r"[-+]?\d+(?:\.\d+)?(?![A-Za-z0-9_.:'\-])"),
    ("IDENT", r"[A-Za-z0-9_][A-Za-z0-9_.:'\-]*"),
    ("UNTERMINATED", r'"'),
    ("MISMATCH", r"."),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{rx})" for name, rx in _TOKEN_PATTERNS))
_VALUE_KINDS = ("IDENT", "STRING", "NUMBER")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    line: int
    column: int

    @property
    def value(self) -> str:
        """Token text with string quotes and escapes removed."""
        if self.kind != "STRING":
            return self.text
        inner = self.text[1:-1]
        return re.sub(r"\\(.)", r"\1", inner)


def tokenize(text: str, source: str = "<string>") -> list[Token]:
    """Split DSL source into tokens, dropping whitespace and comments."""
    tokens: list[Token] = []
    line = 1
    line_start = 0
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup or "MISMATCH"
        column = match.start() - line_start + 1
        if kind == "NEWLINE":
            line += 1
            line_start = match.end()
            continue
        if kind in ("SKIP", "COMMENT"):
            continue
        if kind == "UNTERMINATED":
            raise ParseError("unterminated string", line, column, '"', source)
        if kind == "MISMATCH":
            raise ParseError(
                "unexpected character", line, column, match.group(), source
            )
        tokens.append(Token(kind, match.group(), line, column))
    return tokens


def _to_number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


class _BlockBuilder:
    """Collects the contents of one ``name = { ... }`` block."""

    def __init__(self, name_token: Token, source: str) -> None:
        self.name_token = name_token
        self.source = source
        self.prefix: str | None = None
        self.theme: str | None = None
        self.weight: int | float | None = None
        self.weight_token: Token | None = None
        self.keys: list[Token] = []
        self.attributes: list[tuple[str, str]] = []
        self.children: list[ConfigNode] = []
        self._siblings: dict[str, Token] = {}

    def _error(self, message: str, token: Token) -> ParseError:
        return ParseError(message, token.line, token.column, token.text, self.source)

    def _claim_name(self, token: Token, what: str) -> None:
        previous = self._siblings.get(token.text)
        if previous is not None:
            raise self._error(
                f"duplicate {what} '{token.text}' in block '{self.name_token.text}'"
                f" (first defined on line {previous.line})",
                token,
            )
        self._siblings[token.text] = token

    def set_weight(self, value_token: Token, form: str) -> None:
        if value_token.kind != "NUMBER":
            raise self._error("weight must be a number", value_token)
        if self.weight_token is not None:
            raise ConflictingWeightError(
                f"weight of '{self.name_token.text}' declared more than once"
                f" ({form} declaration conflicts with line {self.weight_token.line})",
                value_token.line,
                value_token.column,
                value_token.text,
                self.source,
            )
        self.weight = _to_number(value_token.text)
        self.weight_token = value_token

    def assign(self, key_token: Token, value_token: Token) -> None:
        key = key_token.text
        if key == "weight":
            self.set_weight(value_token, "explicit")
            return
        self._claim_name(key_token, "assignment")
        if key == "prefix":
            if value_token.kind == "NUMBER":
                raise self._error("prefix must be a string", value_token)
            self.prefix = value_token.value
        elif key == "theme":
            self.theme = value_token.value
        else:
            self.attributes.append((key, value_token.text))

    def add_child(self, child: ConfigNode, name_token: Token) -> None:
        if name_token.text in RESERVED_ASSIGNMENTS:
            raise self._error(f"'{name_token.text}' cannot be a block", name_token)
        self._claim_name(name_token, "block")
        self.children.append(child)

    def add_key(self, token: Token) -> None:
        self.keys.append(token)

    def build(self) -> ConfigNode:
        if self.children and self.keys:
            raise self._error(
                f"bare value in structural block '{self.name_token.text}'",
                self.keys[0],
            )
        return ConfigNode(
            name=self.name_token.text,
            prefix=self.prefix,
            weight=self.weight,
            weight_text=self.weight_token.text if self.weight_token else None,
            localisation_keys=tuple(t.value for t in self.keys),
            theme=self.theme,
            attributes=tuple(self.attributes),
            children=tuple(self.children),
            line=self.name_token.line,
        )


class _Parser:
    def __init__(self, tokens: list[Token], source: str) -> None:
        self.tokens = tokens
        self.source = source
        self.pos = 0

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token | None:
        token = self._peek()
        if token is not None:
            self.pos += 1
        return token

    def _end_position(self) -> tuple[int, int]:
        if not self.tokens:
            return 1, 1
        last = self.tokens[-1]
        return last.line, last.column + len(last.text)

    def _expect(self, kind: str, what: str, after: Token) -> Token:
        token = self._next()
        if token is None:
            line, column = self._end_position()
            raise ParseError(
                f"expected {what} but reached end of input", line, column, after.text,
                self.source,
            )
        if token.kind != kind:
            raise ParseError(
                f"expected {what}", token.line, token.column, token.text, self.source
            )
        return token

    def parse_file(self) -> ConfigNode:
        first = self._next()
        if first is None:
            raise ParseError("empty name list: expected a root block", 1, 1, None, self.source)
        if first.kind != "IDENT" or (
            self._peek() is None or self._peek().kind != "EQUALS"
        ):
            raise ParseError(
                "unknown top-level structure: expected 'NAME = { ... }'",
                first.line,
                first.column,
                first.text,
                self.source,
            )
        self._expect("EQUALS", "'='", first)
        self._expect("LBRACE", "'{' opening the root block", first)
        root = self._parse_block(first)
        trailing = self._peek()
        if trailing is not None:
            raise ParseError(
                "unknown top-level structure after the root block",
                trailing.line,
                trailing.column,
                trailing.text,
                self.source,
            )
        return root

    def _parse_block(self, name_token: Token) -> ConfigNode:
        builder = _BlockBuilder(name_token, self.source)
        while True:
            token = self._next()
            if token is None:
                raise ParseError(
                    f"unterminated block '{name_token.text}'",
                    name_token.line,
                    name_token.column,
                    name_token.text,
                    self.source,
                )
            if token.kind == "RBRACE":
                return builder.build()
            following = self._peek()
            if following is not None and following.kind == "EQUALS":
                if token.kind != "IDENT":
                    raise ParseError(
                        "assignment target must be an identifier",
                        token.line,
                        token.column,
                        token.text,
                        self.source,
                    )
                self._next()
                value = self._next()
                if value is None:
                    line, column = self._end_position()
                    raise ParseError(
                        f"missing value for '{token.text}'", line, column, token.text,
                        self.source,
                    )
                if value.kind == "LBRACE":
                    builder.add_child(self._parse_block(token), token)
                elif value.kind in _VALUE_KINDS:
                    builder.assign(token, value)
                else:
                    raise ParseError(
                        f"expected a value or block for '{token.text}'",
                        value.line,
                        value.column,
                        value.text,
                        self.source,
                    )
            elif token.kind == "NUMBER":
                builder.set_weight(token, "positional")
            elif token.kind in ("IDENT", "STRING"):
                builder.add_key(token)
            elif token.kind == "LBRACE":
                raise ParseError(
                    "anonymous blocks are not supported",
                    token.line,
                    token.column,
                    token.text,
                    self.source,
                )
            else:
                raise ParseError(
                    f"unexpected '{token.text}'",
                    token.line,
                    token.column,
                    token.text,
                    self.source,
                )


def parse_namelist(text: str, source: str = "<string>") -> ConfigNode:
    """Parse DSL source into the root :class:`ConfigNode`.

    Raises:
        ParseError: on the first malformed construct, with line and column.
        ConflictingWeightError: when a node declares its weight twice.
    """
    tokens = tokenize(text, source)
    return _Parser(tokens, source).parse_file()
