"""Kotlin source scanner.

Builds the declaration tree for one .kt file without a compiler: a small
tokenizer that understands comments, string templates and backtick names,
and a brace-tracking parser that only cares about class-like declarations.
Everything it does not recognise is skipped, so function bodies, property
initializers and expressions never need to be understood.
"""

import re
from pathlib import Path
from typing import NamedTuple

from logext_model import (
    KIND_ANNOTATION_CLASS,
    KIND_CLASS,
    KIND_ENUM_CLASS,
    KIND_ENUM_ENTRY,
    KIND_INTERFACE,
    KIND_OBJECT,
    VISIBILITY_INTERNAL,
    VISIBILITY_LOCAL,
    VISIBILITY_PRIVATE,
    VISIBILITY_PROTECTED,
    VISIBILITY_PUBLIC,
    Declaration,
    SourceFile,
)

# ===--- Tokens ---=== #

IDENT = "ident"
QUOTED_IDENT = "quoted_ident"
STRING = "string"
CHAR = "char"
NUMBER = "number"
OP = "op"

_IDENT_RE = re.compile(r"[^\W\d]\w*")
_NUMBER_RE = re.compile(r"\d\w*(?:\.\d\w*)?")

# Longest first where one operator is a prefix of another.
_MULTI_CHAR_OPS: tuple[str, ...] = (
    "..<",
    "===",
    "!==",
    "->",
    "::",
    "?.",
    "?:",
    "!!",
    "..",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "++",
    "--",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
)


class Token(NamedTuple):
    kind: str
    text: str
    line: int
    start: int
    end: int


class ScanError(Exception):
    def __init__(self, path: str, line: int, message: str):
        super().__init__(f"{path}:{line}: {message}")
        self.path = path
        self.line = line
        self.message = message


def _block_comment_end(text: str, i: int, path: str, line: int) -> int:
    # Kotlin block comments nest.
    depth = 0
    j = i
    n = len(text)
    while j < n:
        if text.startswith("/*", j):
            depth += 1
            j += 2
        elif text.startswith("*/", j):
            depth -= 1
            j += 2
            if depth == 0:
                return j
        else:
            j += 1
    raise ScanError(path, line, "unterminated block comment")


def _template_end(text: str, j: int, path: str, line: int) -> int:
    """Return the index just past the '}' closing a ${...} template body."""
    depth = 1
    n = len(text)
    while j < n:
        c = text[j]
        if c == '"':
            j = _string_end(text, j, path, line)
            continue
        if c == "'":
            j = _char_end(text, j, path, line)
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    raise ScanError(path, line, "unterminated string template")


def _string_end(text: str, i: int, path: str, line: int) -> int:
    n = len(text)
    if text.startswith('"""', i):
        j = i + 3
        while j < n:
            if text.startswith('"""', j):
                j += 3
                # Extra quotes before the delimiter belong to the string.
                while j < n and text[j] == '"':
                    j += 1
                return j
            if text.startswith("${", j):
                j = _template_end(text, j + 2, path, line)
                continue
            j += 1
        raise ScanError(path, line, "unterminated raw string literal")

    j = i + 1
    while j < n and text[j] != "\n":
        c = text[j]
        if c == "\\":
            j += 2
            continue
        if c == '"':
            return j + 1
        if text.startswith("${", j):
            j = _template_end(text, j + 2, path, line)
            continue
        j += 1
    raise ScanError(path, line, "unterminated string literal")


def _char_end(text: str, i: int, path: str, line: int) -> int:
    j = i + 2 if text.startswith("\\", i + 1) else i + 1
    end = text.find("'", j + 1)
    if end == -1 or "\n" in text[i:end]:
        raise ScanError(path, line, "unterminated character literal")
    return end + 1


def tokenize(text: str, path: str = "<source>") -> list[Token]:
    """Split Kotlin source into tokens, dropping whitespace and comments.

    String and character literals become single opaque tokens. Backtick
    names become QUOTED_IDENT tokens whose text excludes the backticks, so
    a quoted `class` is never mistaken for the keyword.
    """
    tokens: list[Token] = []
    n = len(text)
    i = 0
    line = 1

    if text.startswith("#!"):
        newline = text.find("\n")
        i = n if newline == -1 else newline

    while i < n:
        ch = text[i]
        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue

        if text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
            continue
        if text.startswith("/*", i):
            end = _block_comment_end(text, i, path, line)
        elif ch == '"':
            end = _string_end(text, i, path, line)
            tokens.append(Token(STRING, text[i:end], line, i, end))
        elif ch == "'":
            end = _char_end(text, i, path, line)
            tokens.append(Token(CHAR, text[i:end], line, i, end))
        elif ch == "`":
            close = text.find("`", i + 1)
            if close == -1 or "\n" in text[i:close]:
                raise ScanError(path, line, "unterminated backtick identifier")
            end = close + 1
            tokens.append(Token(QUOTED_IDENT, text[i + 1 : close], line, i, end))
        else:
            match = _IDENT_RE.match(text, i) or _NUMBER_RE.match(text, i)
            if match is not None:
                end = match.end()
                kind = NUMBER if ch.isdigit() else IDENT
                tokens.append(Token(kind, match.group(), line, i, end))
            else:
                op = next((o for o in _MULTI_CHAR_OPS if text.startswith(o, i)), ch)
                end = i + len(op)
                tokens.append(Token(OP, op, line, i, end))

        line += text.count("\n", i, end)
        i = end

    return tokens


# ===--- Declaration parser ---=== #

MODIFIERS = frozenset(
    {
        "public",
        "private",
        "protected",
        "internal",
        "open",
        "final",
        "abstract",
        "sealed",
        "data",
        "enum",
        "annotation",
        "inner",
        "value",
        "inline",
        "companion",
        "expect",
        "actual",
        "external",
        "override",
        "lateinit",
        "const",
        "suspend",
        "tailrec",
        "operator",
        "infix",
    }
)

_VISIBILITY_MODIFIERS = {
    "public": VISIBILITY_PUBLIC,
    "internal": VISIBILITY_INTERNAL,
    "private": VISIBILITY_PRIVATE,
    "protected": VISIBILITY_PROTECTED,
}

# Words that end a bodyless class header because a new member starts.
_HEADER_STOP_WORDS = frozenset(
    {"class", "interface", "object", "fun", "val", "var", "typealias", "init"}
)

_TYPE_PARAMETER_MODIFIERS = frozenset({"in", "out", "reified"})

_ENUM_ENTRY_FOLLOWERS = frozenset({",", "(", "{", ";", "}"})

COMPANION_DEFAULT_NAME = "Companion"


def visibility_from_modifiers(modifiers: list[str]) -> str:
    visibility = VISIBILITY_PUBLIC
    for modifier in modifiers:
        visibility = _VISIBILITY_MODIFIERS.get(modifier, visibility)
    return visibility


def kind_from_keyword(keyword: str, modifiers: list[str]) -> str:
    if keyword == "interface":
        return KIND_INTERFACE
    if keyword == "object":
        return KIND_OBJECT
    if "enum" in modifiers:
        return KIND_ENUM_CLASS
    if "annotation" in modifiers:
        return KIND_ANNOTATION_CLASS
    return KIND_CLASS


class _DeclarationParser:
    def __init__(self, tokens: list[Token], source_file: SourceFile):
        self.tokens = tokens
        self.pos = 0
        self.source_file = source_file

    # ---- token helpers ----

    def peek(self, offset: int = 0) -> Token | None:
        index = self.pos + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def _token_at(self, index: int) -> Token | None:
        return self.tokens[index] if index < len(self.tokens) else None

    @staticmethod
    def _is_op(tok: Token | None, text: str) -> bool:
        return tok is not None and tok.kind == OP and tok.text == text

    @staticmethod
    def _is_word(tok: Token | None, text: str) -> bool:
        return tok is not None and tok.kind == IDENT and tok.text == text

    @staticmethod
    def _is_name(tok: Token | None) -> bool:
        return tok is not None and tok.kind in (IDENT, QUOTED_IDENT)

    def _balanced_end(self, index: int, opener: str, closer: str) -> int:
        """Return the index just past the closer matching tokens[index]."""
        depth = 0
        while index < len(self.tokens):
            tok = self.tokens[index]
            if tok.kind == OP:
                if tok.text == opener:
                    depth += 1
                elif tok.text == closer:
                    depth -= 1
                    if depth == 0:
                        return index + 1
            index += 1
        return index

    def _annotation_end(self, index: int) -> int:
        """Return the index just past the annotation starting at tokens[index]."""
        index += 1
        # Use-site target: @file:, @get:, @param:, ...
        if self._is_name(self._token_at(index)) and self._is_op(
            self._token_at(index + 1), ":"
        ):
            index += 2
        if self._is_op(self._token_at(index), "["):
            return self._balanced_end(index, "[", "]")
        if not self._is_name(self._token_at(index)):
            return index
        index += 1
        while self._is_op(self._token_at(index), ".") and self._is_name(
            self._token_at(index + 1)
        ):
            index += 2
        previous = self.tokens[index - 1]
        following = self._token_at(index)
        if self._is_op(following, "<") and following.start == previous.end:
            index = self._balanced_end(index, "<", ">")
            previous = self.tokens[index - 1]
            following = self._token_at(index)
        if self._is_op(following, "(") and following.start == previous.end:
            index = self._balanced_end(index, "(", ")")
        return index

    def _skip_annotation(self) -> None:
        self.pos = self._annotation_end(self.pos)

    def _past_modifiers(self, index: int) -> Token | None:
        """Return the first token at or after index that is not a modifier."""
        while index < len(self.tokens):
            tok = self.tokens[index]
            if self._is_op(tok, "@"):
                index = self._annotation_end(index)
            elif tok.kind == IDENT and tok.text in MODIFIERS:
                index += 1
            else:
                return tok
        return None

    def _skip_dotted_name(self) -> str:
        parts = [self.advance().text]
        while self._is_op(self.peek(), ".") and (
            self._is_name(self.peek(1)) or self._is_op(self.peek(1), "*")
        ):
            self.advance()
            parts.append(self.advance().text)
        return ".".join(parts)

    # ---- file level ----

    def parse(self) -> SourceFile:
        while self._is_op(self.peek(), "@"):
            self._skip_annotation()

        if self._is_word(self.peek(), "package") and self._is_name(self.peek(1)):
            self.advance()
            self.source_file.package_name = self._skip_dotted_name()

        while self._is_word(self.peek(), "import") and self._is_name(self.peek(1)):
            self.advance()
            self._skip_dotted_name()
            if self._is_word(self.peek(), "as") and self._is_name(self.peek(1)):
                self.pos += 2

        # A stray '}' ends _parse_scope early; keep going to EOF.
        while not self.at_end():
            self._parse_scope(owner=None, local=False)
        return self.source_file

    # ---- scopes ----

    def _parse_scope(self, owner: Declaration | None, local: bool) -> None:
        """Parse declarations until the '}' closing this scope (or EOF).

        Any nested '{' that does not open a class body opens a code block
        whose declarations are local.
        """
        modifiers: list[str] = []
        while not self.at_end():
            tok = self.peek()
            assert tok is not None

            if tok.kind == OP:
                if tok.text == "}":
                    self.advance()
                    return
                if tok.text == "{":
                    self.advance()
                    self._parse_scope(owner, local=True)
                elif tok.text == "@":
                    self._skip_annotation()
                    continue
                elif tok.text == "::":
                    # X::class is a class literal, not a declaration.
                    self.advance()
                    if self._is_name(self.peek()):
                        self.advance()
                else:
                    self.advance()
                modifiers = []
                continue

            if tok.kind == IDENT:
                word = tok.text
                if word in ("class", "interface"):
                    self.advance()
                    kind = kind_from_keyword(word, modifiers)
                    self._parse_class(kind, modifiers, owner, local)
                    modifiers = []
                    continue
                if word == "object":
                    self.advance()
                    if self._is_name(self.peek()):
                        self._parse_class(KIND_OBJECT, modifiers, owner, local)
                    elif "companion" in modifiers:
                        self._parse_class(
                            KIND_OBJECT,
                            modifiers,
                            owner,
                            local,
                            default_name=COMPANION_DEFAULT_NAME,
                        )
                    # Otherwise an object expression; its body is a code block.
                    modifiers = []
                    continue
                if word == "fun" and self._is_word(self.peek(1), "interface"):
                    self.advance()
                    modifiers.append(word)
                    continue
                if word in MODIFIERS:
                    self.advance()
                    modifiers.append(word)
                    continue

            self.advance()
            modifiers = []

    def _parse_class(
        self,
        kind: str,
        modifiers: list[str],
        owner: Declaration | None,
        local: bool,
        default_name: str | None = None,
    ) -> None:
        name_tok = self.peek()
        if self._is_name(name_tok):
            assert name_tok is not None
            name = name_tok.text
            self.advance()
        elif default_name is not None:
            name = default_name
        else:
            return

        type_parameters: tuple[str, ...] = ()
        if self._is_op(self.peek(), "<"):
            type_parameters = self._parse_type_parameters()

        in_local = local or (owner is not None and owner.qualified_name is None)
        if in_local:
            qualified_name = None
            visibility = VISIBILITY_LOCAL
        else:
            prefix = owner.qualified_name if owner is not None else self.source_file.package_name
            qualified_name = f"{prefix}.{name}" if prefix else name
            visibility = visibility_from_modifiers(modifiers)

        declaration = Declaration(
            simple_name=name,
            qualified_name=qualified_name,
            containing_file=self.source_file,
            parent=owner,
            type_parameters=type_parameters,
            visibility=visibility,
            kind=kind,
        )
        if owner is None:
            self.source_file.declarations.append(declaration)
        else:
            owner.declarations.append(declaration)

        if self._skip_header():
            if kind == KIND_ENUM_CLASS:
                self._parse_enum_entries(declaration)
            self._parse_scope(declaration, local=in_local)

    def _parse_type_parameters(self) -> tuple[str, ...]:
        self.advance()
        depth = 1
        names: list[str] = []
        expect_name = True
        while not self.at_end() and depth:
            tok = self.peek()
            assert tok is not None
            if self._is_op(tok, "@"):
                self._skip_annotation()
                continue
            self.advance()
            if tok.kind == OP:
                if tok.text == "<":
                    depth += 1
                elif tok.text == ">":
                    depth -= 1
                elif tok.text == "," and depth == 1:
                    expect_name = True
            elif depth == 1 and expect_name and self._is_name(tok):
                if tok.kind == IDENT and tok.text in _TYPE_PARAMETER_MODIFIERS:
                    continue
                names.append(tok.text)
                expect_name = False
        return tuple(names)

    def _skip_header(self) -> bool:
        """Skip the rest of a class header.

        Returns True with the body's '{' consumed, or False for a bodyless
        declaration (the terminating token is left for the caller unless it
        is a ';').

        A 'constructor' after the parameter list or supertypes belongs to a
        secondary constructor of the enclosing class, so it ends the header.
        """
        depth = 0
        past_parameters = False
        while not self.at_end():
            tok = self.peek()
            assert tok is not None
            if tok.kind == OP:
                if depth == 0 and tok.text in ("(", ":"):
                    past_parameters = True
                if tok.text in ("(", "["):
                    depth += 1
                elif tok.text in (")", "]"):
                    depth = max(depth - 1, 0)
                elif depth == 0:
                    if tok.text == "{":
                        self.advance()
                        return True
                    if tok.text == ";":
                        self.advance()
                        return False
                    if tok.text == "}":
                        return False
                    if tok.text == "@":
                        following = self._past_modifiers(self.pos)
                        if self._ends_header(following, past_parameters):
                            return False
                        self._skip_annotation()
                        continue
                self.advance()
                continue

            if depth == 0 and tok.kind == IDENT:
                if self._ends_header(tok, past_parameters):
                    return False
                if tok.text in MODIFIERS and self._ends_header(
                    self._past_modifiers(self.pos), past_parameters
                ):
                    return False
            self.advance()
        return False

    def _ends_header(self, tok: Token | None, past_parameters: bool) -> bool:
        # "class A private constructor(...)" keeps going; a new member stops.
        if tok is None or tok.kind != IDENT:
            return False
        if tok.text == "constructor":
            return past_parameters
        return tok.text in _HEADER_STOP_WORDS

    def _parse_enum_entries(self, enum_declaration: Declaration) -> None:
        qualified_prefix = enum_declaration.qualified_name
        while not self.at_end():
            tok = self.peek()
            assert tok is not None
            if self._is_op(tok, "@"):
                self._skip_annotation()
                continue
            if self._is_op(tok, ";"):
                self.advance()
                return
            if not self._is_name(tok):
                return
            if tok.kind == IDENT and tok.text in ("init", "constructor"):
                return
            following = self.peek(1)
            if following is not None and not (
                following.kind == OP and following.text in _ENUM_ENTRY_FOLLOWERS
            ):
                return

            self.advance()
            entry = Declaration(
                simple_name=tok.text,
                qualified_name=(
                    f"{qualified_prefix}.{tok.text}" if qualified_prefix is not None else None
                ),
                containing_file=self.source_file,
                parent=enum_declaration,
                visibility=(
                    VISIBILITY_PUBLIC if qualified_prefix is not None else VISIBILITY_LOCAL
                ),
                kind=KIND_ENUM_ENTRY,
            )
            enum_declaration.declarations.append(entry)

            if self._is_op(self.peek(), "("):
                self.pos = self._balanced_end(self.pos, "(", ")")
            if self._is_op(self.peek(), "{"):
                self.advance()
                self._parse_scope(entry, local=qualified_prefix is None)
            if not self._is_op(self.peek(), ","):
                return
            self.advance()


# ===--- Public API ---=== #


def scan_source(text: str, path: Path | str = "<source>") -> SourceFile:
    """Build the declaration tree for one Kotlin source text.

    Raises:
        ScanError: On unterminated comments, strings or backtick names.
    """
    source_file = SourceFile(path)
    tokens = tokenize(text, str(path))
    return _DeclarationParser(tokens, source_file).parse()


def scan_file(path: Path) -> SourceFile:
    """Read a .kt file (UTF-8, optional BOM) and scan it.

    Raises:
        OSError: If the file cannot be read.
        ScanError: Propagated from scan_source.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return scan_source(text, path)
