"""Identifier escaping for generated Kotlin source.

Kotlin package paths and names may legally spell a hard keyword when the
segment is wrapped in backticks (``package com.example.`fun```). The same
quoting admits names that are not plain identifiers at all, such as
``class `my class```.
"""

import re
from collections.abc import Collection

# Ref: https://kotlinlang.org/docs/keyword-reference.html#hard-keywords
KOTLIN_HARD_KEYWORDS: frozenset[str] = frozenset(
    {
        "as",
        "break",
        "class",
        "continue",
        "do",
        "else",
        "false",
        "for",
        "fun",
        "if",
        "in",
        "interface",
        "is",
        "null",
        "object",
        "package",
        "return",
        "super",
        "this",
        "throw",
        "true",
        "try",
        "typealias",
        "typeof",
        "val",
        "var",
        "when",
        "while",
    }
)

BACKTICK = "`"


def escape_reserved_segments(
    path: str,
    delimiter: str,
    reserved_words: Collection[str],
    quote_char: str,
) -> str:
    """Quote every segment of path that is exactly a reserved word.

    Segments are produced by str.split, so empty leading, trailing and
    interior segments survive and the output rejoins to the same shape.
    Matching is per segment and exact: "classy" is left alone even though
    "class" is reserved. Already-quoted segments are never members of the
    reserved set, which makes the function idempotent. An empty delimiter
    treats the whole path as a single segment.

    Args:
        path: Delimited path, e.g. "com.example.fun".
        delimiter: Segment separator, e.g. ".".
        reserved_words: Words that must be quoted.
        quote_char: Marker placed on both sides of a reserved segment.

    Returns:
        The rejoined path, e.g. "com.example.`fun`". Empty input yields "".
    """
    if not delimiter:
        return f"{quote_char}{path}{quote_char}" if path in reserved_words else path

    return delimiter.join(
        f"{quote_char}{segment}{quote_char}" if segment in reserved_words else segment
        for segment in path.split(delimiter)
    )


_PLAIN_IDENTIFIER_RE = re.compile(r"[^\W\d]\w*")


def quote_kotlin_name(name: str) -> str:
    """Backtick-quote a simple name unless it is a plain, unreserved identifier.

    Names such as "my class" or "2d" only exist in Kotlin source between
    backticks, so they are quoted along with the hard keywords.
    """
    if not _PLAIN_IDENTIFIER_RE.fullmatch(name):
        return f"{BACKTICK}{name}{BACKTICK}"
    return escape_reserved_segments(name, "", KOTLIN_HARD_KEYWORDS, BACKTICK)


def quote_kotlin_path(path: str) -> str:
    """Apply quote_kotlin_name to every segment of a dot-delimited path."""
    if not path:
        return path
    return ".".join(quote_kotlin_name(segment) for segment in path.split("."))
