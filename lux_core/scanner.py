# lux_core/scanner.py
from __future__ import annotations

from typing import Optional


WHITESPACE = " \t\n\r"


def is_word_char(ch: str) -> bool:
    # ASCII only. Non-ASCII letters count as boundaries.
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9") or ch == "_"


def skip_whitespace(sql: str, pos: int = 0) -> int:
    n = len(sql)
    while pos < n and sql[pos] in WHITESPACE:
        pos += 1
    return pos


def _single_quoted_end(sql: str, pos: int) -> int:
    # pos is at the opening quote. '' inside is an escaped quote.
    n = len(sql)
    i = pos + 1
    while i < n:
        if sql[i] == "'":
            if i + 1 < n and sql[i + 1] == "'":
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _double_quoted_end(sql: str, pos: int) -> int:
    # No "" escape handling: the identifier ends at the next double quote.
    close = sql.find('"', pos + 1)
    return len(sql) if close < 0 else close + 1


def _dollar_tag_end(sql: str, pos: int) -> Optional[int]:
    """
    Return the offset just past an opening $tag$ at pos, or None when the
    $ at pos does not start a dollar quote.
    """
    n = len(sql)
    i = pos + 1
    while i < n and is_word_char(sql[i]):
        i += 1
    if i < n and sql[i] == "$":
        return i + 1
    return None


def _dollar_quoted_end(sql: str, pos: int, body_start: int) -> int:
    tag = sql[pos:body_start]
    close = sql.find(tag, body_start)
    return len(sql) if close < 0 else close + len(tag)


def _line_comment_end(sql: str, pos: int) -> int:
    # Stops at the newline without consuming it.
    nl = sql.find("\n", pos + 2)
    return len(sql) if nl < 0 else nl


def _block_comment_end(sql: str, pos: int) -> int:
    close = sql.find("*/", pos + 2)
    return len(sql) if close < 0 else close + 2


def literal_end(sql: str, pos: int) -> Optional[int]:
    """
    If a string literal, quoted identifier, dollar-quoted string or comment
    starts at pos, return the offset just past it. Otherwise return None.

    Unterminated units run to the end of input.
    """
    ch = sql[pos]
    if ch == "'":
        return _single_quoted_end(sql, pos)
    if ch == '"':
        return _double_quoted_end(sql, pos)
    if ch == "$":
        body_start = _dollar_tag_end(sql, pos)
        if body_start is None:
            return None
        return _dollar_quoted_end(sql, pos, body_start)
    if ch == "-" and sql.startswith("--", pos):
        return _line_comment_end(sql, pos)
    if ch == "/" and sql.startswith("/*", pos):
        return _block_comment_end(sql, pos)
    return None


def skip_unit(sql: str, pos: int) -> int:
    """Advance past one lexical unit starting at pos and return its end offset."""
    end = literal_end(sql, pos)
    if end is None:
        return pos + 1
    return end


def starts_with_ignore_case(sql: str, pos: int, word: str) -> bool:
    # word is upper-case ASCII. The isascii guard keeps case folding byte-wise.
    chunk = sql[pos:pos + len(word)]
    return chunk.isascii() and chunk.upper() == word
