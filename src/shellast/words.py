"""Find expansion triggers inside a word."""

import re
from enum import Enum, auto

from shellast.errors import IncompleteInputError, NestingLimitError
from shellast.syntax import (
    CommandExpansion,
    Expansion,
    GlobExpansion,
    ParameterExpansion,
    TildeExpansion,
    Word,
)
from shellast.tokenizer import find_substitution_end, is_valid_name

MAX_NESTING_DEPTH = 32

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Inside double quotes a backslash only escapes these
_DOUBLE_QUOTE_ESCAPABLE = frozenset('$`"\\')


class ExpansionMode(Enum):
    """Which expansions a word is scanned for, depending on its quoting."""

    ALL = auto()  # unquoted
    PARAMETERS_AND_COMMANDS = auto()  # double quoted
    NONE = auto()  # single quoted, assignment names


def scan_word(
    text: str,
    mode: ExpansionMode = ExpansionMode.ALL,
    *,
    start_of_word: bool = True,
    following: str = "",
    depth: int = 0,
    max_depth: int = MAX_NESTING_DEPTH,
) -> Word:
    """Build a Word from raw *text*, recording every expansion found in it.

    Backslash escapes are removed and offsets refer to the unescaped text.
    ``start_of_word`` is False when *text* continues a word that began in an
    earlier token (``foo"~"``) and *following* is the first character of the
    token that continues it (``~"foo"``); both matter for tilde detection.

    The body of every ``$(...)`` is parsed right away at ``depth + 1``;
    NestingLimitError is raised past *max_depth*.
    """
    if mode is ExpansionMode.NONE:
        return Word(text)

    out: list[str] = []
    expansions: list[Expansion] = []
    prev = None if start_of_word else ""
    i = 0

    while i < len(text):
        ch = text[i]
        nxt = text[i + 1 : i + 2]
        pos = len(out)

        if ch == "\\" and nxt and _is_escapable(nxt, mode):
            out.append(nxt)
            prev = nxt
            i += 2
            continue

        if ch == "$" and nxt == "(":
            end = find_substitution_end(text, i + 1)
            if end == -1:
                raise IncompleteInputError("unterminated command substitution")
            tree = _parse_substitution(text[i + 2 : end], depth, max_depth)
            out.extend(text[i : end + 1])
            expansions.append(CommandExpansion(tree, pos, len(out) - 1))
            prev = ")"
            i = end + 1
            continue

        if ch == "$" and nxt == "{":
            close = text.find("}", i + 2)
            name = text[i + 2 : close]
            if close != -1 and is_valid_name(name):
                out.extend(text[i : close + 1])
                expansions.append(ParameterExpansion(name, pos, len(out) - 1))
                prev = "}"
                i = close + 1
                continue

        if ch == "$":
            match = _NAME_RE.match(text, i + 1)
            if match:
                out.extend(text[i : match.end()])
                expansions.append(ParameterExpansion(match.group(), pos, len(out) - 1))
                prev = out[-1]
                i = match.end()
                continue

        if ch == "*" and mode is ExpansionMode.ALL:
            end = i
            while end < len(text) and text[end] not in " \t\n/\\":
                end += 1
            pattern = text[i:end]
            out.extend(pattern)
            expansions.append(GlobExpansion(pattern, "**" in pattern, pos, len(out) - 1))
            prev = out[-1]
            i = end
            continue

        if (
            ch == "~"
            and mode is ExpansionMode.ALL
            and prev in (None, " ", "=")
            and (nxt or following) in ("", " ", "/")
        ):
            expansions.append(TildeExpansion(pos))

        out.append(ch)
        prev = ch
        i += 1

    return Word("".join(out), expansions)


def _is_escapable(ch: str, mode: ExpansionMode) -> bool:
    if mode is ExpansionMode.ALL:
        return True
    return ch in _DOUBLE_QUOTE_ESCAPABLE


def check_max_depth(max_depth: int) -> int:
    """Return *max_depth* if it lies in ``0..MAX_NESTING_DEPTH``, else raise ValueError."""
    if not 0 <= max_depth <= MAX_NESTING_DEPTH:
        raise ValueError(f"max_depth must be between 0 and {MAX_NESTING_DEPTH}, got {max_depth}")
    return max_depth


def _parse_substitution(body: str, depth: int, max_depth: int):
    # Imported here: the parser itself depends on this module
    from shellast.parser import parse

    if depth + 1 > check_max_depth(max_depth):
        raise NestingLimitError(max_depth)
    return parse(body, depth=depth + 1, max_depth=max_depth)
