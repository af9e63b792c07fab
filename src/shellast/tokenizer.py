"""Tokenize shell input into typed tokens, tracking quotes and operators."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import ClassVar

from shellast.errors import IncompleteInputError, ShellSyntaxError

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_WHITESPACE = " \t"
# Characters that end an unquoted word
_WORD_DELIMITERS = frozenset(" \t\n|;&<>()'\"")


def is_valid_name(name: str) -> bool:
    """Return True if *name* can be used as a shell variable name."""
    return _NAME_RE.fullmatch(name) is not None


@dataclass(frozen=True)
class Token:
    """Base class for all tokens.

    ``str(token)`` gives back the source text the token was read from, so a
    highlighter can print tokens one after another and reproduce the line.
    """

    is_word: ClassVar[bool] = False

    def assignment(self) -> tuple[str, str | None] | None:
        """Split a ``NAME=VALUE`` token into ``(NAME, VALUE)``.

        Only unquoted strings can be assignments. An empty value is None.
        """
        return None


@dataclass(frozen=True)
class String(Token):
    text: str

    is_word = True

    def assignment(self) -> tuple[str, str | None] | None:
        name, sep, value = self.text.partition("=")
        if not sep or not is_valid_name(name):
            return None
        return name, value or None

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class SingleQuotedString(Token):
    text: str
    closed: bool = True

    is_word = True

    def __str__(self) -> str:
        return f"'{self.text}'" if self.closed else f"'{self.text}"


@dataclass(frozen=True)
class DoubleQuotedString(Token):
    text: str
    closed: bool = True

    is_word = True

    def __str__(self) -> str:
        return f'"{self.text}"' if self.closed else f'"{self.text}'


@dataclass(frozen=True)
class RedirectOutput(Token):
    fd: str | None
    target: str
    whitespace: str | None = None
    append: bool = False

    def __str__(self) -> str:
        op = ">>" if self.append else ">"
        return f"{self.fd or ''}{op}{self.whitespace or ''}{self.target}"


@dataclass(frozen=True)
class RedirectInput(Token):
    target: str
    whitespace: str | None = None

    def __str__(self) -> str:
        return f"<{self.whitespace or ''}{self.target}"


@dataclass(frozen=True)
class Pipe(Token):
    def __str__(self) -> str:
        return "|"


@dataclass(frozen=True)
class Semicolon(Token):
    text: str = ";"

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Space(Token):
    text: str = " "

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class And(Token):
    def __str__(self) -> str:
        return "&&"


@dataclass(frozen=True)
class Or(Token):
    def __str__(self) -> str:
        return "||"


@dataclass(frozen=True)
class Ampersand(Token):
    def __str__(self) -> str:
        return "&"


@dataclass(frozen=True)
class LeftParen(Token):
    def __str__(self) -> str:
        return "("


@dataclass(frozen=True)
class RightParen(Token):
    def __str__(self) -> str:
        return ")"


def find_substitution_end(text: str, open_paren: int) -> int:
    """Return the index of the ``)`` closing the ``$(`` whose ``(`` is at *open_paren*.

    Every nested ``$(`` opens another level and quoted spans are skipped, so
    ``$(echo ")" $(whoami))`` is matched as a whole. Returns -1 if the
    substitution is never closed.
    """
    contexts = ["("]
    i = open_paren + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "$" and text.startswith("(", i + 1):
            contexts.append("(")
            i += 2
            continue
        if contexts[-1] == '"':
            if ch == '"':
                contexts.pop()
        elif ch == "'":
            close = text.find("'", i + 1)
            if close == -1:
                return -1
            i = close
        elif ch == '"':
            contexts.append('"')
        elif ch == ")":
            contexts.pop()
            if not contexts:
                return i
        i += 1
    return -1


def _closing_double_quote(text: str, start: int) -> int:
    """Find the ``"`` ending a double-quoted string whose body starts at *start*."""
    i = start
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i
        if ch == "$" and text.startswith("(", i + 1):
            end = find_substitution_end(text, i + 1)
            if end == -1:
                return -1
            i = end + 1
            continue
        i += 1
    return -1


def tokenize(line: str, interactive: bool = False) -> list[Token]:
    """Tokenize a shell input line.

    With ``interactive=True`` an unterminated quote or command substitution
    is returned as an open token (``closed=False``) so a line that is still
    being typed can be highlighted. Otherwise it raises IncompleteInputError.

    Examples:
        tokenize("ls|wc -l") -> [String("ls"), Pipe(), String("wc"), Space(),
                                 String("-l")]
        tokenize("2>&1 make") -> [RedirectOutput("2", "&1"), Space(),
                                  String("make")]
    """
    return _Lexer(line, interactive).run()


def render_tokens(tokens: Iterable[Token]) -> str:
    """Join tokens back into the text they were read from."""
    return "".join(str(token) for token in tokens)


class _Lexer:
    def __init__(self, line: str, interactive: bool) -> None:
        self.line = line
        self.interactive = interactive
        self.pos = 0
        self.tokens: list[Token] = []
        self.word: list[str] = []

    def run(self) -> list[Token]:
        line = self.line
        while self.pos < len(line):
            ch = line[self.pos]
            nxt = line[self.pos + 1 : self.pos + 2]

            match ch:
                case " " | "\t":
                    self._flush_word()
                    start = self.pos
                    while self.pos < len(line) and line[self.pos] in _WHITESPACE:
                        self.pos += 1
                    self.tokens.append(Space(line[start : self.pos]))
                case "\n" | ";":
                    self._push(Semicolon(ch))
                case "|":
                    self._push(Or() if nxt == "|" else Pipe(), 2 if nxt == "|" else 1)
                case "&":
                    self._push(And() if nxt == "&" else Ampersand(), 2 if nxt == "&" else 1)
                case "(":
                    self._push(LeftParen())
                case ")":
                    self._push(RightParen())
                case ">":
                    self._read_redirect_output()
                case "<":
                    self._flush_word()
                    self.pos += 1
                    whitespace = self._read_whitespace()
                    target = self._read_target()
                    self.tokens.append(RedirectInput(target, whitespace))
                case "'":
                    self._flush_word()
                    self._read_single_quoted()
                case '"':
                    self._flush_word()
                    self._read_double_quoted()
                case "\\":
                    self.word.append(line[self.pos : self.pos + 2])
                    self.pos += 2
                case "$" if nxt == "(":
                    end = self._substitution_end(self.pos + 1)
                    self.word.append(line[self.pos : end + 1])
                    self.pos = end + 1
                case _:
                    self.word.append(ch)
                    self.pos += 1

        self._flush_word()
        return self.tokens

    def _push(self, token: Token, width: int = 1) -> None:
        self._flush_word()
        self.tokens.append(token)
        self.pos += width

    def _flush_word(self) -> None:
        if self.word:
            self.tokens.append(String("".join(self.word)))
            self.word.clear()

    def _incomplete(self, what: str) -> IncompleteInputError:
        return IncompleteInputError(f"unterminated {what}", self.tokens)

    def _substitution_end(self, open_paren: int) -> int:
        end = find_substitution_end(self.line, open_paren)
        if end != -1:
            return end
        if not self.interactive:
            raise self._incomplete("command substitution")
        return len(self.line) - 1

    def _read_single_quoted(self) -> None:
        close = self.line.find("'", self.pos + 1)
        if close == -1:
            if not self.interactive:
                raise self._incomplete("single quote")
            self.tokens.append(SingleQuotedString(self.line[self.pos + 1 :], closed=False))
            self.pos = len(self.line)
            return
        self.tokens.append(SingleQuotedString(self.line[self.pos + 1 : close]))
        self.pos = close + 1

    def _read_double_quoted(self) -> None:
        close = _closing_double_quote(self.line, self.pos + 1)
        if close == -1:
            if not self.interactive:
                raise self._incomplete("double quote")
            self.tokens.append(DoubleQuotedString(self.line[self.pos + 1 :], closed=False))
            self.pos = len(self.line)
            return
        self.tokens.append(DoubleQuotedString(self.line[self.pos + 1 : close]))
        self.pos = close + 1

    def _read_redirect_output(self) -> None:
        # A word made only of digits right before '>' is the descriptor: 2>err
        pending = "".join(self.word)
        fd = None
        if pending.isascii() and pending.isdigit():
            fd = pending
            self.word.clear()
        else:
            self._flush_word()

        self.pos += 1
        append = self.line.startswith(">", self.pos)
        if append:
            self.pos += 1

        whitespace = self._read_whitespace()
        target = self._read_target()
        self.tokens.append(RedirectOutput(fd, target, whitespace, append))

    def _read_whitespace(self) -> str | None:
        start = self.pos
        while self.pos < len(self.line) and self.line[self.pos] in _WHITESPACE:
            self.pos += 1
        return self.line[start : self.pos] or None

    def _read_target(self) -> str:
        """Read a redirect target as raw text, quotes included."""
        line = self.line
        start = self.pos
        if line.startswith("&", self.pos):
            self.pos += 1

        while self.pos < len(line):
            ch = line[self.pos]
            if ch in _WORD_DELIMITERS and ch not in "'\"":
                break
            if ch == "\\":
                self.pos = min(self.pos + 2, len(line))
                continue
            if ch == "'":
                close = line.find("'", self.pos + 1)
                if close == -1:
                    if not self.interactive:
                        raise self._incomplete("single quote")
                    close = len(line) - 1
                self.pos = close + 1
                continue
            if ch == '"':
                close = _closing_double_quote(line, self.pos + 1)
                if close == -1:
                    if not self.interactive:
                        raise self._incomplete("double quote")
                    close = len(line) - 1
                self.pos = close + 1
                continue
            if ch == "$" and line.startswith("(", self.pos + 1):
                self.pos = self._substitution_end(self.pos + 1) + 1
                continue
            self.pos += 1

        target = line[start : self.pos]
        if not target and not self.interactive:
            unexpected = line[self.pos] if self.pos < len(line) else "newline"
            if unexpected == "\n":
                unexpected = "newline"
            raise ShellSyntaxError(
                f"syntax error near unexpected token `{unexpected}'", self.tokens
            )
        return target
