"""Syntax tree produced by the parser.

A line parses into a SyntaxTree holding one entry per ``;``-separated group.
Each entry is either a Single command or a Pipeline of two or more commands.
Words keep the expansions found in them as offsets into their text; the
resolver in shellast.expansion rewrites words into new ones.

``str()`` renders every node back into shell text. Rendering is not a byte
copy of the input (whitespace is collapsed, quoting is normalized) but parsing
the rendering again renders the same text. Literal characters that sit next
to a pending expansion are backslash-escaped so they stay literal.
"""

import re
import shlex
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from shellast.tokenizer import is_valid_name

if TYPE_CHECKING:
    from shellast.expansion import Bindings

# Descriptor duplication targets such as &1 or &- are printed as-is
_DUP_TARGET_RE = re.compile(r"&(\d+|-)")
_NAME_CHAR_RE = re.compile(r"[A-Za-z0-9_]")

# Escaped when they sit outside an expansion span
_SPECIAL_CHARS = frozenset(" \t\n;|&<>()'\"\\$`*~")


@dataclass
class ParameterExpansion:
    """``$name`` or ``${name}``, spanning ``text[start:end + 1]``."""

    name: str
    start: int
    end: int

    def shifted(self, delta: int) -> "ParameterExpansion":
        return replace(self, start=self.start + delta, end=self.end + delta)


@dataclass
class CommandExpansion:
    """``$(...)`` with its body already parsed."""

    tree: "SyntaxTree"
    start: int
    end: int

    def shifted(self, delta: int) -> "CommandExpansion":
        return replace(self, start=self.start + delta, end=self.end + delta)


@dataclass
class GlobExpansion:
    pattern: str
    recursive: bool
    start: int
    end: int

    def shifted(self, delta: int) -> "GlobExpansion":
        return replace(self, start=self.start + delta, end=self.end + delta)


@dataclass
class TildeExpansion:
    """A lone ``~`` at *index* standing for the home directory."""

    index: int

    def shifted(self, delta: int) -> "TildeExpansion":
        return replace(self, index=self.index + delta)


type Expansion = ParameterExpansion | CommandExpansion | GlobExpansion | TildeExpansion


def _span(expansion: Expansion) -> tuple[int, int]:
    match expansion:
        case TildeExpansion(index=index):
            return index, index
        case _:
            return expansion.start, expansion.end


@dataclass
class Word:
    text: str
    expansions: list[Expansion] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.expansions:
            return shlex.quote(self.text)

        # Expansion spans stay unquoted; literal text between them is escaped
        spans = {_span(expansion)[0]: expansion for expansion in self.expansions}
        text = self.text
        out: list[str] = []
        after_bare_parameter = False
        i = 0

        while i < len(text):
            expansion = spans.get(i)
            if expansion is not None:
                end = _span(expansion)[1]
                out.append(text[i : end + 1])
                after_bare_parameter = (
                    isinstance(expansion, ParameterExpansion) and text[end] != "}"
                )
                i = end + 1
                continue

            ch = text[i]
            # "$x" then a literal "y" must not read back as "$xy"
            if ch in _SPECIAL_CHARS or (after_bare_parameter and _NAME_CHAR_RE.match(ch)):
                out.append("\\")
            out.append(ch)
            after_bare_parameter = False
            i += 1

        return "".join(out)


@dataclass
class Assignment:
    """``NAME=VALUE`` placed before a command name."""

    name: Word
    value: Word

    def __str__(self) -> str:
        return f"{self.name.text}={self.value}"


@dataclass
class OutputRedirect:
    """``[fd]>target`` or ``[fd]>>target``. No fd means stdout."""

    target: Word
    fd: Word | None = None
    append: bool = False

    def __str__(self) -> str:
        op = ">>" if self.append else ">"
        fd = self.fd.text if self.fd else ""
        return f"{fd}{op}{_render_target(self.target)}"


@dataclass
class InputRedirect:
    target: Word

    def __str__(self) -> str:
        return f"<{_render_target(self.target)}"


type Redirect = OutputRedirect | InputRedirect
type Meta = Word | Assignment | Redirect


def _render_target(target: Word) -> str:
    if _DUP_TARGET_RE.fullmatch(target.text):
        return target.text
    return str(target)


def _render_name(name: Word) -> str:
    # A command name shaped like NAME=VALUE would read back as an assignment
    rendered = str(name)
    var, sep, rest = rendered.partition("=")
    if sep and is_valid_name(var):
        return f"{var}\\={rest}"
    return rendered


@dataclass
class Command:
    name: Word
    prefixes: list[Meta] = field(default_factory=list)
    suffixes: list[Meta] = field(default_factory=list)

    def args(self) -> list[str]:
        """Text of the plain words after the command name."""
        return [meta.text for meta in self.suffixes if isinstance(meta, Word)]

    def redirections(
        self,
    ) -> tuple[InputRedirect | None, OutputRedirect | None, OutputRedirect | None]:
        """Return the (stdin, stdout, stderr) redirects, last one wins.

        Output redirects from descriptors other than 1 and 2 (e.g. ``3>x``)
        are not reported here.
        """
        stdin: InputRedirect | None = None
        stdout: OutputRedirect | None = None
        stderr: OutputRedirect | None = None

        for meta in [*self.prefixes, *self.suffixes]:
            match meta:
                case OutputRedirect(fd=None) | OutputRedirect(fd=Word(text="1")):
                    stdout = meta
                case OutputRedirect(fd=Word(text="2")):
                    stderr = meta
                case InputRedirect():
                    stdin = meta

        return stdin, stdout, stderr

    def vars(
        self,
        environ: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        home: str | None = None,
    ) -> "Bindings":
        """Binding set for this command: the environment plus prefix assignments."""
        from shellast.expansion import command_vars

        return command_vars(self, environ, home=home)

    def __str__(self) -> str:
        parts = [str(meta) for meta in self.prefixes]
        parts.append(_render_name(self.name))
        parts.extend(str(meta) for meta in self.suffixes)
        return " ".join(parts)


@dataclass
class Single:
    command: Command

    def __str__(self) -> str:
        return str(self.command)


@dataclass
class Pipeline:
    commands: list[Command]

    def __post_init__(self) -> None:
        if len(self.commands) < 2:
            raise ValueError("a pipeline needs at least two commands")

    def __str__(self) -> str:
        return " | ".join(str(cmd) for cmd in self.commands)


type CommandType = Single | Pipeline


@dataclass
class SyntaxTree:
    commands: list[CommandType] = field(default_factory=list)

    def add_command(self, command: CommandType) -> None:
        self.commands.append(command)

    def __str__(self) -> str:
        return "; ".join(str(cmd) for cmd in self.commands)
