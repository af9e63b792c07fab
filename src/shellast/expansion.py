"""Resolve the expansions recorded in words against a binding set."""

import logging
import os
from collections.abc import Iterable, Mapping

from shellast.errors import UnresolvedExpansionError
from shellast.syntax import (
    Assignment,
    Command,
    CommandExpansion,
    CommandType,
    Expansion,
    GlobExpansion,
    InputRedirect,
    Meta,
    OutputRedirect,
    ParameterExpansion,
    Pipeline,
    Single,
    SyntaxTree,
    TildeExpansion,
    Word,
)

logger = logging.getLogger(__name__)

type Bindings = list[tuple[str, str]]
type Environ = Mapping[str, str] | Iterable[tuple[str, str]]


def home_dir() -> str:
    return os.path.expanduser("~")


def environment_snapshot(environ: Environ | None = None) -> Bindings:
    """Copy *environ* (default: the process environment) into a binding set."""
    if environ is None:
        environ = os.environ
    if isinstance(environ, Mapping):
        return list(environ.items())
    return list(environ)


def lookup(bindings: Bindings, name: str) -> str | None:
    """Value bound to *name*; the last binding wins when there are several."""
    for var, value in reversed(bindings):
        if var == name:
            return value
    return None


def expand_word(word: Word, bindings: Bindings, *, home: str | None = None) -> Word:
    """Return a copy of *word* with its tilde and parameter expansions applied.

    Expansions are applied right to left, so the offsets of those still to
    be applied stay valid while the text changes length. A parameter with no
    binding is left in place and stays in the expansion list, shifted to
    match the new text. Command substitutions and globs raise
    UnresolvedExpansionError.
    """
    if not word.expansions:
        return word

    text = word.text
    # Unresolved expansions, collected right to left
    kept: list[Expansion] = []

    for expansion in reversed(word.expansions):
        match expansion:
            case TildeExpansion(index=index):
                start, end = index, index
                replacement = home if home is not None else home_dir()

            case ParameterExpansion(name=name, start=start, end=end):
                value = lookup(bindings, name)
                if value is None:
                    kept.append(expansion)
                    continue
                replacement = value

            case CommandExpansion():
                raise UnresolvedExpansionError(
                    expansion, "command substitution is not yet supported"
                )

            case GlobExpansion(pattern=pattern):
                raise UnresolvedExpansionError(
                    expansion, f"glob expansion is not yet supported: {pattern}"
                )

        text = text[:start] + replacement + text[end + 1 :]
        delta = len(replacement) - (end + 1 - start)
        if delta:
            kept = [later.shifted(delta) for later in kept]

    kept.reverse()
    logger.debug("expanded %r -> %r (%d unresolved)", word.text, text, len(kept))
    return Word(text, kept)


def expand_meta(meta: Meta, bindings: Bindings, *, home: str | None = None) -> Meta:
    match meta:
        case Word():
            return expand_word(meta, bindings, home=home)
        case Assignment(name=name, value=value):
            return Assignment(
                expand_word(name, bindings, home=home),
                expand_word(value, bindings, home=home),
            )
        case OutputRedirect(target=target, fd=fd, append=append):
            return OutputRedirect(
                expand_word(target, bindings, home=home),
                expand_word(fd, bindings, home=home) if fd else None,
                append,
            )
        case InputRedirect(target=target):
            return InputRedirect(expand_word(target, bindings, home=home))


def command_vars(
    command: Command, environ: Environ | None = None, *, home: str | None = None
) -> Bindings:
    """Binding set a command runs with.

    Starts from a snapshot of *environ*, then applies the prefix assignments
    in order. Each value is expanded against the bindings built so far and
    replaces any earlier binding of the same name, so ``A=1 A=$A-2 cmd``
    runs with ``A=1-2``.
    """
    bindings = environment_snapshot(environ)

    for meta in command.prefixes:
        if not isinstance(meta, Assignment):
            continue
        name = meta.name.text
        value = expand_word(meta.value, bindings, home=home).text
        bindings = [(var, val) for var, val in bindings if var != name]
        bindings.append((name, value))

    return bindings


def expand_command(
    command: Command, environ: Environ | None = None, *, home: str | None = None
) -> Command:
    bindings = command_vars(command, environ, home=home)
    return Command(
        expand_word(command.name, bindings, home=home),
        [expand_meta(meta, bindings, home=home) for meta in command.prefixes],
        [expand_meta(meta, bindings, home=home) for meta in command.suffixes],
    )


def expand_tree(
    tree: SyntaxTree, environ: Environ | None = None, *, home: str | None = None
) -> SyntaxTree:
    """Expand every command of *tree* into a new tree.

    The environment is read once, up front, and shared by all commands.
    """
    snapshot = environment_snapshot(environ)
    commands: list[CommandType] = []

    for entry in tree.commands:
        match entry:
            case Single(command=command):
                commands.append(Single(expand_command(command, snapshot, home=home)))
            case Pipeline(commands=pipeline):
                commands.append(
                    Pipeline([expand_command(cmd, snapshot, home=home) for cmd in pipeline])
                )

    return SyntaxTree(commands)
