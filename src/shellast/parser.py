"""Parse a token sequence into a SyntaxTree."""

import logging
from collections.abc import Sequence

from shellast.errors import IncompleteInputError, ShellSyntaxError, UnsupportedFeatureError
from shellast.syntax import (
    Assignment,
    Command,
    InputRedirect,
    Meta,
    OutputRedirect,
    Pipeline,
    Redirect,
    Single,
    SyntaxTree,
    Word,
)
from shellast.tokenizer import (
    Ampersand,
    And,
    DoubleQuotedString,
    LeftParen,
    Or,
    Pipe,
    RedirectInput,
    RedirectOutput,
    RightParen,
    Semicolon,
    SingleQuotedString,
    Space,
    String,
    Token,
    tokenize,
)
from shellast.words import MAX_NESTING_DEPTH, ExpansionMode, check_max_depth, scan_word

logger = logging.getLogger(__name__)

_UNSUPPORTED: dict[type[Token], str] = {
    And: "logical AND (&&)",
    Or: "logical OR (||)",
    Ampersand: "background execution (&)",
    LeftParen: "subshells",
    RightParen: "subshells",
}

_SCAN_MODES: dict[type[Token], ExpansionMode] = {
    String: ExpansionMode.ALL,
    DoubleQuotedString: ExpansionMode.PARAMETERS_AND_COMMANDS,
    SingleQuotedString: ExpansionMode.NONE,
}


def parse(line: str, *, depth: int = 0, max_depth: int = MAX_NESTING_DEPTH) -> SyntaxTree:
    """Tokenize and parse one input line.

    *depth* is the command-substitution nesting level of *line*; it is only
    set by the word scanner when it parses the body of a ``$(...)``.
    """
    return parse_tokens(tokenize(line), depth=depth, max_depth=max_depth)


def split_tokens(tokens: Sequence[Token], separator: type[Token]) -> list[list[Token]]:
    """Split tokens on every token of type *separator*.

    Example: [ls, Pipe(), wc] -> [[ls], [wc]]. Empty segments are kept.
    """
    segments: list[list[Token]] = [[]]
    for token in tokens:
        if isinstance(token, separator):
            segments.append([])
        else:
            segments[-1].append(token)
    return segments


def parse_tokens(
    tokens: Sequence[Token], *, depth: int = 0, max_depth: int = MAX_NESTING_DEPTH
) -> SyntaxTree:
    """Build a SyntaxTree from tokens.

    Tokens are split on ``;`` into groups and each group on ``|`` into
    stages. Blank stages and groups are dropped; a group with one command
    becomes Single, more than one becomes Pipeline.

    Raises ValueError if *max_depth* is outside ``0..MAX_NESTING_DEPTH``.
    """
    check_max_depth(max_depth)
    tree = SyntaxTree()

    for group in split_tokens(tokens, Semicolon):
        commands = [
            parse_command(stage, depth=depth, max_depth=max_depth)
            for stage in split_tokens(group, Pipe)
            if not _is_blank(stage)
        ]

        match commands:
            case []:
                continue
            case [command]:
                tree.add_command(Single(command))
            case _:
                tree.add_command(Pipeline(commands))

    logger.debug("parsed %d command group(s) at depth %d", len(tree.commands), depth)
    return tree


def parse_command(
    tokens: Sequence[Token], *, depth: int = 0, max_depth: int = MAX_NESTING_DEPTH
) -> Command:
    """Parse the tokens of one pipeline stage into a Command.

    Whatever precedes the first plain word (the command name) is a prefix:
    assignments and redirects. Everything after it is a suffix, including
    words shaped like assignments, which stay plain words there.

    Raises ShellSyntaxError if no command name is found.
    """
    name: Word | None = None
    prefixes: list[Meta] = []
    suffixes: list[Meta] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]
        meta: Meta

        match token:
            case Space():
                i += 1
                continue

            case String() | SingleQuotedString() | DoubleQuotedString():
                # Word tokens with no space between them make up one word: a"b"'c'
                run = [token]
                i += 1
                while i < len(tokens) and tokens[i].is_word:
                    run.append(tokens[i])
                    i += 1

                if name is None:
                    _reject_grouping(run)
                meta = _parse_word_run(run, name is None, depth, max_depth)
                if name is None and isinstance(meta, Word):
                    name = meta
                    continue

            case RedirectOutput() | RedirectInput():
                meta = _parse_redirect(token, tokens, depth, max_depth)
                i += 1

            case And() | Or() | Ampersand() | LeftParen() | RightParen():
                raise UnsupportedFeatureError(_UNSUPPORTED[type(token)])

            case _:
                raise ShellSyntaxError(f"syntax error near unexpected token `{token}'", tokens)

        if name is None:
            prefixes.append(meta)
        else:
            suffixes.append(meta)

    if name is None:
        raise ShellSyntaxError("syntax error: missing command", tokens)

    return Command(name, prefixes, suffixes)


def _is_blank(tokens: Sequence[Token]) -> bool:
    return all(isinstance(token, Space) for token in tokens)


def _reject_grouping(run: list[Token]) -> None:
    match run:
        case [String(text="{" | "}")]:
            raise UnsupportedFeatureError("command grouping ({ ... })")


def _parse_word_run(
    run: list[Token], allow_assignment: bool, depth: int, max_depth: int
) -> Word | Assignment:
    for token in run:
        if isinstance(token, (SingleQuotedString, DoubleQuotedString)) and not token.closed:
            raise IncompleteInputError("unterminated quote", run)

    assignment = run[0].assignment() if allow_assignment else None
    if assignment is None:
        return _join_word(run, depth, max_depth)

    name, value = assignment
    value_tokens = [String(value or ""), *run[1:]]
    return Assignment(
        scan_word(name, ExpansionMode.NONE),
        _join_word(value_tokens, depth, max_depth),
    )


def _join_word(run: Sequence[Token], depth: int, max_depth: int) -> Word:
    """Scan each token with the mode its quoting allows and concatenate."""
    text = ""
    expansions = []

    for index, token in enumerate(run):
        # Source text of the continuation, so ~"foo" is not read as a lone ~
        following = str(run[index + 1])[:1] if index + 1 < len(run) else ""
        part = scan_word(
            token.text,
            _SCAN_MODES[type(token)],
            start_of_word=index == 0,
            following=following,
            depth=depth,
            max_depth=max_depth,
        )
        expansions.extend(expansion.shifted(len(text)) for expansion in part.expansions)
        text += part.text

    return Word(text, expansions)


def _parse_redirect(
    token: RedirectOutput | RedirectInput,
    tokens: Sequence[Token],
    depth: int,
    max_depth: int,
) -> Redirect:
    if not token.target:
        raise ShellSyntaxError("syntax error near unexpected token `newline'", tokens)

    if token.target.startswith("&"):
        # Descriptor duplication: 2>&1
        target = Word(token.target)
    else:
        target = _join_word(tokenize(token.target), depth, max_depth)

    if isinstance(token, RedirectInput):
        return InputRedirect(target)
    return OutputRedirect(target, Word(token.fd) if token.fd else None, token.append)
