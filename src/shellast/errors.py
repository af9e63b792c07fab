"""Exception types raised while tokenizing, parsing and expanding."""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shellast.syntax import Expansion


class ShellError(Exception):
    """Base class for every error raised by shellast."""


class ShellSyntaxError(ShellError, ValueError):
    """The input does not form a valid command line.

    ``tokens`` holds the token run that could not be parsed, when known.
    """

    def __init__(self, message: str, tokens: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.tokens = list(tokens)


class IncompleteInputError(ShellSyntaxError):
    """A quote or command substitution was left open at end of input."""


class UnsupportedFeatureError(ShellError):
    def __init__(self, feature: str) -> None:
        super().__init__(f"{feature} is not yet supported")
        self.feature = feature


class UnresolvedExpansionError(ShellError):
    """An expansion needs execution or filesystem access to resolve."""

    def __init__(self, expansion: "Expansion", message: str) -> None:
        super().__init__(message)
        self.expansion = expansion


class NestingLimitError(ShellError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"command substitution nested deeper than {limit} levels")
        self.limit = limit
