"""Interactive front end: prompt, read, parse, expand, print the tree."""

import contextlib
import logging
import os
import readline
import sys

from shellast.errors import (
    IncompleteInputError,
    NestingLimitError,
    ShellSyntaxError,
    UnresolvedExpansionError,
    UnsupportedFeatureError,
)
from shellast.expansion import expand_tree
from shellast.parser import parse
from shellast.tokenizer import tokenize
from shellast.words import MAX_NESTING_DEPTH, check_max_depth

HISTORY_FILE = os.path.expanduser("~/.shellast_history")
CONTINUATION_PROMPT = "> "

logger = logging.getLogger(__name__)


class Shell:
    """Reads command lines and prints how they parse and expand."""

    def __init__(self, max_depth: int = MAX_NESTING_DEPTH) -> None:
        self.max_depth = check_max_depth(max_depth)
        self.last_exit_code: int = 0

    def load_history(self) -> None:
        with contextlib.suppress(FileNotFoundError, PermissionError, OSError):
            readline.read_history_file(HISTORY_FILE)

    def save_history(self) -> None:
        with contextlib.suppress(PermissionError, OSError):
            readline.write_history_file(HISTORY_FILE)

    def get_prompt(self) -> str:
        cwd = os.getcwd()
        home = os.path.expanduser("~")
        if cwd == home:
            display = "~"
        elif cwd.startswith(home + "/"):
            display = "~/" + cwd[len(home) + 1 :]
        else:
            display = cwd
        return f"{display} $ "

    def run_command(self, line: str) -> int:
        """Parse and expand *line*, printing the resolved rendering.

        Returns 0 on success, 1 if an expansion could not be resolved and 2
        for syntax errors and unsupported features.
        """
        try:
            tree = parse(line, max_depth=self.max_depth)
        except (ShellSyntaxError, UnsupportedFeatureError, NestingLimitError) as e:
            print(f"shellast: {e}", file=sys.stderr)
            self.last_exit_code = 2
            return self.last_exit_code

        try:
            expanded = expand_tree(tree)
        except UnresolvedExpansionError as e:
            print(f"shellast: {e}", file=sys.stderr)
            print(tree)
            self.last_exit_code = 1
            return self.last_exit_code

        if expanded.commands:
            print(expanded)
        self.last_exit_code = 0
        return self.last_exit_code

    def read_command(self) -> str:
        """Read one command, asking for more lines while a quote is open."""
        lines = [input(self.get_prompt())]
        while _is_incomplete("\n".join(lines)):
            lines.append(input(CONTINUATION_PROMPT))
        return "\n".join(lines)

    def run(self) -> None:
        """Read, parse and print commands until end of input."""
        self.load_history()
        readline.set_history_length(1000)

        try:
            while True:
                try:
                    line = self.read_command()
                except KeyboardInterrupt:
                    # Ctrl-C drops the line being typed
                    print()
                    continue
                except EOFError:
                    print()
                    return
                if line.strip():
                    self.run_command(line)
        finally:
            self.save_history()


def _is_incomplete(line: str) -> bool:
    try:
        tokenize(line)
    except IncompleteInputError:
        return True
    except ShellSyntaxError:
        # Reported once the line is run
        return False
    return False


def _max_depth_from_env() -> int:
    value = os.environ.get("SHELLAST_MAX_DEPTH")
    if not value:
        return MAX_NESTING_DEPTH
    try:
        return check_max_depth(int(value))
    except ValueError:
        logger.warning(
            "ignoring invalid SHELLAST_MAX_DEPTH=%r, expected 0..%d", value, MAX_NESTING_DEPTH
        )
        return MAX_NESTING_DEPTH


def main() -> None:
    """Entry point."""
    logging.basicConfig(
        level=os.environ.get("SHELLAST_LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    shell = Shell(max_depth=_max_depth_from_env())
    shell.run()
