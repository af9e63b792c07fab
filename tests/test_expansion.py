"""Tests for the expansion resolver."""

import pytest

from shellast.errors import UnresolvedExpansionError
from shellast.expansion import (
    command_vars,
    environment_snapshot,
    expand_command,
    expand_tree,
    expand_word,
    lookup,
)
from shellast.parser import parse
from shellast.syntax import (
    CommandExpansion,
    GlobExpansion,
    InputRedirect,
    OutputRedirect,
    ParameterExpansion,
    Word,
)
from shellast.words import scan_word


def first_command(line):
    return parse(line).commands[0].command


class TestLookup:
    def test_found(self):
        assert lookup([("A", "1")], "A") == "1"

    def test_missing(self):
        assert lookup([("A", "1")], "B") is None

    def test_last_binding_wins(self):
        assert lookup([("A", "1"), ("B", "x"), ("A", "2")], "A") == "2"

    def test_empty_value_is_bound(self):
        assert lookup([("A", "")], "A") == ""


class TestEnvironmentSnapshot:
    def test_from_mapping(self):
        assert environment_snapshot({"A": "1"}) == [("A", "1")]

    def test_from_pairs_is_a_copy(self):
        pairs = [("A", "1")]
        snapshot = environment_snapshot(pairs)
        snapshot.append(("B", "2"))
        assert pairs == [("A", "1")]

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("SHELLAST_TEST_VAR", "yes")
        assert ("SHELLAST_TEST_VAR", "yes") in environment_snapshot()


class TestExpandWord:
    def test_no_expansions(self):
        word = Word("plain")
        assert expand_word(word, []) == Word("plain")

    def test_parameters(self):
        word = scan_word("$A-$B")
        assert expand_word(word, [("A", "x"), ("B", "yz")]) == Word("x-yz")

    def test_braced_parameter(self):
        word = scan_word("file_${NAME}.txt")
        assert expand_word(word, [("NAME", "log")]) == Word("file_log.txt")

    def test_unset_parameter_is_kept_and_shifted(self):
        word = scan_word("$A $UNSET")
        expanded = expand_word(word, [("A", "hello")])
        assert expanded == Word("hello $UNSET", [ParameterExpansion("UNSET", 6, 11)])

    def test_empty_value_removes_reference(self):
        assert expand_word(scan_word("a${E}b"), [("E", "")]) == Word("ab")

    def test_tilde_uses_given_home(self):
        assert expand_word(scan_word("~/src"), [], home="/home/me") == Word("/home/me/src")

    def test_tilde_defaults_to_home_variable(self, monkeypatch):
        monkeypatch.setenv("HOME", "/tmp/somewhere")
        assert expand_word(scan_word("~"), []) == Word("/tmp/somewhere")

    def test_tilde_and_parameter(self):
        word = scan_word("--prefix=~/$SUB")
        assert expand_word(word, [("SUB", "opt")], home="/h") == Word("--prefix=/h/opt")

    def test_input_is_not_mutated(self):
        word = scan_word("$A $B")
        before = Word(word.text, list(word.expansions))
        expand_word(word, [("A", "long value")])
        assert word == before

    def test_command_substitution_is_unresolved(self):
        word = scan_word("$(ls)")
        with pytest.raises(UnresolvedExpansionError, match="command substitution") as exc_info:
            expand_word(word, [])
        assert isinstance(exc_info.value.expansion, CommandExpansion)

    def test_glob_is_unresolved(self):
        with pytest.raises(UnresolvedExpansionError, match=r"\*\.py") as exc_info:
            expand_word(scan_word("*.py"), [])
        assert exc_info.value.expansion == GlobExpansion("*.py", False, 0, 3)

    @pytest.mark.parametrize(
        "text",
        ["$A$B$C", "${A}x$UNSET${B}", "$UNSET/$A/~", "~/$A/$UNSET/$B", "$UNSET$UNSET"],
    )
    def test_kept_ranges_point_at_references(self, text):
        bindings = [("A", "aaaa"), ("B", ""), ("C", "c")]
        expanded = expand_word(scan_word(text), bindings, home="/root/home")
        for expansion in expanded.expansions:
            span = expanded.text[expansion.start : expansion.end + 1]
            assert span in (f"${expansion.name}", f"${{{expansion.name}}}")


class TestCommandVars:
    def test_assignments_override_environment_in_order(self):
        command = first_command("A=new B=$A C=~ env")
        bindings = command_vars(command, {"PATH": "/bin", "A": "old"}, home="/h")
        assert bindings == [("PATH", "/bin"), ("A", "new"), ("B", "new"), ("C", "/h")]

    def test_reassignment_sees_earlier_value(self):
        command = first_command("A=1 A=$A-2 env")
        assert lookup(command_vars(command, {}), "A") == "1-2"

    def test_unset_reference_stays_literal(self):
        command = first_command("A=$NOPE env")
        assert command_vars(command, {}) == [("A", "$NOPE")]

    def test_without_assignments(self):
        command = first_command(">out env")
        assert command_vars(command, {"X": "1"}) == [("X", "1")]

    def test_uses_process_environment_by_default(self, monkeypatch):
        monkeypatch.setenv("SHELLAST_TEST_VAR", "from-env")
        command = first_command("B=$SHELLAST_TEST_VAR env")
        assert lookup(command_vars(command), "B") == "from-env"

    def test_command_vars_method(self):
        command = first_command("A=1 env")
        assert command.vars({"Z": "0"}) == [("Z", "0"), ("A", "1")]

    def test_substitution_in_value_is_unresolved(self):
        command = first_command("A=$(date) env")
        with pytest.raises(UnresolvedExpansionError):
            command_vars(command, {})


class TestExpandCommand:
    def test_args_see_prefix_assignments(self):
        command = expand_command(first_command("A=x echo $A $HOME"), {"HOME": "/h"})
        assert command.args() == ["x", "/h"]

    def test_redirect_targets_are_expanded(self):
        command = expand_command(
            first_command("cat <$DIR/in >>~/out"), {"DIR": "/data"}, home="/h"
        )
        assert command.suffixes == [
            InputRedirect(Word("/data/in")),
            OutputRedirect(Word("/h/out"), None, True),
        ]

    def test_descriptor_target_untouched(self):
        command = expand_command(first_command("cmd 2>&1"), {})
        assert command.suffixes == [OutputRedirect(Word("&1"), Word("2"), False)]

    def test_original_command_untouched(self):
        original = first_command("echo $A")
        expand_command(original, {"A": "1"})
        assert original.suffixes == [Word("$A", [ParameterExpansion("A", 0, 1)])]


class TestExpandTree:
    def test_renders_expanded_tree(self):
        tree = parse("echo $GREETING ~ | tr a-z A-Z; ls '$HOME'")
        expanded = expand_tree(tree, {"GREETING": "hi there"}, home="/home/u")
        assert str(expanded) == "echo 'hi there' /home/u | tr a-z A-Z; ls '$HOME'"

    def test_assignments_do_not_leak_between_commands(self):
        tree = parse("A=1 echo $A; echo $A")
        expanded = expand_tree(tree, {})
        assert expanded.commands[0].command.args() == ["1"]
        assert expanded.commands[1].command.args() == ["$A"]

    def test_environment_read_once(self):
        env = {"A": "before"}
        tree = parse("echo $A")
        expanded = expand_tree(tree, env)
        env["A"] = "after"
        assert expanded.commands[0].command.args() == ["before"]

    def test_empty_tree(self):
        assert expand_tree(parse(""), {}).commands == []

    def test_substitution_raises(self):
        with pytest.raises(UnresolvedExpansionError):
            expand_tree(parse("echo $(whoami)"), {})
