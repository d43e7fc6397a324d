"""Tests for git command templates."""

import shlex

import pytest

from sismo_mcp.build.commands import (
    DEFAULT_GIT_COMMANDS,
    SHOW_FORMAT,
    CommandTemplates,
    default_substitutions,
)
from sismo_mcp.build.state import UnknownOperation


@pytest.fixture
def substitutions():
    return default_substitutions("https://example.com/repo.git", "/tmp/build/abc123", "main")


class TestDefaults:
    """Tests for the built-in template set."""

    def test_all_operations_present(self):
        """Test every operation has a default template."""
        templates = CommandTemplates()

        assert templates.operations == {"clone", "fetch", "prepare", "checkout", "reset", "show"}

    def test_overrides_merge_over_defaults(self):
        """Test overriding one template keeps the others."""
        templates = CommandTemplates(overrides={"fetch": "fetch origin --prune"})

        assert templates.templates["fetch"] == "fetch origin --prune"
        assert templates.templates["clone"] == DEFAULT_GIT_COMMANDS["clone"]

    def test_overrides_can_add_operations(self):
        """Test an override may introduce a new operation."""
        templates = CommandTemplates(overrides={"gc": "gc --auto"})
        assert "gc" in templates.operations

    def test_templates_immutable(self):
        """Test the template mapping cannot be mutated."""
        templates = CommandTemplates()

        with pytest.raises(TypeError):
            templates.templates["fetch"] = "fetch --all"

    def test_caller_mapping_copied(self):
        """Test later changes to the caller's dict have no effect."""
        overrides = {"fetch": "fetch upstream"}
        templates = CommandTemplates(overrides=overrides)
        overrides["fetch"] = "fetch elsewhere"

        assert templates.templates["fetch"] == "fetch upstream"


class TestRender:
    """Tests for CommandTemplates.render."""

    def test_unknown_operation(self, substitutions):
        """Test rendering an unknown operation fails."""
        with pytest.raises(UnknownOperation, match="push"):
            CommandTemplates().render("push", substitutions)

    def test_clone(self, substitutions):
        """Test clone substitutes repository, directory and local branch."""
        command = CommandTemplates().render("clone", substitutions)

        assert command == (
            "git clone --progress --recursive https://example.com/repo.git "
            "/tmp/build/abc123 --branch main"
        )

    def test_checkout_uses_remote_branch(self, substitutions):
        """Test checkout pins the origin-qualified branch."""
        command = CommandTemplates().render("checkout", substitutions)
        assert command == "git checkout -q -f origin/main"

    def test_git_path_prefix(self, substitutions):
        """Test the configured git binary prefixes the command."""
        command = CommandTemplates("/usr/local/bin/git").render("fetch", substitutions)
        assert command == "/usr/local/bin/git fetch origin"

    def test_show_format_and_revision(self, substitutions):
        """Test show uses the fixed format and the escaped revision."""
        command = CommandTemplates().render("show", substitutions, {"%revision%": "abc123"})

        assert command == f"git show -s --pretty=format:{SHOW_FORMAT} abc123"

    def test_revision_is_escaped(self, substitutions):
        """Test a hostile revision is one quoted argument."""
        command = CommandTemplates().render(
            "reset", substitutions, {"%revision%": "HEAD; touch pwned"}
        )

        assert command == "git reset --hard 'HEAD; touch pwned'"
        assert shlex.split(command)[-1] == "HEAD; touch pwned"

    def test_repository_metacharacters_escaped(self):
        """Test a repository with shell metacharacters stays one argument."""
        subs = default_substitutions("repo; rm -rf /", "/tmp/build/x", "main")

        command = CommandTemplates().render("clone", subs)

        assert "'repo; rm -rf /'" in command
        assert shlex.split(command)[4] == "repo; rm -rf /"

    def test_branch_metacharacters_escaped(self):
        """Test a hostile branch is quoted in both branch placeholders."""
        subs = default_substitutions("/srv/repo", "/tmp/build/x", "$(reboot)")

        clone = shlex.split(CommandTemplates().render("clone", subs))
        checkout = shlex.split(CommandTemplates().render("checkout", subs))

        assert clone[-1] == "$(reboot)"
        assert checkout[-1] == "origin/$(reboot)"

    def test_substituted_values_not_rescanned(self):
        """Test a value containing a placeholder is left literal."""
        subs = default_substitutions("%dir%", "/tmp/build/x", "main")

        command = CommandTemplates().render("clone", subs)

        assert shlex.split(command)[4] == "%dir%"

    def test_all_default_placeholders_substituted(self, substitutions):
        """Test no placeholder survives rendering of the defaults."""
        templates = CommandTemplates()
        for operation in templates.operations:
            command = templates.render(operation, substitutions, {"%revision%": "abc"})
            for placeholder in ("%repo%", "%dir%", "%branch%", "%localbranch%",
                                "%revision%", "%format%"):
                assert placeholder not in command

    def test_percent_before_placeholder(self):
        """Test a literal % right before a placeholder does not hide it."""
        templates = CommandTemplates(overrides={"log": "log --format=%n%revision%"})

        command = templates.render("log", {}, {"%revision%": "abc"})

        assert command == "git log --format=%nabc"

    def test_unknown_percent_tokens_kept(self, substitutions):
        """Test %tokens% that are not substitutions stay literal."""
        templates = CommandTemplates(overrides={"log": "log --format=%H%n%an% %revision%"})

        command = templates.render("log", substitutions, {"%revision%": "abc"})

        assert command == "git log --format=%H%n%an% abc"
