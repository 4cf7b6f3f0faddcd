"""Tests for rendering bindings and masking values."""

import json
import shlex

import pytest

from sops_decrypt_hook.parsers import parse
from sops_decrypt_hook.render import fish_quote, mask_value, render


class TestMaskValue:
    """Tests for the mask_value function used by every diagnostic."""

    def test_mask_normal_value(self):
        """Normal values show first/last N chars."""
        result = mask_value("sk-1234567890abcdef", peek_chars=4)
        assert result == "sk-1********cdef"
        assert "1234567890ab" not in result  # Middle hidden

    def test_mask_short_value(self):
        """Short values are fully masked."""
        result = mask_value("secret", peek_chars=4)
        assert result == "******"

    def test_mask_empty_value(self):
        """Empty values return indicator."""
        assert mask_value("") == "(empty)"

    def test_mask_exact_boundary(self):
        """Values exactly 2*peek_chars are fully masked."""
        assert mask_value("12345678", peek_chars=4) == "********"

    def test_mask_long_middle(self):
        """Long middles are capped at 8 asterisks."""
        assert mask_value("a" * 100, peek_chars=4) == "aaaa********aaaa"


class TestRender:
    """Tests for shell and file renderers."""

    def test_bash_export_lines(self):
        out = render({"API_KEY": "test123", "GREETING": "hello world"}, "bash")
        assert out == "export API_KEY=test123\nexport GREETING='hello world'\n"

    def test_bash_values_never_expand(self):
        """Every rendered value is a single literal word."""
        value = "$(rm -rf /tmp/test) `id` $HOME it's"
        out = render({"CMD": value}, "zsh")
        words = shlex.split(out)
        assert words == ["export", f"CMD={value}"]

    def test_empty_value(self):
        assert render({"EMPTY": ""}, "bash") == "export EMPTY=''\n"

    def test_fish(self):
        assert render({"A": "it's \\ here"}, "fish") == "set -gx A 'it\\'s \\\\ here'\n"

    def test_fish_quote_plain(self):
        assert fish_quote("abc") == "'abc'"

    def test_dotenv_round_trips_through_parser(self):
        bindings = {"A": "plain", "B": "key=value", "C": '"quoted"', "D": "  spaced "}
        out = render(bindings, "dotenv")
        assert {p.key: p.value for p in parse(out, "dotenv")} == bindings

    def test_dotenv_multiline_escaped(self):
        assert render({"M": 'line1\nline2 "x"'}, "dotenv") == 'M="line1\\nline2 \\"x\\""\n'

    def test_json(self):
        assert json.loads(render({"A": "1", "B": "two"}, "json")) == {"A": "1", "B": "two"}

    def test_no_bindings(self):
        assert render({}, "bash") == ""

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            render({}, "powershell")

    @pytest.mark.parametrize("shell", ["bash", "zsh", "fish", "dotenv"])
    @pytest.mark.parametrize("name", ["X;touch pwned;Y", "A B", "$(id)", "1A", ""])
    def test_non_identifier_name_refused(self, shell, name):
        """Names are written unquoted, so only identifiers are allowed."""
        with pytest.raises(ValueError):
            render({name: "v"}, shell)
