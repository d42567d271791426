"""Tests for the shell integration block scanner and writer."""
from __future__ import annotations

from pathlib import Path

import pytest

from straylight.payload import ALIASES, MARKER
from straylight.shell import BlockScanner, ScanState, ShellIntegration, is_block_line
from straylight.templates import TemplateEngine

ENV_FILE = Path("/home/user/.config/straylight/env")


@pytest.fixture
def shell() -> ShellIntegration:
    return ShellIntegration(templates=TemplateEngine.with_overrides(None))


def _block_lines(shell: ShellIntegration) -> list[str]:
    return shell.render_block(ENV_FILE).splitlines(keepends=True)


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("\n", True),
        ("   \n", True),
        ("# comment\n", True),
        ("alias oc='opencode'\n", True),
        ('[ -f "/x" ] && . "/x"\n', True),
        ("export PATH=/bin\n", False),
        ("aliases=1\n", False),
    ],
)
def test_block_line_classification(line: str, expected: bool) -> None:
    """Only blank, comment, alias and source lines belong to a block."""
    assert is_block_line(line) is expected


def test_strip_removes_block_and_separator(shell: ShellIntegration) -> None:
    """The block and the blank line before it disappear, the rest stays."""
    lines = ["export A=1\n", "\n", *_block_lines(shell), "export B=2\n"]

    result = BlockScanner().strip(lines)

    assert result.kept == ["export A=1\n", "export B=2\n"]
    assert result.markers == 1
    assert result.removed == len(ALIASES) + 3


def test_strip_without_marker_is_identity() -> None:
    """Files without the marker are returned unchanged."""
    lines = ["alias ll='ls -l'\n", "# my comment\n"]

    result = BlockScanner().strip(lines)

    assert result.kept == lines
    assert result.markers == 0
    assert result.removed == 0


def test_manual_edit_inside_block_ends_it_early(shell: ShellIntegration) -> None:
    """A hand-written line between aliases stops the scan; later aliases survive."""
    block = _block_lines(shell)
    lines = ["export A=1\n", "\n", *block[:3], "export EDITOR=vim\n", *block[3:]]

    scanner = BlockScanner()
    result = scanner.strip(lines)

    assert result.kept == ["export A=1\n", "export EDITOR=vim\n", *block[3:]]
    assert scanner.state is ScanState.BEFORE_MARKER


def test_strip_handles_repeated_blocks(shell: ShellIntegration) -> None:
    """Every marker occurrence is removed."""
    block = _block_lines(shell)
    lines = [*block, "export A=1\n", "\n", *block]

    result = BlockScanner().strip(lines)

    assert result.kept == ["export A=1\n"]
    assert result.markers == 2


def test_ensure_block_appends_once(tmp_path: Path, shell: ShellIntegration) -> None:
    """Appending is idempotent and terminates an unfinished last line."""
    rc_file = tmp_path / ".bashrc"
    rc_file.write_text("export A=1", encoding="utf-8")

    first = shell.ensure_block(rc_file, ENV_FILE)
    second = shell.ensure_block(rc_file, ENV_FILE)

    assert first.appended is True
    assert second.appended is False
    content = rc_file.read_text(encoding="utf-8")
    assert content.startswith("export A=1\n" + MARKER + "\n")
    assert content.count(MARKER) == 1
    assert shell.has_block(rc_file) is True


def test_ensure_block_creates_missing_file(tmp_path: Path, shell: ShellIntegration) -> None:
    """A missing rc file is created holding only the block."""
    rc_file = tmp_path / ".zshrc"

    shell.ensure_block(rc_file, ENV_FILE)

    assert rc_file.read_text(encoding="utf-8") == shell.render_block(ENV_FILE)


def test_append_then_remove_restores_original(tmp_path: Path, shell: ShellIntegration) -> None:
    """Removing the block returns the file to its prior bytes and mode."""
    rc_file = tmp_path / ".bashrc"
    original = "# user config\nexport A=1\nalias ll='ls -l'\n"
    rc_file.write_text(original, encoding="utf-8")
    rc_file.chmod(0o640)

    shell.ensure_block(rc_file, ENV_FILE)
    outcome = shell.remove_block(rc_file)

    assert outcome.removed_lines == len(ALIASES) + 3
    assert rc_file.read_text(encoding="utf-8") == original
    assert rc_file.stat().st_mode & 0o777 == 0o640


def test_remove_block_keeps_non_utf8_bytes(tmp_path: Path, shell: ShellIntegration) -> None:
    """Undecodable bytes outside the block are written back verbatim."""
    rc_file = tmp_path / ".bashrc"
    original = b"export NAME='\xff\xfe'\n"
    rc_file.write_bytes(original)
    with rc_file.open("a", encoding="utf-8") as handle:
        handle.write("\n" + shell.render_block(ENV_FILE))

    shell.remove_block(rc_file)

    assert rc_file.read_bytes() == original


def test_remove_block_can_delete_file_left_empty(tmp_path: Path, shell: ShellIntegration) -> None:
    """A file holding only the block is deleted when requested."""
    rc_file = tmp_path / ".zshrc"
    shell.ensure_block(rc_file, ENV_FILE)

    outcome = shell.remove_block(rc_file, delete_if_empty=True)

    assert outcome.deleted_file is True
    assert not rc_file.exists()


def test_remove_block_on_missing_file_is_noop(tmp_path: Path, shell: ShellIntegration) -> None:
    """Nothing happens for files that do not exist."""
    outcome = shell.remove_block(tmp_path / ".bashrc")
    assert outcome.removed_lines == 0
    assert outcome.deleted_file is False


def test_remove_block_restores_missing_trailing_newline(
    tmp_path: Path, shell: ShellIntegration
) -> None:
    """A file without a final newline gets exactly its old bytes back."""
    rc_file = tmp_path / ".bashrc"
    rc_file.write_bytes(b"export A=1")

    shell.ensure_block(rc_file, ENV_FILE)
    shell.remove_block(rc_file)

    assert rc_file.read_bytes() == b"export A=1"


def test_strip_drops_newline_added_before_unseparated_marker(shell: ShellIntegration) -> None:
    """A marker right after a content line takes that line's newline with it."""
    lines = ["export A=1\n", *_block_lines(shell)]

    result = BlockScanner().strip(lines)

    assert result.kept == ["export A=1"]
