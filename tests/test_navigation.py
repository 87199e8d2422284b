"""Tests for browsing state and filesystem lookups."""

from __future__ import annotations

from shellpane.services.navigation import ShellContext
from shellpane.utils.system import is_directory, list_directory


class TestListDirectory:
    def test_sorted_and_hidden_skipped(self, workdir):
        names = [entry.name for entry in list_directory(workdir)]
        assert names == ["docs", "notes.md", "photo.png", "report.txt", "src"]

    def test_include_hidden(self, workdir):
        names = [entry.name for entry in list_directory(workdir, include_hidden=True)]
        assert ".hidden" in names

    def test_missing_directory(self, tmp_path):
        assert list_directory(tmp_path / "missing") == []

    def test_is_directory(self, workdir):
        assert is_directory(workdir / "docs")
        assert not is_directory(workdir / "report.txt")
        assert not is_directory(workdir / "missing")


class TestShellContext:
    def test_initial_state(self, context, workdir):
        assert context.current_directory == workdir
        assert not context.can_go_back()
        assert not context.can_go_forward()
        assert len(context.entries) == 5

    def test_open_and_back_forward(self, context, workdir):
        assert context.open(workdir / "docs")
        assert context.current_directory == workdir / "docs"
        assert context.entries == []

        assert context.go_back()
        assert context.current_directory == workdir
        assert context.go_forward()
        assert context.current_directory == workdir / "docs"
        assert not context.go_forward()

    def test_open_truncates_forward_history(self, context, workdir):
        context.open(workdir / "docs")
        context.go_back()
        context.open(workdir / "src")
        assert not context.can_go_forward()
        assert context.navigation_history == [workdir, workdir / "src"]

    def test_open_rejects_files(self, context, workdir):
        assert not context.open(workdir / "report.txt")
        assert context.current_directory == workdir

    def test_refresh_picks_up_new_files(self, context, workdir):
        (workdir / "new.txt").write_text("x")
        assert workdir / "new.txt" not in context.entries
        context.refresh()
        assert workdir / "new.txt" in context.entries

    def test_selection(self, context, workdir):
        context.select(workdir / "report.txt")
        assert context.selected_entries() == [workdir / "report.txt"]
        assert workdir / "report.txt" not in context.unselected_entries()
        context.deselect(workdir / "report.txt")
        assert context.selected_entries() == []

    def test_defaults_to_home(self, tmp_path):
        context = ShellContext(home=tmp_path)
        assert context.current_directory == tmp_path
