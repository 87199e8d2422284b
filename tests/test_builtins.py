"""Tests for the built-in command dispatcher."""

from __future__ import annotations

import pytest

from shellpane.services.builtins import BuiltinDispatcher
from shellpane.storage.models import Exchange, StructuredPayload


@pytest.fixture
def dispatcher(context, history, error_history):
    return BuiltinDispatcher(context, history, error_history)


def run(dispatcher: BuiltinDispatcher, command: str) -> Exchange:
    exchange = dispatcher.dispatch("work % ", command, command.split())
    assert exchange is not None
    return exchange


def text(exchange: Exchange) -> str:
    assert isinstance(exchange.payload, StructuredPayload)
    return exchange.payload.text


class TestDispatch:
    def test_unknown_command_falls_through(self, dispatcher, history):
        assert dispatcher.dispatch("% ", "ls -l", ["ls", "-l"]) is None
        assert len(history) == 0

    def test_result_is_complete(self, dispatcher, history):
        exchange = run(dispatcher, "pwd")
        assert exchange.exit_status == 0
        assert history.exchanges == [exchange]

    def test_names(self, dispatcher):
        assert dispatcher.names == {"cd", "select", "deselect", "pwd", "history"}


class TestChdir:
    def test_relative(self, dispatcher, context, workdir):
        run(dispatcher, "cd docs")
        assert context.current_directory == workdir / "docs"

    def test_parent(self, dispatcher, context, workdir):
        run(dispatcher, "cd docs")
        run(dispatcher, "cd ..")
        assert context.current_directory == workdir

    def test_absolute(self, dispatcher, context, workdir):
        run(dispatcher, f"cd {workdir / 'src'}")
        assert context.current_directory == workdir / "src"

    def test_home(self, dispatcher, context, tmp_path):
        run(dispatcher, "cd")
        assert context.current_directory == tmp_path

    def test_missing_directory_is_silent(self, dispatcher, context, workdir, error_history):
        exchange = run(dispatcher, "cd nowhere")
        assert exchange.exit_status == 0
        assert context.current_directory == workdir
        assert len(error_history) == 0

    def test_file_is_silent(self, dispatcher, context, workdir):
        run(dispatcher, "cd report.txt")
        assert context.current_directory == workdir

    def test_navigation_truncates_forward(self, dispatcher, context):
        run(dispatcher, "cd docs")
        run(dispatcher, "pwd b")
        run(dispatcher, "cd src")
        assert not context.can_go_forward()


class TestSelect:
    def test_listing_unselected(self, dispatcher):
        assert text(run(dispatcher, "select")) == "docs\nnotes.md\nphoto.png\nreport.txt\nsrc"

    def test_patterns(self, dispatcher, context, workdir):
        run(dispatcher, "select *.md rep?rt.txt")
        assert context.selected_entries() == [workdir / "notes.md", workdir / "report.txt"]
        assert text(run(dispatcher, "deselect")) == "notes.md\nreport.txt"

    def test_nothing_to_select(self, dispatcher):
        run(dispatcher, "select *")
        assert text(run(dispatcher, "select")) == "nothing to select"

    def test_deselect_patterns(self, dispatcher, context, workdir):
        run(dispatcher, "select *")
        run(dispatcher, "deselect *.png d*")
        assert workdir / "photo.png" not in context.selection
        assert workdir / "docs" not in context.selection
        assert workdir / "src" in context.selection

    def test_nothing_to_deselect(self, dispatcher):
        assert text(run(dispatcher, "deselect")) == "nothing to deselect"

    def test_hidden_files_not_matched(self, dispatcher, context, workdir):
        run(dispatcher, "select .*")
        assert context.selection == set()


class TestPwd:
    def test_current(self, dispatcher, workdir):
        assert text(run(dispatcher, "pwd")) == str(workdir)

    def test_back_and_forward(self, dispatcher, workdir):
        run(dispatcher, "cd docs")
        assert text(run(dispatcher, "pwd back")) == str(workdir)
        assert text(run(dispatcher, "pwd f")) == str(workdir / "docs")

    def test_no_back_history(self, dispatcher, error_history):
        exchange = run(dispatcher, "pwd b")
        assert exchange.exit_status == 1
        assert text(exchange) == "no back history"
        assert [text(e) for e in error_history] == ["no back history"]

    def test_no_forward_history(self, dispatcher):
        exchange = run(dispatcher, "pwd forward")
        assert exchange.exit_status == 1
        assert text(exchange) == "no forward history"


class TestHistory:
    def test_empty(self, dispatcher):
        exchange = run(dispatcher, "history")
        assert exchange.exit_status == 1
        assert text(exchange) == "no history"

    def test_last_sixteen(self, dispatcher, history):
        for n in range(20):
            history.append(Exchange(prompt="% ", command=f"echo {n}", exit_status=0))
        lines = text(run(dispatcher, "history")).splitlines()
        assert len(lines) == 16
        assert lines[0] == "4 echo 4"
        assert lines[-1] == "19 echo 19"

    def test_range(self, dispatcher, history):
        for n in range(5):
            history.append(Exchange(prompt="% ", command=f"cmd{n}", exit_status=0))
        assert text(run(dispatcher, "history 1 2")) == "1 cmd1\n2 cmd2"

    def test_end_is_clamped(self, dispatcher, history):
        for n in range(3):
            history.append(Exchange(prompt="% ", command=f"cmd{n}", exit_status=0))
        assert text(run(dispatcher, "history 1 99")) == "1 cmd1\n2 cmd2"

    def test_start_out_of_range(self, dispatcher, history):
        history.append(Exchange(prompt="% ", command="ls", exit_status=0))
        exchange = run(dispatcher, "history 7")
        assert exchange.exit_status == 1
        assert text(exchange) == "no such event: 7"

    def test_includes_earlier_builtins(self, dispatcher):
        run(dispatcher, "pwd")
        assert text(run(dispatcher, "history")) == "0 pwd"
