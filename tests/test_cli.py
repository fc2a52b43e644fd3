"""Tests for the command-line interface."""

from typer.testing import CliRunner

from gamehouse.cli import app
from gamehouse.db import SqliteSessionStore
from gamehouse.reporting import format_duration

from tests.conftest import at, make_record

runner = CliRunner()


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "track" in result.output
    assert "summary" in result.output


def test_summary_on_empty_database(tmp_path):
    result = runner.invoke(app, ["summary", "--db", str(tmp_path / "sessions.sqlite3")])
    assert result.exit_code == 0
    assert "No sessions recorded yet." in result.output


def test_summary_prints_leaderboards(tmp_path):
    path = tmp_path / "sessions.sqlite3"
    store = SqliteSessionStore.open(path)
    store.save(make_record(identity="u1", display_name="Alice", activity="chess", start=at(0), seconds=5400))
    store.save(make_record(identity="u2", display_name="Bob", activity="go", start=at(30), seconds=600))
    store.close()

    result = runner.invoke(app, ["summary", "--db", str(path), "--limit", "1", "--bucket", "900"])
    assert result.exit_code == 0
    assert "Nobody is playing right now." in result.output
    assert "chess" in result.output
    assert "01:30:00" in result.output
    assert "go " not in result.output.split("Top games:")[1].split("Top players:")[0]
    assert "Alice" in result.output
    assert "Peak concurrent players: 2" in result.output


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3661.9) == "01:01:01"
    assert format_duration(90061) == "25:01:01"
