"""Tests for the piq command line interface."""

from __future__ import annotations

import functools
import json
import logging

import pytest

from piq.interfaces.cli import main as cli_main
from piq.interfaces.cli.main import _parse_assignments, build_parser, main


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestMatchAndBuild:
    def test_match_prints_params(self, capsys):
        assert main(["match", "posts/{?date}/{slug}.md", "posts/2024-01-01/x.md"]) == 0
        assert json.loads(capsys.readouterr().out) == {"date": "2024-01-01", "slug": "x"}

    def test_match_no_match(self, capsys):
        assert main(["match", "{year}/{slug}.md", "nope"]) == 1
        assert capsys.readouterr().out == ""

    def test_match_bad_pattern(self):
        assert main(["match", "{year", "x"]) == 2

    def test_build_prints_path(self, capsys):
        assert main(["build", "posts/{?date}/{slug}.md", "slug=x"]) == 0
        assert capsys.readouterr().out.strip() == "posts/x.md"

    def test_build_missing_param(self):
        assert main(["build", "{year}/{slug}.md", "year=2024"]) == 1

    def test_build_malformed_assignment(self):
        assert main(["build", "{slug}.md", "slug"]) == 2


class TestListAndQuery:
    def test_list(self, collections_file, capsys):
        assert main(["list", "--collections", str(collections_file)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0].startswith("posts: ")
        assert out[0].endswith("[params, meta, body] - Blog posts")
        assert out[1].startswith("raw: ")

    def test_list_missing_file(self, tmp_path):
        assert main(["list", "--collections", str(tmp_path / "missing.yaml")]) == 2

    def test_query_json(self, collections_file, capsys):
        code = main(
            [
                "--errors-only",
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--scan",
                "year=2024",
                "--filter",
                "status=published",
                "--select",
                "params.slug",
                "--select",
                "meta.title",
            ]
        )
        assert code == 0
        assert json.loads(capsys.readouterr().out) == [{"slug": "hello", "title": "Hello"}]

    def test_query_aliases_and_csv(self, collections_file, capsys):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--alias",
                "name=params.slug",
                "--format",
                "csv",
            ]
        )
        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["name", "old", "draft", "hello"]

    def test_query_stream_with_limit(self, collections_file, capsys):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "params.slug",
                "--stream",
                "--concurrency",
                "2",
                "--limit",
                "2",
            ]
        )
        assert code == 0
        assert len(json.loads(capsys.readouterr().out)) == 2

    def test_query_strict_single_fails_on_many(self, collections_file):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "params.slug",
                "--strict-single",
            ]
        )
        assert code == 1

    def test_query_single(self, collections_file, capsys):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--scan",
                "slug=draft",
                "--select",
                "meta.status",
                "--single",
            ]
        )
        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"status": "draft"}

    def test_query_distinct(self, collections_file, capsys):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "meta.status",
                "--distinct",
                "status",
            ]
        )
        assert code == 0
        assert json.loads(capsys.readouterr().out) == [
            {"status": "published", "count": 2},
            {"status": "draft", "count": 1},
        ]

    def test_query_unknown_field(self, collections_file):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "meta.author",
            ]
        )
        assert code == 2

    def test_query_without_selection(self, collections_file):
        assert main(["query", "posts", "--collections", str(collections_file)]) == 2

    def test_query_empty_result(self, collections_file, capsys):
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--scan",
                "year=1999",
                "--select",
                "params.slug",
            ]
        )
        assert code == 1
        assert json.loads(capsys.readouterr().out) == []

    def test_query_over_the_row_cap_fails_loudly(self, collections_file, capsys, monkeypatch):
        capped = functools.partial(cli_main.materialize_result, max_rows=1)
        monkeypatch.setattr(cli_main, "materialize_result", capped)
        code = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "params.slug",
            ]
        )
        assert code == 1
        assert capsys.readouterr().out == ""
        limited = main(
            [
                "query",
                "posts",
                "--collections",
                str(collections_file),
                "--select",
                "params.slug",
                "--limit",
                "1",
            ]
        )
        assert limited == 0
        assert len(json.loads(capsys.readouterr().out)) == 1


def test_parse_assignments_typed():
    assert _parse_assignments(["a=true", "b=3", "c=text", "d="], typed=True) == {
        "a": True,
        "b": 3,
        "c": "text",
        "d": "",
    }
    assert _parse_assignments(["year=2024"]) == {"year": "2024"}
    assert _parse_assignments(None) is None


def test_parser_rejects_conflicting_modes():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["query", "posts", "--single", "--stream"])
