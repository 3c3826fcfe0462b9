"""Tests for CLI helper functions."""

import pytest
import typer

from skillchain.cli.utils import database_url, parse_json_option


class TestDatabaseUrl:
    def test_bare_path_becomes_sqlite(self, tmp_path):
        path = tmp_path / "nested" / "chains.db"
        assert database_url(str(path)) == f"sqlite:///{path}"
        assert path.parent.is_dir()

    def test_url_kept(self):
        assert database_url("postgresql://db/chains") == "postgresql://db/chains"

    def test_memory(self):
        assert database_url("sqlite:///:memory:") == "sqlite:///:memory:"

    def test_falls_back_to_settings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SKILLCHAIN_DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
        assert database_url() == f"sqlite:///{tmp_path / 'env.db'}"


class TestParseJsonOption:
    def test_none(self):
        assert parse_json_option(None, "--input") is None

    def test_object(self):
        assert parse_json_option('{"a": 1}', "--input") == {"a": 1}

    @pytest.mark.parametrize("value", ["{not json", "[1, 2]"])
    def test_rejected(self, value):
        with pytest.raises(typer.Exit):
            parse_json_option(value, "--input")
