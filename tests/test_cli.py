"""
CLI contract tests.
"""
from __future__ import annotations

import json

import pytest

from asyncreq import cli


class TestParseArgs:

    def test_serve_options(self):
        args = cli._parse_args(["--log-level", "DEBUG", "serve", "--host", "127.0.0.1", "--port", "9000"])
        assert args.command == "serve"
        assert args.host == "127.0.0.1"
        assert args.port == 9000
        assert args.log_level == "DEBUG"

    def test_simulate_defaults(self):
        args = cli._parse_args(["simulate"])
        assert args.requests == 100
        assert args.timeout == 8.0
        assert (args.low, args.high) == (5, 11)
        assert args.checkpoint == 1.0

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli._parse_args([])


class TestSimulate:

    def test_json_report(self, capsys):
        code = cli.main([
            "simulate",
            "--requests", "20",
            "--checkpoint", "0.2",
            "--seed", "5",
            "--json",
        ])
        data = json.loads(capsys.readouterr().out)

        assert code == 0
        assert data["ok"] is True
        assert sum(data["outcomes"].values()) == 20
        assert data["double_transmissions"] == 0

    def test_text_report(self, capsys):
        code = cli.main(["simulate", "--requests", "5", "--fault-probability", "1"])
        out = capsys.readouterr().out

        assert code == 0
        assert "failure: 5 (100.0%)" in out
        assert "Result: OK" in out

    def test_serve_runs_uvicorn(self, monkeypatch):
        calls = {}

        def fake_run(app, **kwargs):
            calls["app"] = app
            calls.update(kwargs)

        monkeypatch.setattr("uvicorn.run", fake_run)
        assert cli.main(["serve", "--port", "9123"]) == 0
        assert calls["port"] == 9123
        assert calls["app"].title == "asyncreq API"
