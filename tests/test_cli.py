"""Tests for the legalai command line: argument parsing and subcommands."""

from __future__ import annotations

import json
import sys

import pytest

from legalai_engine.cli.args import build_root_parser
from legalai_engine.cli.simulate import build_simulate_config, run_simulate
from legalai_engine.core.progress_writer import read_run_summaries
from legalai_engine.ui import set_plain_mode

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="XDG config path")


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.chdir(tmp_path)
    set_plain_mode(True)
    yield tmp_path
    set_plain_mode(False)


@pytest.fixture
def legalai_main():
    import legalai
    return legalai.main


class TestParser:

    def test_simulate_args(self):
        args = build_root_parser().parse_args(
            ["simulate", "-m", "dora", "-e", "4", "--lr", "0.01", "--seed", "3"]
        )
        assert args.subcommand == "simulate"
        assert build_simulate_config(args) == {
            "modelType": "dora", "epochs": 4, "learningRate": 0.01,
        }
        assert args.seed == 3

    def test_simulate_rejects_unknown_model(self):
        with pytest.raises(SystemExit):
            build_root_parser().parse_args(["simulate", "-m", "gpt"])

    def test_settings_actions(self):
        args = build_root_parser().parse_args(["settings", "set", "theme", "dark"])
        assert (args.settings_action, args.key, args.value) == ("set", "theme", "dark")

    def test_history_defaults(self):
        args = build_root_parser().parse_args(["--plain", "history"])
        assert args.plain is True
        assert args.limit == 20
        assert args.json_output is False


class TestSimulate:

    def test_completed_run_exits_zero(self, capsys):
        args = build_root_parser().parse_args(
            ["simulate", "-m", "persian-bert", "-e", "3", "--delay", "0", "--seed", "1"]
        )
        assert run_simulate(args) == 0
        out = capsys.readouterr().out
        assert "completed (3 epochs)" in out

    def test_record_appends_summary(self, isolated):
        args = build_root_parser().parse_args(
            ["simulate", "-m", "qr-adaptor", "-e", "2", "--delay", "0", "--record"]
        )
        assert run_simulate(args) == 0
        runs = read_run_summaries(isolated / "config" / "legalai" / "runs")
        assert len(runs) == 1
        assert runs[0]["modelType"] == "qr-adaptor"


class TestMain:

    def test_no_subcommand_prints_help(self, legalai_main, capsys):
        assert legalai_main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_settings_set_and_show(self, legalai_main, capsys):
        assert legalai_main(["--plain", "settings", "set", "theme", "dark"]) == 0
        assert legalai_main(["--plain", "settings", "show"]) == 0
        assert "theme: dark" in capsys.readouterr().out

    def test_settings_unknown_key(self, legalai_main, capsys):
        assert legalai_main(["--plain", "settings", "set", "colour", "red"]) == 1
        assert "Unknown setting" in capsys.readouterr().err

    def test_history_json(self, legalai_main, capsys):
        assert legalai_main(
            ["--plain", "simulate", "-m", "dora", "-e", "1", "--delay", "0", "--record"]
        ) == 0
        capsys.readouterr()

        assert legalai_main(["--plain", "history", "--json"]) == 0
        runs = json.loads(capsys.readouterr().out)
        assert [r["modelType"] for r in runs] == ["dora"]
