"""Tests for the ``python -m stepper`` command line."""

import json

from stepper.__main__ import main


class TestCli:
    def test_demo_mode(self, capsys):
        assert main([]) == 0
        out = capsys.readouterr().out
        assert "Using built-in demo" in out
        assert "Pipeline Statistics" in out

    def test_json_output(self, tmp_path, capsys):
        path = tmp_path / "prog.js"
        path.write_text("let x = 1;\nx += 2;\n")
        assert main([str(path), "--json"]) == 0
        steps = json.loads(capsys.readouterr().out)
        assert [s["variables"] for s in steps] == [{"x": 1}, {"x": 3}]

    def test_limits_are_forwarded(self, tmp_path, capsys):
        path = tmp_path / "spin.js"
        path.write_text("let n = 0;\nwhile (true) {\n  n++;\n}\n")
        assert main([str(path), "--json", "--max-iterations", "3"]) == 0
        steps = json.loads(capsys.readouterr().out)
        assert steps[-1]["variables"] == {"n": 3}
        assert "iterations guard" in steps[-1]["message"]

    def test_typescript_flag(self, tmp_path, capsys):
        path = tmp_path / "prog.ts"
        path.write_text("let n: number = 2;\n")
        assert main([str(path), "--language", "typescript", "--json"]) == 0
        assert json.loads(capsys.readouterr().out)[0]["variables"] == {"n": 2}

    def test_parse_error_exit_code(self, tmp_path, capsys):
        path = tmp_path / "bad.js"
        path.write_text("let = ;\n")
        assert main([str(path)]) == 1
        assert "error:" in capsys.readouterr().err

    def test_invalid_limit_exit_code(self, tmp_path, capsys):
        path = tmp_path / "ok.js"
        path.write_text("1;\n")
        assert main([str(path), "--max-steps", "0"]) == 1
        assert "max_steps" in capsys.readouterr().err
