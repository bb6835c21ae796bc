"""
Tests for the command-line interface.
"""

import argparse
import io
import json

import pytest

from finlite.__main__ import main, block_depth, cmd_repl, EXIT_OK, EXIT_ERRORS, EXIT_USAGE
from finlite.config import CONFIG_ENV_VAR, FinLiteConfig


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """No stray finlite.yaml or $FINLITE_CONFIG leaks into a test."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write(tmp_path, text, name="prog.fin"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


class TestRun:
    """finlite run FILE"""

    def test_run(self, tmp_path, capsys):
        path = write(tmp_path, "LET x = 1 + 2\nPRINT x\n")
        assert main(["run", path]) == EXIT_OK
        assert capsys.readouterr().out == "3\n"

    def test_runtime_error(self, tmp_path, capsys):
        path = write(tmp_path, "PRINT 1\nPRINT 1 / 0\n")
        assert main(["run", path]) == EXIT_ERRORS
        captured = capsys.readouterr()
        assert captured.out == "1\n"
        assert "E403" in captured.err

    def test_syntax_error(self, tmp_path, capsys):
        path = write(tmp_path, "LET = 5\n")
        assert main(["run", path]) == EXIT_ERRORS
        assert "E101" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["run", str(tmp_path / "nope.fin")]) == EXIT_USAGE
        assert "Error: File not found" in capsys.readouterr().err

    def test_verbose(self, tmp_path):
        path = write(tmp_path, "PRINT 1\n")
        assert main(["-v", "run", path]) == EXIT_OK

    def test_config_file(self, tmp_path, capsys):
        settings = write(tmp_path, "simulation_results_name: sims\n", "settings.yaml")
        path = write(tmp_path, "SCENARIO s\n    LET result = 1\nEND\nSIMULATE s RUNS 1\nPRINT sims\n")
        assert main(["--config", settings, "run", path]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["Simulation results: [1]", "[1]"]

    def test_config_in_working_directory(self, tmp_path, capsys):
        write(tmp_path, "simulation_results_name: sims\n", "finlite.yaml")
        path = write(tmp_path, "SCENARIO s\n    LET result = 2\nEND\nSIMULATE s\nPRINT sims\n")
        assert main(["run", path]) == EXIT_OK
        assert capsys.readouterr().out.splitlines()[-1] == "[2]"

    def test_bad_config(self, tmp_path, capsys):
        path = write(tmp_path, "PRINT 1\n")
        assert main(["--config", str(tmp_path / "missing.yaml"), "run", path]) == EXIT_USAGE
        assert "configuration file not found" in capsys.readouterr().err

    def test_no_command(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2


class TestCheck:
    """finlite check FILE [--json]"""

    def test_clean_file(self, tmp_path, capsys):
        path = write(tmp_path, "LET x = 1\nPRINT x\n")
        assert main(["check", path]) == EXIT_OK
        assert capsys.readouterr().out.strip() == "OK: prog.fin - 2 statement(s), no errors"

    def test_check_does_not_run(self, tmp_path, capsys):
        path = write(tmp_path, "PRINT 1 / 0\n")
        assert main(["check", path]) == EXIT_OK
        assert "OK:" in capsys.readouterr().out

    def test_errors(self, tmp_path, capsys):
        path = write(tmp_path, "LET = 5\n")
        assert main(["check", path]) == EXIT_ERRORS
        out = capsys.readouterr().out
        assert "error[E101]" in out
        assert "error(s)" in out

    def test_json(self, tmp_path, capsys):
        path = write(tmp_path, "LET = 5\nLET y = @\n")
        assert main(["check", path, "--json"]) == EXIT_ERRORS
        report = json.loads(capsys.readouterr().out)
        assert report["error_count"] == len(report["diagnostics"])
        codes = {d["code"] for d in report["diagnostics"]}
        assert "E001" in codes
        assert "E101" in codes

    def test_json_clean(self, tmp_path, capsys):
        path = write(tmp_path, "PRINT 1\n")
        assert main(["check", path, "--json"]) == EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"diagnostics": [], "error_count": 0}


class TestInspect:
    """finlite tokens / ast"""

    def test_tokens(self, tmp_path, capsys):
        path = write(tmp_path, "LET x = 1\n")
        assert main(["tokens", path]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert "LET" in lines[0]
        assert "'LET'" in lines[0]
        assert "EOF" in lines[-1]

    def test_tokens_lexical_error(self, tmp_path, capsys):
        path = write(tmp_path, "LET x = @\n")
        assert main(["tokens", path]) == EXIT_ERRORS
        assert "E001" in capsys.readouterr().err

    def test_ast(self, tmp_path, capsys):
        path = write(tmp_path, "LET x = 1\n")
        assert main(["ast", path]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("Program")
        assert "LetStatement" in out


class TestBlockDepth:
    """How the REPL decides an input is complete."""

    @pytest.mark.parametrize("source,depth", [
        ("LET x = 1", 0),
        ("IF x THEN", 1),
        ("IF x THEN\n    PRINT 1\nEND", 0),
        ("IF x THEN\n    PRINT 1\nELSE IF y THEN", 1),
        ("FOR i IN 1 TO 3\n    WHILE i < 2", 2),
        ("LET c = CASHFLOW", 1),
        ("PRINT (1 +", 1),
        ("LET a = [1,", 1),
    ])
    def test_depth(self, source, depth):
        assert block_depth(source) == depth


class TestRepl:
    """Interactive loop driven from a string."""

    def repl(self, text, capsys):
        args = argparse.Namespace(action="repl")
        assert cmd_repl(args, FinLiteConfig(), stdin=io.StringIO(text)) == EXIT_OK
        return capsys.readouterr()

    def test_bindings_persist(self, capsys):
        captured = self.repl("LET x = 2\nx * 3\n", capsys)
        assert captured.out.startswith("FinLite REPL")
        assert "6\n" in captured.out

    def test_block_is_buffered(self, capsys):
        captured = self.repl("FOR i IN 1 TO 3\n    PRINT i\nEND\n", capsys)
        assert "... " in captured.out
        assert "1\n2\n3\n" in captured.out

    def test_error_does_not_end_session(self, capsys):
        captured = self.repl("1 / 0\nLET y = 5\ny\n", capsys)
        assert "E403" in captured.err
        assert "5\n" in captured.out

    def test_blank_lines_skipped(self, capsys):
        captured = self.repl("\n\n7\n", capsys)
        assert "7\n" in captured.out
