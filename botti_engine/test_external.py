"""
Tests for the helper-process runner and the memo store.

The runner tests use the current Python interpreter as a stand-in for
the renderer and the sandbox.

Run with:  python -m pytest botti_engine/test_external.py -v
"""

import sys

import pytest

from botti_engine.errors import ExternalProcessError, NotFoundError, ValidationError
from botti_engine.external import MemoStore, ProcessOutput, ProcessRunner, validate_memo_name


# Copies the formula from stdin into the file named by argv[1].
ECHO_RENDERER = [
    sys.executable, "-c",
    "import sys; open(sys.argv[1], 'w').write(sys.stdin.read())",
    "{output}",
]


class TestProcessOutput:

    def test_stdout_then_stderr(self):
        assert ProcessOutput("out\n", "err\n", 1).format() == "out\nerr"

    def test_blank_streams_skipped(self):
        assert ProcessOutput("", "  \n", 0).format() == ""


class TestRunCode:

    def test_stdout_captured(self):
        runner = ProcessRunner(interpreter_command=[sys.executable, "-"])
        output = runner.run_code("print('hello')")
        assert output.stdout == "hello\n"
        assert output.returncode == 0

    def test_stderr_captured(self):
        runner = ProcessRunner(interpreter_command=[sys.executable, "-"])
        output = runner.run_code("import sys; sys.stderr.write('oops\\n'); sys.exit(3)")
        assert output.format() == "oops"
        assert output.returncode == 3

    def test_not_configured(self):
        with pytest.raises(ExternalProcessError, match="No interpreter configured"):
            ProcessRunner().run_code("print(1)")

    def test_timeout(self):
        runner = ProcessRunner(interpreter_command=[sys.executable, "-"], timeout=0.5)
        with pytest.raises(ExternalProcessError) as exc:
            runner.run_code("import time; time.sleep(10)")
        assert str(exc.value) == "Error: Timed out after 0.5 seconds."

    def test_missing_executable(self):
        runner = ProcessRunner(interpreter_command=["/nonexistent/botti-sandbox"])
        with pytest.raises(ExternalProcessError) as exc:
            runner.run_code("print(1)")
        assert str(exc.value) == "Error: Cannot start /nonexistent/botti-sandbox."


class TestRenderFormula:

    def test_image_written_to_output_dir(self, tmp_path):
        runner = ProcessRunner(math_command=ECHO_RENDERER, output_dir=tmp_path)
        path = runner.render_formula("x^2")
        assert path.parent == tmp_path
        assert path.name.startswith("formula-")
        assert path.read_text() == "x^2"

    def test_each_render_gets_its_own_file(self, tmp_path):
        runner = ProcessRunner(math_command=ECHO_RENDERER, output_dir=tmp_path)
        assert runner.render_formula("a") != runner.render_formula("b")

    def test_renderer_failure(self, tmp_path):
        runner = ProcessRunner(
            math_command=[sys.executable, "-c", "import sys; sys.exit(1)"],
            output_dir=tmp_path,
        )
        with pytest.raises(ExternalProcessError, match="Cannot render formula"):
            runner.render_formula("x")

    def test_renderer_that_writes_nothing(self, tmp_path):
        runner = ProcessRunner(math_command=[sys.executable, "-c", "pass"], output_dir=tmp_path)
        with pytest.raises(ExternalProcessError, match="Cannot render formula"):
            runner.render_formula("x")

    def test_not_configured(self):
        with pytest.raises(ExternalProcessError, match="No formula renderer configured"):
            ProcessRunner().render_formula("x")


class TestValidateMemoName:

    @pytest.mark.parametrize("name", ["a", "notes", "Memo2024", "a" * 20])
    def test_valid(self, name):
        assert validate_memo_name(name) == name

    @pytest.mark.parametrize("name", ["", "a" * 21, "foo!bar", "../x", "two words", "ümlaut"])
    def test_invalid(self, name):
        with pytest.raises(ValidationError):
            validate_memo_name(name)


class TestMemoStore:

    def test_put_creates_directory(self, tmp_path):
        store = MemoStore(tmp_path / "memos")
        store.put("notes", "hello")
        assert (tmp_path / "memos" / "notes.txt").read_text(encoding="utf-8") == "hello"

    def test_get_round_trip_unicode(self, tmp_path):
        store = MemoStore(tmp_path)
        store.put("greet", "grüße 🎲")
        assert store.get("greet") == "grüße 🎲"

    def test_get_missing(self, tmp_path):
        with pytest.raises(NotFoundError, match="Cannot find memo 'nope'"):
            MemoStore(tmp_path).get("nope")

    def test_delete(self, tmp_path):
        store = MemoStore(tmp_path)
        store.put("gone", "x")
        store.delete("gone")
        assert not (tmp_path / "gone.txt").exists()
        with pytest.raises(NotFoundError):
            store.delete("gone")

    def test_put_overwrites(self, tmp_path):
        store = MemoStore(tmp_path)
        store.put("notes", "old")
        store.put("notes", "new")
        assert store.get("notes") == "new"

    def test_bad_name_rejected_before_io(self, tmp_path):
        store = MemoStore(tmp_path / "memos")
        with pytest.raises(ValidationError):
            store.put("../escape", "x")
        assert not (tmp_path / "memos").exists()
