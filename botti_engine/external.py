"""
External Collaborators
======================

Thin wrappers around things the engine does not do itself:

ProcessRunner
    Runs the formula renderer (text → image file) and the sandboxed
    interpreter (code → stdout/stderr) as subprocesses with a timeout.
    Any failure is raised as ExternalProcessError, which command
    handlers report to the issuer; it never reaches the engine loop.

MemoStore
    One UTF-8 text file per memo in a directory. Names are validated
    (letters and digits, at most 20) before any path is built, so a
    bad name never touches the file system.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from botti_engine.errors import ExternalProcessError, NotFoundError, ValidationError


MAX_MEMO_NAME = 20


# ─── Process Runner ─────────────────────────────────────────────────

@dataclass
class ProcessOutput:
    stdout: str
    stderr: str
    returncode: int

    def format(self) -> str:
        """stdout, then stderr, without trailing blank lines."""
        parts = [p.rstrip("\n") for p in (self.stdout, self.stderr) if p.strip()]
        return "\n".join(parts)


class ProcessRunner:
    """Runs the configured helper commands.

    Parameters
    ----------
    math_command : list[str]
        Renderer argv. The formula is written to stdin and the
        literal "{output}" in any argument is replaced by the image
        path the renderer must write.
    interpreter_command : list[str]
        Sandboxed interpreter argv. Code is written to stdin.
    timeout : float
        Seconds before a helper is killed.
    output_dir : Path or None
        Where rendered images go (a temp dir by default).
    """

    def __init__(
        self,
        math_command: Optional[Sequence[str]] = None,
        interpreter_command: Optional[Sequence[str]] = None,
        timeout: float = 10.0,
        output_dir: Optional[Path] = None,
    ):
        self.math_command = list(math_command or [])
        self.interpreter_command = list(interpreter_command or [])
        self.timeout = timeout
        self.output_dir = Path(output_dir) if output_dir else Path(tempfile.gettempdir())
        self.logger = logging.getLogger(__name__)

    @property
    def can_render(self) -> bool:
        return bool(self.math_command)

    @property
    def can_run_code(self) -> bool:
        return bool(self.interpreter_command)

    def render_formula(self, formula: str) -> Path:
        """Render a formula to an image and return its path."""
        if not self.can_render:
            raise ExternalProcessError("Error: No formula renderer configured.")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        output = self.output_dir / f"formula-{uuid.uuid4().hex}.png"
        argv = [arg.replace("{output}", str(output)) for arg in self.math_command]

        result = self._run(argv, formula)
        if result.returncode != 0 or not output.exists():
            self.logger.warning(f"Renderer failed ({result.returncode}): {result.stderr.strip()}")
            raise ExternalProcessError("Error: Cannot render formula.")
        return output

    def run_code(self, code: str) -> ProcessOutput:
        if not self.can_run_code:
            raise ExternalProcessError("Error: No interpreter configured.")
        return self._run(self.interpreter_command, code)

    def _run(self, argv: List[str], stdin_text: str) -> ProcessOutput:
        self.logger.debug(f"Running {argv}")
        try:
            completed = subprocess.run(
                argv,
                input=stdin_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExternalProcessError(f"Error: Timed out after {self.timeout:g} seconds.")
        except OSError as e:
            self.logger.error(f"Cannot start {argv[0]}: {e}")
            raise ExternalProcessError(f"Error: Cannot start {argv[0]}.")
        return ProcessOutput(completed.stdout, completed.stderr, completed.returncode)


# ─── Memo Store ─────────────────────────────────────────────────────

def validate_memo_name(name: str) -> str:
    """Return name if it is 1-20 ASCII letters/digits.

    Raises
    ------
    ValidationError
        For anything else.
    """
    if not (0 < len(name) <= MAX_MEMO_NAME and name.isascii() and name.isalnum()):
        raise ValidationError(
            f"Error: Invalid memo name '{name}'. Use up to {MAX_MEMO_NAME} letters or digits."
        )
    return name


class MemoStore:
    """File-backed memo storage keyed by validated names."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.logger = logging.getLogger(__name__)

    def _path(self, name: str) -> Path:
        return self.directory / f"{validate_memo_name(name)}.txt"

    def get(self, name: str) -> str:
        path = self._path(name)
        if not path.is_file():
            raise NotFoundError(f"Error: Cannot find memo '{name}'.")
        return path.read_text(encoding="utf-8")

    def put(self, name: str, text: str) -> None:
        path = self._path(name)
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        self.logger.info(f"Memo saved: {name}")

    def delete(self, name: str) -> None:
        path = self._path(name)
        if not path.is_file():
            raise NotFoundError(f"Error: Cannot find memo '{name}'.")
        path.unlink()
        self.logger.info(f"Memo deleted: {name}")
