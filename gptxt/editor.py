"""Hand a candidate script to the user's editor and read back the replacement."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Optional


class EditorError(RuntimeError):
    """Editor could not be started or exited with an error."""


def resolve_editor(environ: Optional[dict] = None) -> list[str]:
    environ = os.environ if environ is None else environ
    command = environ.get("VISUAL") or environ.get("EDITOR") or "vi"
    return shlex.split(command)


def edit_script(script: str, editor: Optional[list[str]] = None) -> str:
    """Open ``script`` in an editor; return the saved text, stripped."""

    command = editor or resolve_editor()
    fd, path = tempfile.mkstemp(prefix="gptxt_", suffix=".py")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(script)

        stdin = None
        if not sys.stdin.isatty():
            try:
                stdin = open("/dev/tty", "r", encoding="utf-8")
            except OSError as exc:
                raise EditorError(f"No terminal available for '{command[0]}': {exc}") from exc

        try:
            status = subprocess.run([*command, path], stdin=stdin, check=False)
        except OSError as exc:
            raise EditorError(f"Could not start '{command[0]}': {exc}") from exc
        finally:
            if stdin is not None:
                stdin.close()

        if status.returncode != 0:
            raise EditorError(f"'{command[0]}' exited with status {status.returncode}")

        return Path(path).read_text(encoding="utf-8").strip()
    finally:
        Path(path).unlink(missing_ok=True)
