"""Prompt construction for script generation."""

from __future__ import annotations

from dataclasses import dataclass

INPUT_VARIABLE = "data"
RESULT_VARIABLE = "result"
PREVIEW_MARKER = "#>"

SYSTEM_PREAMBLE = (
    "# You are part of a tool that creates Python code for text processing.\n"
    "# You should return only Python code with no comments.\n"
    "# Do not describe the code, do not use markdown fences, and do not add any additional information.\n"
    f"# Data to process is stored in the string variable `{INPUT_VARIABLE}`.\n"
    f"# Results should be stored in the variable `{RESULT_VARIABLE}`.\n"
    "# The code runs without file, network, or process access; use only in-memory text processing."
)


@dataclass(frozen=True)
class Task:
    """A text-processing request: what to do and how much input to show the model."""

    description: str
    preview_lines: int = 0

    def __post_init__(self) -> None:
        if not self.description or not self.description.strip():
            raise ValueError("Task description must not be empty.")
        if self.preview_lines < 0:
            raise ValueError("preview_lines must be >= 0.")


@dataclass(frozen=True)
class Prompt:
    system: str
    body: str

    @property
    def text(self) -> str:
        return f"{self.system}\n{self.body}"

    def messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.body},
        ]


def preview_block(input_data: str, preview_lines: int) -> str:
    """Commented block with the first ``preview_lines`` lines of the input."""

    if preview_lines <= 0 or not input_data:
        return ""

    shown = input_data.splitlines()[:preview_lines]
    if not shown:
        return ""

    lines = [f"# First {len(shown)} lines of `{INPUT_VARIABLE}`:"]
    lines.extend(f"{PREVIEW_MARKER}{line}" for line in shown)
    return "\n".join(lines)


def build_prompt(task: Task, input_data: str) -> Prompt:
    """Assemble the prompt: preamble, optional input preview, then the task line."""

    sections = []
    preview = preview_block(input_data, task.preview_lines)
    if preview:
        sections.append(preview)
    sections.append(f"# {task.description.strip()}:")
    return Prompt(system=SYSTEM_PREAMBLE, body="\n\n".join(sections))
