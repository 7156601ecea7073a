"""Terminal I/O: tagged status lines on stderr, the review prompt, progress display.

Stdout is reserved for the final result so the tool can sit in a shell pipeline.
"""

from __future__ import annotations

import contextlib
import sys
from typing import Iterator, Optional, Sequence, TextIO

from tqdm import tqdm

from gptxt.session import Choice

RULE = "-" * 30

CHOICE_LABELS = {
    Choice.YES: "[y]es",
    Choice.QUIT: "[q]uit",
    Choice.REGEN: "[r]egen",
    Choice.EDIT: "[e]dit",
}


def _write(message: str) -> None:
    tqdm.write(message, file=sys.stderr)


def log_progress(message: str) -> None:
    _write(f"[Info] {message}")


def log_warning(message: str) -> None:
    _write(f"[Warn] {message}")


def log_error(message: str) -> None:
    _write(f"[Error] {message}")


def log_success(message: str) -> None:
    _write(f"[OK] {message}")


def show_block(title: str, text: str) -> None:
    log_progress(title)
    _write(RULE)
    _write(text)
    _write(RULE)


@contextlib.contextmanager
def generation_status(message: str = "Generating program") -> Iterator[tqdm]:
    """Transient indicator shown while the backend call is in flight."""

    with tqdm(
        total=1,
        desc=message,
        bar_format="{desc}... {elapsed}",
        file=sys.stderr,
        leave=False,
        disable=not sys.stderr.isatty(),
    ) as bar:
        yield bar
        bar.update(1)


@contextlib.contextmanager
def _terminal_input() -> Iterator[Optional[TextIO]]:
    # stdin usually carries the data to process; answers come from the terminal.
    if sys.stdin is not None and sys.stdin.isatty():
        yield sys.stdin
        return
    try:
        tty = open("/dev/tty", "r", encoding="utf-8")
    except OSError:
        yield None
        return
    with tty:
        yield tty


def ask_choice(choices: Sequence[Choice] = tuple(Choice), stream: Optional[TextIO] = None) -> Choice:
    """Ask "Run program?" until one of ``choices`` is picked; EOF counts as quit."""

    labels = "/".join(CHOICE_LABELS[choice] for choice in choices)
    by_key = {choice.value: choice for choice in choices}
    keys = [f"'{choice.value}'" for choice in choices]
    expected = keys[0]
    if len(keys) > 1:
        expected = ", ".join(keys[:-1]) + ("," if len(keys) > 2 else "") + f" or {keys[-1]}"

    with contextlib.ExitStack() as stack:
        if stream is None:
            stream = stack.enter_context(_terminal_input())
        if stream is None:
            log_error("No terminal available to confirm the program; quitting.")
            return Choice.QUIT

        while True:
            sys.stderr.write(f"Run program? ({labels}) ")
            sys.stderr.flush()
            answer = stream.readline()
            if not answer:
                sys.stderr.write("\n")
                return Choice.QUIT
            choice = by_key.get(answer.strip()[:1].lower())
            if choice is not None:
                return choice
            log_error(f"Invalid input; enter {expected}.")
