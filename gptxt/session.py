"""Generate-review-execute loop for one task and one input payload.

States and the transitions between them:

    BUILDING -> GENERATING -> REVIEWING --yes--> EXECUTING -> ACCEPTED
                    ^  |            |  --quit-> ABORTED
                    |  +-> FAILED   |  --edit-> EDITING -> EXECUTING
                    +----regen------+              +-(editor error)-> REVIEWING

All moves go through ``transition`` so the loop cannot take a path the table
does not list.
"""

from __future__ import annotations

import contextlib
import enum
from dataclasses import dataclass, field
from typing import Callable, Optional

from gptxt.editor import EditorError
from gptxt.generation_client import Candidate, GenerationError, GenerationSettings
from gptxt.prompt_builder import Prompt, Task, build_prompt
from gptxt.sandbox_executor import ExecutionResult, Failure, Success, describe_failure

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 3


class State(enum.Enum):
    BUILDING = "building"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    EDITING = "editing"
    EXECUTING = "executing"
    ACCEPTED = "accepted"
    ABORTED = "aborted"
    FAILED = "failed"


class Choice(enum.Enum):
    YES = "y"
    QUIT = "q"
    REGEN = "r"
    EDIT = "e"


class InvalidTransition(RuntimeError):
    pass


TERMINAL_STATES = frozenset({State.ACCEPTED, State.ABORTED, State.FAILED})

# (state, choice, step succeeded) -> next state
TRANSITIONS = {
    (State.BUILDING, None, True): State.GENERATING,
    (State.GENERATING, None, True): State.REVIEWING,
    (State.GENERATING, None, False): State.FAILED,
    (State.REVIEWING, Choice.YES, True): State.EXECUTING,
    (State.REVIEWING, Choice.QUIT, True): State.ABORTED,
    (State.REVIEWING, Choice.REGEN, True): State.GENERATING,
    (State.REVIEWING, Choice.EDIT, True): State.EDITING,
    (State.EDITING, None, True): State.EXECUTING,
    (State.EDITING, None, False): State.REVIEWING,
    (State.EXECUTING, None, True): State.ACCEPTED,
}


def transition(state: State, choice: Optional[Choice] = None, ok: bool = True) -> State:
    try:
        return TRANSITIONS[(state, choice, ok)]
    except KeyError:
        label = choice.name.lower() if choice is not None else ("ok" if ok else "error")
        raise InvalidTransition(f"No transition from {state.name} on {label}") from None


@dataclass
class SessionOutcome:
    state: State
    result: Optional[ExecutionResult] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state is State.ACCEPTED and isinstance(self.result, Success)

    @property
    def exit_code(self) -> int:
        if self.state is State.ABORTED:
            return EXIT_ABORTED
        return EXIT_OK if self.succeeded else EXIT_FAILURE


class _QuietReporter:
    """Reporter that drops every message; used when no console is attached."""

    def log_progress(self, message: str) -> None:
        pass

    def log_warning(self, message: str) -> None:
        pass

    def log_error(self, message: str) -> None:
        pass

    def show_block(self, title: str, text: str) -> None:
        pass

    def generation_status(self):
        return contextlib.nullcontext()


@dataclass
class Session:
    """One run of the tool: owns the task, the input and the current candidate.

    Collaborators are injected so the loop can be driven without a terminal:
    ``generator`` has ``generate(prompt, settings) -> Candidate``,
    ``ask_choice()`` returns a Choice, ``edit_script(text)`` returns edited text
    (raising on editor failure), and ``executor(script, input_data)`` returns
    an ExecutionResult.
    """

    task: Task
    input_data: str
    generator: object
    ask_choice: Callable[[], Choice]
    edit_script: Callable[[str], str]
    executor: Callable[[str, str], ExecutionResult]
    settings: GenerationSettings = field(default_factory=GenerationSettings)
    reporter: object = field(default_factory=_QuietReporter)
    show_prompt: bool = False

    state: State = field(default=State.BUILDING, init=False)
    prompt: Optional[Prompt] = field(default=None, init=False)
    candidate: Optional[Candidate] = field(default=None, init=False)
    outcome: Optional[SessionOutcome] = field(default=None, init=False)
    trace: list = field(default_factory=list, init=False)
    history: list = field(default_factory=list, init=False)

    def run(self) -> SessionOutcome:
        handlers = {
            State.BUILDING: self._build,
            State.GENERATING: self._generate,
            State.REVIEWING: self._review,
            State.EDITING: self._edit,
            State.EXECUTING: self._execute,
        }
        self._enter(State.BUILDING)
        while self.state not in TERMINAL_STATES:
            handlers[self.state]()
        return self.outcome

    def _enter(self, state: State) -> None:
        self.state = state
        self.trace.append(state)

    def _build(self) -> None:
        # Input does not change within a session, so the prompt is built once.
        self.prompt = build_prompt(self.task, self.input_data)
        self._enter(transition(State.BUILDING))

    def _generate(self) -> None:
        try:
            with self.reporter.generation_status():
                candidate = self.generator.generate(self.prompt, self.settings)
        except GenerationError as exc:
            message = f"Error calling the generation API: {exc}"
            self.reporter.log_error(message)
            self.outcome = SessionOutcome(State.FAILED, message=message)
            self._enter(transition(State.GENERATING, ok=False))
            return

        if candidate.script in self.history:
            self.reporter.log_warning(
                "Re-generated program is identical to a previous one; "
                "consider rephrasing the task or raising the temperature."
            )
        self.history.append(candidate.script)
        self.candidate = candidate
        if candidate.prompt_tokens or candidate.completion_tokens:
            self.reporter.log_progress(
                f"Tokens used: {candidate.prompt_tokens} prompt, {candidate.completion_tokens} completion"
            )

        if self.show_prompt and len(self.history) == 1:
            self.reporter.show_block("Prompt:", self.prompt.text)
        self._enter(transition(State.GENERATING))

    def _review(self) -> None:
        self.reporter.show_block("Generated program:", self.candidate.script)
        choice = self.ask_choice()
        if choice is Choice.REGEN:
            self.candidate = None
        elif choice is Choice.QUIT:
            self.outcome = SessionOutcome(State.ABORTED, message="Aborted by user.")
        self._enter(transition(State.REVIEWING, choice))

    def _edit(self) -> None:
        try:
            edited = self.edit_script(self.candidate.script)
        except EditorError as exc:
            self.reporter.log_error(f"Error editing program: {exc}")
            self._enter(transition(State.EDITING, ok=False))
            return

        self.candidate = self.candidate.with_script(edited)
        self.reporter.show_block("Edited program:", self.candidate.script)
        self._enter(transition(State.EDITING))

    def _execute(self) -> None:
        result = self.executor(self.candidate.script, self.input_data)
        message = ""
        if isinstance(result, Failure):
            message = describe_failure(result)
            self.reporter.log_error(message)
        self.outcome = SessionOutcome(State.ACCEPTED, result=result, message=message)
        self._enter(transition(State.EXECUTING))
