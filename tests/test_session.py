import contextlib
import unittest

from gptxt.editor import EditorError
from gptxt.generation_client import Candidate, EmptyResponseError, GenerationSettings
from gptxt.output_formatter import format_plain
from gptxt.prompt_builder import Task
from gptxt.sandbox_executor import Failure, Success, execute_script
from gptxt.session import (
    EXIT_ABORTED,
    EXIT_FAILURE,
    EXIT_OK,
    Choice,
    InvalidTransition,
    Session,
    State,
    transition,
)
from gptxt.values import TextValue


class _ScriptedGenerator:
    def __init__(self, scripts, error=None, usage=(0, 0)) -> None:
        self.scripts = list(scripts)
        self.error = error
        self.usage = usage
        self.prompts = []

    def generate(self, prompt, settings):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        prompt_tokens, completion_tokens = self.usage
        return Candidate(
            script=self.scripts.pop(0),
            settings=settings,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


class _RecordingExecutor:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, script, input_data):
        self.calls.append((script, input_data))
        return execute_script(script, input_data)


class _RecordingReporter:
    def __init__(self) -> None:
        self.errors = []
        self.warnings = []
        self.progress = []
        self.blocks = []

    def log_progress(self, message):
        self.progress.append(message)

    def log_warning(self, message):
        self.warnings.append(message)

    def log_error(self, message):
        self.errors.append(message)

    def show_block(self, title, text):
        self.blocks.append((title, text))

    def generation_status(self):
        return contextlib.nullcontext()


def _build_session(scripts, choices, edit=None, error=None, show_prompt=False):
    answers = list(choices)
    generator = _ScriptedGenerator(scripts, error=error)
    executor = _RecordingExecutor()
    reporter = _RecordingReporter()

    def default_edit(_script):
        raise AssertionError("editor should not be opened")

    session = Session(
        task=Task("uppercase each line", preview_lines=1),
        input_data="a\nb",
        generator=generator,
        ask_choice=lambda: answers.pop(0),
        edit_script=edit or default_edit,
        executor=executor,
        settings=GenerationSettings(temperature=0.4, max_tokens=64),
        reporter=reporter,
        show_prompt=show_prompt,
    )
    return session, generator, executor, reporter


class TransitionTableTests(unittest.TestCase):
    def test_review_choices(self) -> None:
        self.assertIs(transition(State.REVIEWING, Choice.YES), State.EXECUTING)
        self.assertIs(transition(State.REVIEWING, Choice.QUIT), State.ABORTED)
        self.assertIs(transition(State.REVIEWING, Choice.REGEN), State.GENERATING)
        self.assertIs(transition(State.REVIEWING, Choice.EDIT), State.EDITING)

    def test_edit_goes_straight_to_execution(self) -> None:
        self.assertIs(transition(State.EDITING), State.EXECUTING)
        self.assertIs(transition(State.EDITING, ok=False), State.REVIEWING)

    def test_generation_error_fails_session(self) -> None:
        self.assertIs(transition(State.GENERATING, ok=False), State.FAILED)

    def test_terminal_states_have_no_exits(self) -> None:
        for state in (State.ACCEPTED, State.ABORTED, State.FAILED):
            with self.assertRaises(InvalidTransition):
                transition(state, Choice.YES)


class SessionTests(unittest.TestCase):
    def test_uppercase_scenario_accepts(self) -> None:
        session, _, executor, _ = _build_session(["result = data.upper()"], [Choice.YES])

        outcome = session.run()

        self.assertIs(outcome.state, State.ACCEPTED)
        self.assertEqual(outcome.result, Success(TextValue("A\nB")))
        self.assertEqual(format_plain(outcome.result.value), "A\nB")
        self.assertEqual(outcome.exit_code, EXIT_OK)
        self.assertEqual(executor.calls, [("result = data.upper()", "a\nb")])
        self.assertEqual(
            session.trace,
            [State.BUILDING, State.GENERATING, State.REVIEWING, State.EXECUTING, State.ACCEPTED],
        )

    def test_regen_reuses_prompt_without_cap(self) -> None:
        scripts = [f"result = {i}" for i in range(6)]
        session, generator, executor, _ = _build_session(scripts, [Choice.REGEN] * 5 + [Choice.YES])

        outcome = session.run()

        self.assertEqual(len(generator.prompts), 6)
        self.assertTrue(all(prompt is generator.prompts[0] for prompt in generator.prompts))
        self.assertEqual(executor.calls, [("result = 5", "a\nb")])
        self.assertEqual(outcome.result.value.number, 5)

    def test_token_usage_is_reported_per_generation(self) -> None:
        session, generator, _, reporter = _build_session(["result = 1", "result = 2"], [Choice.REGEN, Choice.YES])
        generator.usage = (120, 15)

        session.run()

        self.assertEqual(reporter.progress, ["Tokens used: 120 prompt, 15 completion"] * 2)
        self.assertEqual(session.candidate.prompt_tokens, 120)

    def test_missing_usage_is_not_reported(self) -> None:
        session, _, _, reporter = _build_session(["result = 1"], [Choice.YES])

        session.run()

        self.assertEqual(reporter.progress, [])

    def test_regen_keeps_session_settings(self) -> None:
        session, _, _, _ = _build_session(["result = 1", "result = 2"], [Choice.REGEN, Choice.YES])

        session.run()

        self.assertEqual(session.candidate.settings, GenerationSettings(temperature=0.4, max_tokens=64))

    def test_duplicate_regeneration_warns_and_continues(self) -> None:
        session, _, _, reporter = _build_session(["result = 1", "result = 1"], [Choice.REGEN, Choice.YES])

        outcome = session.run()

        self.assertEqual(len(reporter.warnings), 1)
        self.assertTrue(outcome.succeeded)

    def test_quit_never_executes(self) -> None:
        session, _, executor, _ = _build_session(["result = data"], [Choice.QUIT])

        outcome = session.run()

        self.assertIs(outcome.state, State.ABORTED)
        self.assertIsNone(outcome.result)
        self.assertEqual(executor.calls, [])
        self.assertEqual(outcome.exit_code, EXIT_ABORTED)

    def test_edit_executes_without_regeneration_or_review(self) -> None:
        seen = []

        def edit(script):
            seen.append(script)
            return "result = data.replace('\\n', ',')"

        session, generator, executor, _ = _build_session(["result = data"], [Choice.EDIT], edit=edit)

        outcome = session.run()

        self.assertEqual(seen, ["result = data"])
        self.assertEqual(len(generator.prompts), 1)
        self.assertEqual(executor.calls, [("result = data.replace('\\n', ',')", "a\nb")])
        self.assertEqual(outcome.result.value, TextValue("a,b"))
        self.assertTrue(session.candidate.edited)
        self.assertEqual(session.trace[-3:], [State.EDITING, State.EXECUTING, State.ACCEPTED])

    def test_editor_failure_returns_to_review(self) -> None:
        def edit(_script):
            raise EditorError("'vi' exited with status 1")

        session, _, executor, reporter = _build_session(["result = 7"], [Choice.EDIT, Choice.YES], edit=edit)

        outcome = session.run()

        self.assertTrue(outcome.succeeded)
        self.assertEqual(len(executor.calls), 1)
        self.assertTrue(any("Error editing program" in message for message in reporter.errors))
        self.assertEqual(session.trace.count(State.REVIEWING), 2)

    def test_runtime_error_ends_in_failure(self) -> None:
        session, _, _, reporter = _build_session(["result = 1 / 0"], [Choice.YES])

        outcome = session.run()

        self.assertIs(outcome.state, State.ACCEPTED)
        self.assertIsInstance(outcome.result, Failure)
        self.assertTrue(outcome.result.message)
        self.assertFalse(outcome.succeeded)
        self.assertEqual(outcome.exit_code, EXIT_FAILURE)
        self.assertEqual(reporter.errors, [outcome.message])

    def test_generation_error_is_fatal(self) -> None:
        session, _, executor, reporter = _build_session([], [], error=EmptyResponseError("API returned an empty program."))

        outcome = session.run()

        self.assertIs(outcome.state, State.FAILED)
        self.assertIn("empty program", outcome.message)
        self.assertEqual(executor.calls, [])
        self.assertEqual(outcome.exit_code, EXIT_FAILURE)
        self.assertEqual(len(reporter.errors), 1)

    def test_prompt_shown_once_when_requested(self) -> None:
        session, _, _, reporter = _build_session(
            ["result = 1", "result = 2"], [Choice.REGEN, Choice.YES], show_prompt=True
        )

        session.run()

        titles = [title for title, _ in reporter.blocks]
        self.assertEqual(titles.count("Prompt:"), 1)
        self.assertEqual(titles.count("Generated program:"), 2)


if __name__ == "__main__":
    unittest.main()
