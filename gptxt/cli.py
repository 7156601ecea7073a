"""CLI entrypoint: describe a text-processing task, review the generated program, run it."""

from __future__ import annotations

import argparse
import functools
import sys
from pathlib import Path
from typing import Optional

from gptxt import console
from gptxt.config import ConfigCreated, ConfigError, load_env_file, resolve_settings
from gptxt.editor import edit_script
from gptxt.generation_client import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    GenerationClient,
    GenerationSettings,
    build_openai_client,
)
from gptxt.output_formatter import format_json, format_plain
from gptxt.prompt_builder import Task
from gptxt.sandbox_executor import Success, execute_script
from gptxt.session import EXIT_ABORTED, EXIT_FAILURE, Session, SessionOutcome


def temperature_arg(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid temperature: {raw!r}") from None
    if not MIN_TEMPERATURE <= value <= MAX_TEMPERATURE:
        raise argparse.ArgumentTypeError(
            f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}, got {value}"
        )
    return value


def positive_int_arg(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"value must be positive, got {value}")
    return value


def non_negative_int_arg(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"value must not be negative, got {value}")
    return value


def non_negative_float_arg(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"value must not be negative, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gptxt", description="GPT text processing assistant")
    parser.add_argument("task", help="Description of a text processing task")
    parser.add_argument(
        "-t",
        "--temp",
        type=temperature_arg,
        default=DEFAULT_TEMPERATURE,
        help=f"Set GPT randomness/temperature ({MIN_TEMPERATURE}-{MAX_TEMPERATURE}; lower = more deterministic)",
    )
    parser.add_argument(
        "-m", "--max-tokens", type=positive_int_arg, default=DEFAULT_MAX_TOKENS, help="Set GPT response token limit"
    )
    parser.add_argument("-j", "--json", action="store_true", help="Serialize program output to JSON")
    parser.add_argument(
        "--json-one-line", action="store_true", help="Serialize JSON output to one line (requires --json)"
    )
    parser.add_argument("-i", "--input", default=None, help="Read data from a file instead of STDIN")
    parser.add_argument(
        "-s",
        "--show-lines",
        type=non_negative_int_arg,
        default=None,
        help="Show GPT the first N lines of the input to help it generate the program",
    )
    parser.add_argument(
        "-p",
        "--show-prompt",
        action="store_true",
        help="Print the prompt, including the system message and any included lines",
    )
    parser.add_argument("--model", default=None, help="Model used to generate the program")
    parser.add_argument("--base-url", default=None, help="API Base URL (optional)")
    parser.add_argument("--api-key", default=None, help="API Key (optional, defaults to env var or config file)")
    parser.add_argument("--env-file", default=".env", help="Path to env file (default: .env)")
    parser.add_argument("--config", default=None, help="Path to YAML config file (default: ~/.config/gptxt.yaml)")
    parser.add_argument(
        "--timeout",
        type=non_negative_float_arg,
        default=None,
        help="Seconds a generated program may run before it is stopped (0 disables; default: 30)",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.json_one_line and not args.json:
        parser.error("--json-one-line requires --json to be set.")
    if not args.task.strip():
        parser.error("task description must not be empty.")
    return args


class InputError(RuntimeError):
    pass


def read_input(input_file: Optional[str]) -> str:
    """Read the whole payload once, from a file or from stdin."""

    if input_file:
        try:
            return Path(input_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InputError(f"Error reading input file {input_file}: {exc}") from exc
    try:
        return sys.stdin.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Error reading piped input: {exc}") from exc


def render_result(outcome: SessionOutcome, jsonify: bool, one_line: bool) -> Optional[str]:
    if not isinstance(outcome.result, Success):
        return None
    if jsonify:
        return format_json(outcome.result.value, one_line=one_line)
    return format_plain(outcome.result.value)


def run(args: argparse.Namespace) -> int:
    load_env_file(args.env_file)

    try:
        settings = resolve_settings(
            api_key=args.api_key,
            model=args.model,
            base_url=args.base_url,
            exec_timeout=args.timeout,
            config_path=args.config,
        )
    except ConfigCreated as created:
        console.log_success(f"Created a new configuration file at: {created.path}")
        console.log_success("Set the 'key' value in the file before using the program.")
        return EXIT_FAILURE
    except ConfigError as exc:
        console.log_error(str(exc))
        return EXIT_FAILURE

    try:
        input_data = read_input(args.input)
    except InputError as exc:
        console.log_error(str(exc))
        return EXIT_FAILURE

    client = build_openai_client(settings.api_key, settings.base_url, settings.api_timeout)
    session = Session(
        task=Task(args.task, preview_lines=args.show_lines or 0),
        input_data=input_data,
        generator=GenerationClient(client, settings.model, request_timeout=settings.api_timeout),
        ask_choice=console.ask_choice,
        edit_script=edit_script,
        executor=functools.partial(execute_script, timeout=settings.exec_timeout),
        settings=GenerationSettings(temperature=args.temp, max_tokens=args.max_tokens),
        reporter=console,
        show_prompt=args.show_prompt,
    )
    outcome = session.run()

    if isinstance(outcome.result, Success) and outcome.result.stdout:
        console.show_block("Program printed:", outcome.result.stdout.rstrip("\n"))

    rendered = render_result(outcome, args.json, args.json_one_line)
    if rendered is not None:
        print(rendered)
    return outcome.exit_code


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        code = run(args)
    except KeyboardInterrupt:
        console.log_error("Caught Ctrl+C; exiting.")
        code = EXIT_ABORTED
    sys.exit(code)


if __name__ == "__main__":
    main()
