"""gptxt runtime exports."""

from gptxt.generation_client import (
    AuthenticationFailure,
    Candidate,
    EmptyResponseError,
    GenerationClient,
    GenerationError,
    GenerationSettings,
    TransportError,
)
from gptxt.prompt_builder import INPUT_VARIABLE, RESULT_VARIABLE, Prompt, Task, build_prompt
from gptxt.sandbox_executor import ExecutionResult, Failure, FailureKind, Success, execute_script
from gptxt.session import Choice, Session, SessionOutcome, State, transition
from gptxt.values import ResultValue, UnsupportedResultType, from_python, to_python

__all__ = [
    "AuthenticationFailure",
    "Candidate",
    "EmptyResponseError",
    "GenerationClient",
    "GenerationError",
    "GenerationSettings",
    "TransportError",
    "INPUT_VARIABLE",
    "RESULT_VARIABLE",
    "Prompt",
    "Task",
    "build_prompt",
    "ExecutionResult",
    "Failure",
    "FailureKind",
    "Success",
    "execute_script",
    "Choice",
    "Session",
    "SessionOutcome",
    "State",
    "transition",
    "ResultValue",
    "UnsupportedResultType",
    "from_python",
    "to_python",
]
