"""Sandboxed script execution with AST-based safety validation.

Every run gets a fresh module namespace with restricted builtins and an import
hook that only hands out read-only views of in-memory text/data modules. The
input text is bound to ``data`` before the script runs and ``result`` is read
back afterwards.
"""

from __future__ import annotations

import ast
import builtins
import contextlib
import enum
import io
import signal
import sys
import threading
import types
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from gptxt.prompt_builder import INPUT_VARIABLE, RESULT_VARIABLE
from gptxt.values import ResultValue, UnsupportedResultType, from_python

SANDBOX_ALLOWED_IMPORTS = {
    "re",
    "json",
    "math",
    "collections",
    "itertools",
    "functools",
    "string",
    "statistics",
    "datetime",
    "csv",
    "textwrap",
    "unicodedata",
    "decimal",
    "fractions",
    "operator",
    "heapq",
    "bisect",
    "difflib",
    "html",
    "base64",
    "hashlib",
    "dataclasses",
    "copy",
    "enum",
    "random",
    "calendar",
}

SANDBOX_BANNED_BUILTINS = {
    "exec",
    "eval",
    "compile",
    "__import__",
    "open",
    "input",
    "globals",
    "locals",
    "vars",
    "breakpoint",
    "help",
    "exit",
    "quit",
}

# Dunder attributes scripts may touch; every other "_"-prefixed attribute is refused.
SANDBOX_SAFE_DUNDERS = {
    "__init__",
    "__name__",
    "__doc__",
    "__len__",
    "__iter__",
    "__next__",
    "__str__",
    "__repr__",
    "__eq__",
    "__lt__",
    "__hash__",
    "__contains__",
    "__getitem__",
}

SANDBOX_BANNED_ATTRIBUTES = {
    "gi_frame",
    "gi_code",
    "cr_frame",
    "ag_frame",
    "tb_frame",
    "f_back",
    "f_globals",
    "f_locals",
    "f_builtins",
}

# Module members that evaluate strings or resolve attribute paths from them.
# singledispatch().register reads annotations through typing.get_type_hints.
SANDBOX_HIDDEN_MEMBERS = {
    ("string", "Formatter"),
    ("operator", "attrgetter"),
    ("operator", "methodcaller"),
    ("functools", "singledispatch"),
    ("functools", "singledispatchmethod"),
    ("calendar", "main"),
}

# Dotted imports are limited to these; json.tool and friends stay out.
SANDBOX_ALLOWED_SUBMODULES = {
    "collections.abc",
    "json.decoder",
    "json.encoder",
    "html.entities",
    "html.parser",
}

NO_RESULT_MESSAGE = "no result produced"


class FailureKind(enum.Enum):
    SAFETY = "safety"
    COMPILE = "compile"
    RUNTIME = "runtime"
    TIMEOUT = "timeout"
    NO_RESULT = "no_result"
    UNSUPPORTED_RESULT = "unsupported_result"


@dataclass(frozen=True)
class Success:
    """Script ran and left a convertible value in ``result``."""

    value: ResultValue
    stdout: str = ""


@dataclass(frozen=True)
class Failure:
    """Script was rejected, crashed, timed out or produced no usable result."""

    kind: FailureKind
    message: str
    stdout: str = ""


ExecutionResult = Union[Success, Failure]


def _attribute_forbidden(name: str) -> bool:
    if name in SANDBOX_BANNED_ATTRIBUTES:
        return True
    return name.startswith("_") and name not in SANDBOX_SAFE_DUNDERS


def _import_allowed(name: str) -> bool:
    if "." in name:
        return name in SANDBOX_ALLOWED_SUBMODULES
    return name in SANDBOX_ALLOWED_IMPORTS


def validate_script(code: str) -> Optional[str]:
    """AST-based safety check for generated scripts.

    Returns an error message string if unsafe, or None if the script may run.
    Raises SyntaxError (or ValueError for null bytes) when the script does not parse.
    """

    tree = ast.parse(code)

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if not _import_allowed(alias.name):
                    return f"Forbidden import: {alias.name}"

        if isinstance(node, ast.ImportFrom):
            module = node.module or ""
            if node.level or not _import_allowed(module):
                return f"Forbidden import-from: {module or '.'}"
            for alias in node.names:
                if alias.name == "*" or alias.name.startswith("_"):
                    return f"Forbidden import-from name: {module}.{alias.name}"
                if (module.split(".")[0], alias.name) in SANDBOX_HIDDEN_MEMBERS:
                    return f"Forbidden import-from name: {module}.{alias.name}"

        if isinstance(node, ast.Call):
            if isinstance(node.func, ast.Name) and node.func.id in SANDBOX_BANNED_BUILTINS:
                return f"Forbidden builtin: {node.func.id}()"

        if isinstance(node, ast.Attribute) and _attribute_forbidden(node.attr):
            return f"Forbidden attribute access: .{node.attr}"

    return None


class ScriptTimeout(BaseException):
    """Raised inside a running script when its time budget is spent.

    Derives from BaseException so ``except Exception`` in a script cannot swallow it.
    """


class _Timeout:
    """Context manager for SIGALRM-based timeout (Unix main thread only).

    The timer keeps re-firing every ``REARM_SECONDS`` until disarmed, so a script
    that catches the first ScriptTimeout with a bare ``except`` is interrupted again.
    """

    REARM_SECONDS = 0.1

    def __init__(self, seconds: Optional[float]) -> None:
        self.seconds = seconds
        self._old_handler = None
        self._armed = False

    def _handler(self, signum, frame):
        raise ScriptTimeout(f"Script execution timed out after {self.seconds:g}s")

    def __enter__(self):
        if not self.seconds or self.seconds <= 0:
            return self
        if not hasattr(signal, "SIGALRM") or threading.current_thread() is not threading.main_thread():
            return self
        self._old_handler = signal.signal(signal.SIGALRM, self._handler)
        signal.setitimer(signal.ITIMER_REAL, float(self.seconds), self.REARM_SECONDS)
        self._armed = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._armed:
            signal.setitimer(signal.ITIMER_REAL, 0)
            signal.signal(signal.SIGALRM, self._old_handler)
            self._armed = False
        return False


def _module_view(module: types.ModuleType) -> types.ModuleType:
    """Read-only copy of a module without private names or foreign modules."""

    view = types.ModuleType(module.__name__)
    view.__doc__ = module.__doc__
    prefix = module.__name__ + "."
    root = module.__name__.split(".")[0]
    for name, value in vars(module).items():
        if name.startswith("_") or (root, name) in SANDBOX_HIDDEN_MEMBERS:
            continue
        if isinstance(value, types.ModuleType):
            if not value.__name__.startswith(prefix) or value.__name__ not in SANDBOX_ALLOWED_SUBMODULES:
                continue
            value = _module_view(value)
        setattr(view, name, value)
    return view


def _restricted_import(name, globals=None, locals=None, fromlist=(), level=0):
    """Import guard that only allows sandbox-approved modules."""

    if level or not _import_allowed(name):
        raise ImportError(f"Import of '{name}' is not allowed in sandbox.")

    builtins.__import__(name, None, None, (), 0)
    if fromlist:
        for item in fromlist:
            submodule = f"{name}.{item}"
            if submodule in SANDBOX_ALLOWED_SUBMODULES:
                builtins.__import__(submodule)
        return _module_view(sys.modules[name])
    return _module_view(sys.modules[name.split(".")[0]])


def _safe_getattr(obj, name, *default):
    if isinstance(name, str) and _attribute_forbidden(name):
        raise AttributeError(f"Access to attribute '{name}' is not allowed in sandbox.")
    return getattr(obj, name, *default)


def _safe_hasattr(obj, name):
    if isinstance(name, str) and _attribute_forbidden(name):
        return False
    return hasattr(obj, name)


def _safe_setattr(obj, name, value):
    if isinstance(name, str) and _attribute_forbidden(name):
        raise AttributeError(f"Access to attribute '{name}' is not allowed in sandbox.")
    setattr(obj, name, value)


def _safe_delattr(obj, name):
    if isinstance(name, str) and _attribute_forbidden(name):
        raise AttributeError(f"Access to attribute '{name}' is not allowed in sandbox.")
    delattr(obj, name)


def _safe_builtins() -> dict:
    """Return a restricted builtins dict for sandboxed execution."""

    safe = {}
    for name in dir(builtins):
        if name.startswith("_"):
            continue
        if name in SANDBOX_BANNED_BUILTINS:
            continue
        safe[name] = getattr(builtins, name)

    safe["getattr"] = _safe_getattr
    safe["hasattr"] = _safe_hasattr
    safe["setattr"] = _safe_setattr
    safe["delattr"] = _safe_delattr
    safe["__build_class__"] = builtins.__build_class__
    safe["__name__"] = "__sandbox__"
    safe["__import__"] = _restricted_import
    return safe


def execute_script(script: str, input_data: str, timeout: Optional[float] = None) -> ExecutionResult:
    """Run ``script`` against ``input_data`` in a disposable namespace.

    Args:
        script: Python source produced by the generator (or edited by the user).
        input_data: Full input text, bound to ``data``.
        timeout: Seconds before the run is abandoned; None or 0 disables the limit.
    """

    try:
        safety_error = validate_script(script)
    except SyntaxError as exc:
        return Failure(FailureKind.COMPILE, f"Syntax error at line {exc.lineno}: {exc.msg}")
    except ValueError as exc:
        return Failure(FailureKind.COMPILE, f"Invalid source: {exc}")
    if safety_error:
        return Failure(FailureKind.SAFETY, f"Safety check failed: {safety_error}")

    try:
        code_obj = compile(script, "<generated>", "exec")
    except (SyntaxError, ValueError) as exc:
        return Failure(FailureKind.COMPILE, f"Error compiling program: {exc}")

    module_name = f"__sandbox_exec_{uuid.uuid4().hex}"
    sandbox_module = types.ModuleType(module_name)
    namespace = sandbox_module.__dict__
    namespace["__builtins__"] = _safe_builtins()
    namespace["__name__"] = module_name
    namespace["__package__"] = None
    namespace[INPUT_VARIABLE] = input_data

    # Register sandbox module so decorators like @dataclass can resolve module globals.
    sys.modules[module_name] = sandbox_module
    captured = io.StringIO()
    try:
        with _Timeout(timeout), contextlib.redirect_stdout(captured):
            exec(code_obj, namespace)  # noqa: S102
    except ScriptTimeout as exc:
        return Failure(FailureKind.TIMEOUT, str(exc), captured.getvalue())
    except Exception as exc:
        return Failure(FailureKind.RUNTIME, f"{type(exc).__name__}: {exc}", captured.getvalue())
    except SystemExit as exc:
        return Failure(FailureKind.RUNTIME, f"SystemExit: {exc.code}", captured.getvalue())
    finally:
        sys.modules.pop(module_name, None)

    stdout = captured.getvalue()
    if RESULT_VARIABLE not in namespace:
        return Failure(FailureKind.NO_RESULT, NO_RESULT_MESSAGE, stdout)

    try:
        value = from_python(namespace[RESULT_VARIABLE])
    except UnsupportedResultType as exc:
        return Failure(FailureKind.UNSUPPORTED_RESULT, str(exc), stdout)
    except RecursionError:
        return Failure(FailureKind.UNSUPPORTED_RESULT, "unsupported result type: self-referencing container", stdout)

    return Success(value, stdout)


def describe_failure(failure: Failure) -> str:
    """One-line message for a failed execution."""

    prefix = {
        FailureKind.SAFETY: "Program rejected",
        FailureKind.COMPILE: "Error compiling Python program",
        FailureKind.RUNTIME: "Error executing Python program",
        FailureKind.TIMEOUT: "Program timed out",
        FailureKind.NO_RESULT: "Error",
        FailureKind.UNSUPPORTED_RESULT: "Error",
    }[failure.kind]
    return f"{prefix}: {failure.message}"

