"""
Sandboxed evaluation of extracted cipher transforms.
"""

import logging
from typing import Protocol

from ..config import get_settings
from ..errors import DecipherFailed
from ..models.player import CipherTransform
from .js_interpreter import JSBudgetExceeded, JSInterpreter, JSInterpreterError

logger = logging.getLogger(__name__)


class ScriptEvaluator(Protocol):
    """Runs a transform on one argument and returns the transformed string."""

    def evaluate(self, transform: CipherTransform, argument: str) -> str: ...


class SandboxedEvaluator:
    """
    Evaluates transforms with the bundled JavaScript interpreter.

    Each call gets a fresh interpreter, so no state leaks between
    evaluations and the same input always yields the same output.
    """

    def __init__(self, max_steps: int | None = None, timeout: float | None = None):
        settings = get_settings()
        self.max_steps = settings.js_max_steps if max_steps is None else max_steps
        self.timeout = settings.js_timeout if timeout is None else timeout

    def evaluate(self, transform: CipherTransform, argument: str) -> str:
        interpreter = JSInterpreter(
            transform.source,
            max_steps=self.max_steps,
            timeout=self.timeout,
        )
        try:
            result = interpreter.call_function(transform.name, argument)
        except JSBudgetExceeded as exc:
            logger.warning("%s transform %s ran out of budget: %s", transform.kind.value, transform.name, exc)
            raise DecipherFailed(f"{transform.kind.value} transform exceeded its budget") from exc
        except JSInterpreterError as exc:
            raise DecipherFailed(f"{transform.kind.value} transform failed: {exc}") from exc
        except (MemoryError, RecursionError) as exc:
            logger.warning("%s transform %s exhausted resources", transform.kind.value, transform.name)
            raise DecipherFailed(f"{transform.kind.value} transform exhausted resources") from exc
        except Exception as exc:
            logger.warning("%s transform %s crashed the interpreter: %r", transform.kind.value, transform.name, exc)
            raise DecipherFailed(f"{transform.kind.value} transform failed: {exc!r}") from exc

        if not isinstance(result, str):
            raise DecipherFailed(
                f"{transform.kind.value} transform returned {type(result).__name__}, expected a string"
            )
        return result
