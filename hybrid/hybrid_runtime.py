"""
Script execution for Hybrid: parse, evaluate, and package the outcome.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from hybrid.hybrid_ast import Program
from hybrid.hybrid_config import HybridConfig
from hybrid.hybrid_datatypes import ConfigError, HybridRuntimeError, ParseError, NOTHING
from hybrid.hybrid_interpreter import Evaluator
from hybrid.hybrid_parser import parse

logger = logging.getLogger("hybrid.runtime")

ErrorLocation = Dict[str, Any]

MAX_TRACE_FRAMES = 10


def evaluate(program: Program, evaluator: Optional[Evaluator] = None) -> Any:
    """Evaluates a parsed program; returns the last produced value or None.

    Raises HybridRuntimeError, or ConfigError when the first foreign call
    finds an invalid backend configuration.
    """
    evaluator = evaluator if evaluator is not None else Evaluator()
    result = evaluator.evaluate(program)
    return None if result is NOTHING else result


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[ErrorLocation] = None
    side_effects: List[Dict] = field(default_factory=list)
    produced: bool = False

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")

    @property
    def stdout(self) -> List[str]:
        return [e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout']]


class ScriptRunner:
    """Parses and executes Hybrid code against one persistent Evaluator."""

    def __init__(self, config: Optional[HybridConfig] = None, bridge=None):
        if bridge is None and config is not None:
            from hybrid.hybrid_bridge import ForeignBridge
            bridge = ForeignBridge(config)
        self.evaluator = Evaluator(bridge=bridge)

    def _format_parse_error(self, e: ParseError, source: str) -> str:
        line, col = e.line + 1, e.column + 1
        context = self._source_context(source, line, col)
        msg = f"ParseError: {e.message} (line {line}, col {col})"
        return f"{msg}\n{context}" if context else msg

    def _format_runtime_error(self, e: HybridRuntimeError) -> str:
        msg = f"RuntimeError: {e.message}"
        if e.call_stack:
            frames = list(reversed(e.call_stack))
            msg += "\n" + "\n".join(f"  in {name}" for name in frames[:MAX_TRACE_FRAMES])
            if len(frames) > MAX_TRACE_FRAMES:
                msg += f"\n  ... {len(frames) - MAX_TRACE_FRAMES} more"
        return msg

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _error(self, msg: str, token: Optional[ErrorLocation] = None) -> ExecutionResult:
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            error_message=msg,
            error_token=token,
            side_effects=list(self.evaluator.side_effects),
        )

    def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        self.evaluator.side_effects.clear()
        self.evaluator.call_stack.clear()
        try:
            program = parse(source_code)
        except ParseError as e:
            logger.debug("parse failed: %s", e)
            return self._error(self._format_parse_error(e, source_code),
                               {'line': e.line + 1, 'col': e.column + 1})

        try:
            result = self.evaluator.evaluate(program)
        except HybridRuntimeError as e:
            logger.debug("runtime error: %s", e.message)
            return self._error(self._format_runtime_error(e))
        except ConfigError as e:
            return self._error(f"ConfigError: {e.message}")

        produced = result is not NOTHING
        return ExecutionResult(
            status='success',
            value=result if produced else None,
            side_effects=list(self.evaluator.side_effects),
            produced=produced,
        )
