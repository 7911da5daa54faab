import logging

from hybrid.hybrid_datatypes import (
    HybridError, ParseError, HybridRuntimeError, ForeignError, ConfigError,
)
from hybrid.hybrid_parser import parse
from hybrid.hybrid_printer import Printer
from hybrid.hybrid_interpreter import Evaluator
from hybrid.hybrid_bridge import ForeignBridge
from hybrid.hybrid_config import load_config
from hybrid.hybrid_runtime import ScriptRunner, ExecutionResult, evaluate

logging.getLogger("hybrid").addHandler(logging.NullHandler())

__all__ = [
    "parse", "evaluate", "ScriptRunner", "ExecutionResult", "Evaluator",
    "ForeignBridge", "Printer", "load_config",
    "HybridError", "ParseError", "HybridRuntimeError", "ForeignError", "ConfigError",
]
