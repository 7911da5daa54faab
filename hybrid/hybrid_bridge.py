"""
The foreign bridge: runs `#tag` block bodies in external language backends.

Each call generates a wrapper program around the user's body, runs it in a
child process and reads a single result value back from standard output.
Only scalars cross the boundary; arrays and maps degrade to null.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
import textwrap
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pystache

from hybrid.hybrid_config import BackendSpec, HybridConfig, load_config
from hybrid.hybrid_datatypes import ForeignError, HybridMap, is_integral

logger = logging.getLogger("hybrid.bridge")

Runner = Callable[..., subprocess.CompletedProcess]

PYTHON_WRAPPER = """\
import json
import sys

def __hybrid_fn(args):
{{#params}}
    {{name}} = args[{{index}}]
{{/params}}
{{body}}

__hybrid_result = __hybrid_fn(json.loads(sys.argv[1]))
print()
print(json.dumps(__hybrid_result))
"""

RUST_WRAPPER = """\
#![allow(unused_variables)]
use std::env;

fn main() {
    let args: Vec<String> = env::args().skip(1).collect();
{{#params}}
    let {{name}} = &args[{{index}}];
{{/params}}
    let result = (|| {
{{body}}
    })();
    println!("{:?}", result);
}
"""

_renderer = pystache.Renderer(escape=lambda u: u)


def render_wrapper(template: str, params: List[str], body: str, indent: str) -> str:
    context = {
        "params": [{"name": name, "index": str(i)} for i, name in enumerate(params)],
        "body": textwrap.indent(body, indent) if body.strip() else "",
    }
    return _renderer.render(template, context)


# -----------------------------------------------------------------
# Value marshalling
# -----------------------------------------------------------------

def to_foreign(value: Any) -> Any:
    """Hybrid value -> interchange scalar (int, float, bool, str or None)."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return int(value) if is_integral(value) else float(value)
    if isinstance(value, (list, HybridMap)):
        logger.warning("%s values cannot cross the foreign boundary; passing null",
                       "array" if isinstance(value, list) else "map")
        return None
    return None


def from_foreign(value: Any) -> Any:
    """Interchange value -> Hybrid value. Containers become null."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    logger.warning("foreign result of type %s is not supported; using null", type(value).__name__)
    return None


def to_display_text(value: Any) -> str:
    """Interchange scalar -> process argument text for compiled backends."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sniff_debug_output(text: str) -> Any:
    """Best-effort parse of a value printed in debug format."""
    if text == "true":
        return True
    if text == "false":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        pass
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        try:
            return json.loads(text)
        except ValueError:
            return text[1:-1]
    return text


# -----------------------------------------------------------------
# Backends
# -----------------------------------------------------------------

class Backend(ABC):
    """An external toolchain able to run a foreign body."""

    def __init__(self, spec: BackendSpec, runner: Runner):
        self.spec = spec
        self.run = runner

    @property
    def tag(self) -> str:
        return self.spec.tag

    def probe(self) -> bool:
        """True when `<command> --version` succeeds."""
        try:
            proc = self.run([self.spec.command, "--version"], capture_output=True, text=True)
        except OSError as e:
            logger.debug("probe %s failed: %s", self.tag, e)
            return False
        logger.debug("probe %s -> exit %s", self.tag, proc.returncode)
        return proc.returncode == 0

    def _spawn(self, cmd: List[str], what: str) -> subprocess.CompletedProcess:
        logger.debug("[%s] running %s", self.tag, cmd[0])
        try:
            proc = self.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ForeignError(self.tag, f"Failed to execute {what}: {e}") from e
        if proc.returncode != 0:
            raise ForeignError(self.tag, proc.stderr or f"{what} exited with status {proc.returncode}")
        return proc

    @abstractmethod
    def execute(self, params: List[str], source: str, args: List[Any]) -> List[Any]:
        raise NotImplementedError


class InterpretedBackend(Backend):
    """Passes arguments as JSON and reads a JSON result from the last stdout line."""

    def wrapper(self, params: List[str], source: str) -> str:
        return render_wrapper(PYTHON_WRAPPER, params, source or "return None", "    ")

    def execute(self, params, source, args):
        try:
            args_json = json.dumps(args)
        except (TypeError, ValueError) as e:
            raise ForeignError(self.tag, f"Failed to serialize args: {e}") from e
        proc = self._spawn([self.spec.command, "-c", self.wrapper(params, source), args_json], self.spec.command)
        lines = [line for line in proc.stdout.splitlines() if line.strip()]
        if not lines:
            raise ForeignError(self.tag, "Failed to parse result: no output")
        try:
            result = json.loads(lines[-1])
        except ValueError as e:
            raise ForeignError(self.tag, f"Failed to parse result: {e}") from e
        return [result]


class CompiledBackend(Backend):
    """Compiles a wrapper to a temporary binary, runs it once, prints `{:?}` of the result."""

    def wrapper(self, params: List[str], source: str) -> str:
        return render_wrapper(RUST_WRAPPER, params, source, "        ")

    def execute(self, params, source, args):
        with tempfile.TemporaryDirectory(prefix=f"hybrid-{self.tag}-") as workdir:
            src_path = Path(workdir) / "block.rs"
            bin_path = Path(workdir) / ("block.exe" if os.name == "nt" else "block")
            try:
                src_path.write_text(self.wrapper(params, source), encoding="utf-8")
            except OSError as e:
                raise ForeignError(self.tag, f"Failed to write temp file: {e}") from e
            self._spawn([self.spec.command, str(src_path), "-o", str(bin_path)], self.spec.command)
            proc = self._spawn([str(bin_path), *(to_display_text(a) for a in args)], "compiled block")
        return [sniff_debug_output(proc.stdout.strip())]


BACKEND_CLASSES = {
    "python": InterpretedBackend,
    "rust": CompiledBackend,
}


class ForeignBridge:
    """Dispatches foreign calls to configured backends, probing each once."""

    def __init__(self, config: Optional[HybridConfig] = None, runner: Optional[Runner] = None):
        self.config = config if config is not None else load_config()
        self._runner = runner or subprocess.run
        self.backends: Dict[str, Backend] = {
            tag: BACKEND_CLASSES[spec.kind](spec, self._runner)
            for tag, spec in self.config.backends.items()
        }
        self._availability: Dict[str, bool] = {}

    def is_available(self, tag: str) -> bool:
        if tag not in self._availability:
            backend = self.backends.get(tag)
            self._availability[tag] = backend.probe() if backend is not None else False
        return self._availability[tag]

    def available_backends(self) -> List[str]:
        return [tag for tag in self.backends if self.is_available(tag)]

    def call(self, tag: str, params: List[str], source: str, args: List[Any]) -> List[Any]:
        """Runs `source` on backend `tag`; returns a single-element result list."""
        if not self.is_available(tag):
            raise ForeignError(tag, f"Runtime '{tag}' is not available")
        backend = self.backends[tag]
        foreign_args = [to_foreign(a) for a in args]
        results = backend.execute(params, source, foreign_args)
        return [from_foreign(r) for r in results]
