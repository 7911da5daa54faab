import logging
import sys
from pathlib import Path

from hybrid.hybrid_config import debug_enabled
from hybrid.hybrid_printer import Printer
from hybrid.hybrid_runtime import ScriptRunner

RECURSION_LIMIT = 5000

HELP_TEXT = """\
Enter Hybrid statements, e.g.  int var x = 40 + 2;  speak(x);
Declarations and functions persist between lines.
Commands: help, exit, quit (or Ctrl+D)."""


def read_line(prompt: str) -> str:
    """Reads one REPL line; returns '' at end of input."""
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def print_side_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def run_script_file(file_path: str):
    """Run a Hybrid script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(source)
    print_side_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)


def repl():
    print("Hybrid REPL v0.1")
    print("Type 'help' for help, 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()
    printer = Printer()

    while True:
        try:
            raw = read_line("hybrid> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line in ("exit", "quit"):
                break
            if line == "help":
                print(HELP_TEXT)
                continue

            result = runner.handle_script(line)
            print_side_effects(result)

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.render(result.value))

        except EOFError:
            print("\nExiting.")
            break


def main(argv=None):
    """Run a script file when provided, otherwise start the interactive REPL."""
    argv = sys.argv[1:] if argv is None else argv
    # Each Hybrid call costs several Python frames.
    sys.setrecursionlimit(max(sys.getrecursionlimit(), RECURSION_LIMIT))
    if debug_enabled():
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format="%(levelname)s %(name)s: %(message)s")

    if argv and not argv[0].startswith("-"):
        run_script_file(argv[0])
        return
    repl()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
