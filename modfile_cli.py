import argparse
import json
import os
import sys

from modfile.compiler import ROOT, ModuleFile, ModuleKey, parse_and_compile, set_verbose
from modfile.config import CONFIG_FILE, CompilerSettings, load_settings
from modfile.errors import EvalError, ExternalDepsError
from modfile.eval import ModuleThread
from modfile.events import PrintingEventHandler
from modfile.toplevels import CallRecorder


def log(message):
    """Log informational messages to stderr."""
    print(f"\033[92m\033[1mINFO:\033[0m {message}", file=sys.stderr)


def parse_module_key(text):
    if not text:
        return ROOT
    name, _, version = text.partition("@")
    return ModuleKey(name=name, version="" if version == "_" else version)


def read_module_file(filepath):
    if filepath is None or filepath == "-":
        return ModuleFile.create(sys.stdin.buffer.read(), "<stdin>")
    if not os.path.exists(filepath):
        print(f"Error: File '{filepath}' not found.", file=sys.stderr)
        sys.exit(1)
    with open(filepath, 'rb') as f:
        return ModuleFile.create(f.read(), filepath)


def compile_file(args, settings, toplevels=None):
    """Compile the file named by `args`, printing diagnostics and exiting on failure."""
    set_verbose(args.verbose or settings.verbose)
    module_file = read_module_file(args.filename)
    handler = PrintingEventHandler(source=module_file.text, color=sys.stderr.isatty())
    try:
        return parse_and_compile(
            module_file, parse_module_key(args.module), settings, toplevels or {}, handler)
    except ExternalDepsError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


def cmd_check(args):
    settings = load_settings()
    # Configured toplevel names resolve; their calls are recorded, not run.
    toplevels = CallRecorder().toplevels(settings.toplevels)
    compiled = compile_file(args, settings, toplevels)
    for statement in compiled.import_statements:
        print(f"{statement.location}: module_import {statement.import_label!r}")
    log(f"{compiled.module_file.location}: OK ({len(compiled.import_statements)} import(s))")


def cmd_imports(args):
    settings = load_settings()
    toplevels = CallRecorder().toplevels(settings.toplevels)
    compiled = compile_file(args, settings, toplevels)
    imports = [
        {
            "label": statement.import_label,
            "file": statement.location.file,
            "line": statement.location.line,
            "column": statement.location.column,
        }
        for statement in compiled.import_statements
    ]
    print(json.dumps(imports, indent=2))


def cmd_run(args):
    settings = load_settings()
    thread = ModuleThread(settings)
    recorder = CallRecorder(thread)
    compiled = compile_file(args, settings, recorder.toplevels(settings.toplevels))
    try:
        compiled.run_on_thread(thread)
    except EvalError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    calls = [call.model_dump() for call in recorder.calls]
    print(json.dumps(calls, indent=2, default=str))
    log(f"Recorded {len(recorder.calls)} call(s).")


def cmd_init(args):
    if os.path.exists(CONFIG_FILE) and not args.force:
        print(f"Error: '{CONFIG_FILE}' already exists (use --force to overwrite).", file=sys.stderr)
        sys.exit(1)
    with open(CONFIG_FILE, "w") as f:
        json.dump(CompilerSettings().model_dump(), f, indent=2)
    log(f"Wrote default settings to {CONFIG_FILE}")


def main():
    parser = argparse.ArgumentParser(description="Module file compiler")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output (sent to stderr)")
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("check", "Check a module file and list its module_import directives"),
        ("imports", "Print a module file's module_import directives as JSON"),
        ("run", "Run a module file and print the recorded toplevel calls as JSON"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("filename", nargs="?", default="-", help="Module file (default: read from stdin)")
        sub.add_argument("--module", help="Module key used in messages, as name@version (default: <root>)")

    init = subparsers.add_parser("init", help=f"Write default settings to {CONFIG_FILE}")
    init.add_argument("--force", action="store_true")

    args = parser.parse_args()

    if args.command == "check": cmd_check(args)
    elif args.command == "imports": cmd_imports(args)
    elif args.command == "run": cmd_run(args)
    elif args.command == "init": cmd_init(args)
    else: parser.print_help()


if __name__ == "__main__":
    main()
