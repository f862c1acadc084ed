import asyncio
import sys
from pathlib import Path

from markdownlang.mdl_runtime import ScriptRunner
from markdownlang.mdl_printer import Printer

# A basic awaitable input prompt.
async def ainput(prompt: str = "") -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    line = await loop.run_in_executor(None, sys.stdin.readline)
    return line.rstrip("\n")

async def run_script_file(file_path: str, entry: str = "main", args=None):
    """Run a markdownlang document and exit with appropriate status."""
    runner = ScriptRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner.source_dir = str(p.parent.resolve())
    # Output streams as it is printed so interactive programs can prompt
    result = await runner.handle_script(
        source,
        entry=entry,
        args=list(args or []),
        input_provider=ainput,
        print_sink=lambda value: print(printer.pformat(value), flush=True),
    )
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)

async def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0].startswith("-"):
        print("usage: mdlang <file.md> [entry] [args...]", file=sys.stderr)
        raise SystemExit(2)
    file_path = argv[0]
    entry = argv[1] if len(argv) > 1 else "main"
    await run_script_file(file_path, entry, argv[2:])

def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")

if __name__ == "__main__":
    cli()
