"""CLI for sops-decrypt-hook - export SOPS secrets into your shell."""

import argparse
import logging
import os
import subprocess
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import (
    FileSpec,
    KeyTransform,
    PipelineConfig,
    SecretFormat,
    check_filter,
    check_max_file_size,
    check_timeout,
    get_age_key_file,
    get_default_config_file,
    load_config,
)
from .decrypt import SopsDecryptor, check_age_installed, check_sops_installed
from .errors import ConfigError, FileError
from .pipeline import Pipeline, has_path_traversal
from .render import RENDERERS, mask_value, render

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    """Send diagnostics to stderr so stdout stays evaluable."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def make_decryptor(config: PipelineConfig):
    return SopsDecryptor(config.sops_binary, config.decrypt_timeout)


def build_config(args) -> PipelineConfig:
    """Load the config file and apply command-line overrides."""
    config = load_config(args.config)

    if args.files:
        specs = tuple(
            FileSpec(
                path=str(f),
                format=SecretFormat(args.format or SecretFormat.DOTENV.value),
                prefix=args.prefix or "",
                filter=check_filter(args.filter) if args.filter else None,
                required=not args.optional,
            )
            for f in args.files
        )
        config = replace(config, sops_files=(), file_configs=specs)

    return config.with_overrides(
        validate_paths=False if args.no_validate_paths else None,
        validate_keys=False if args.no_validate_keys else None,
        max_file_size=(
            check_max_file_size(args.max_file_size, "--max-file-size")
            if args.max_file_size is not None else None
        ),
        fail_on_error=True if args.fail_on_error else None,
        verbose=True if args.verbose else None,
        allow_overwrite=True if args.allow_overwrite else None,
        global_prefix=args.global_prefix,
        key_transform=KeyTransform(args.key_transform) if args.key_transform else None,
        decrypt_timeout=check_timeout(args.timeout, "--timeout") if args.timeout is not None else None,
    )


def run_pipeline(config: PipelineConfig, environ: dict):
    """Run the pipeline; return it and whether the run was aborted."""
    pipeline = Pipeline(config, make_decryptor(config), environ)
    try:
        pipeline.run()
    except FileError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return pipeline, True
    return pipeline, False


def cmd_hook(args, config: PipelineConfig):
    """
    Print shell code that exports the secrets.

    Meant for eval in a shell hook:
        eval "$(sops-decrypt-hook -f secrets.env hook)"
    Bindings exported before a fatal error are still printed.
    """
    pipeline, aborted = run_pipeline(config, dict(os.environ))
    sys.stdout.write(render(pipeline.bindings, args.shell))
    sys.stdout.flush()
    return 1 if aborted else 0


def cmd_exec(args, config: PipelineConfig):
    """
    Execute a command with secrets injected as environment variables.

    Example:
        sops-decrypt-hook -f secrets.env exec -- ./manage.py runserver
    """
    # Strip leading '--' separator if present (argparse.REMAINDER includes it)
    command = args.exec_command
    if command and command[0] == "--":
        command = command[1:]

    if not command:
        err_console.print("[red]Error:[/red] No command specified")
        return 1

    env = os.environ.copy()
    pipeline, aborted = run_pipeline(config, env)
    if aborted:
        return 1

    err_console.print(f"[dim]Injected {len(pipeline.bindings)} variables[/dim]")
    try:
        result = subprocess.run(command, env=env, shell=False)
    except FileNotFoundError:
        err_console.print(f"[red]Error:[/red] Command not found: {command[0]}")
        return 127
    return result.returncode


def cmd_show(args, config: PipelineConfig):
    """List exported names with masked values (values never shown in full)."""
    pipeline, aborted = run_pipeline(config, dict(os.environ))

    if not pipeline.exported:
        console.print("[dim]No variables exported.[/dim]")
        return 1 if aborted else 0

    table = Table(title="Exported Variables", show_header=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Source", style="dim")

    for binding in pipeline.exported:
        value = mask_value(binding.value, args.chars)
        if binding.sanitized:
            value += " [yellow](literal)[/yellow]"
        table.add_row(binding.name, value, binding.source_file)

    console.print(table)

    stats = pipeline.stats
    console.print(
        f"\n[dim]Exported: {stats.exported}  Skipped: {stats.skipped}  "
        f"Sanitized: {stats.sanitized}[/dim]"
    )
    return 1 if aborted else 0


def _file_status(spec: FileSpec, config: PipelineConfig):
    if config.validate_paths and has_path_traversal(spec.path):
        return "[red]path traversal[/red]"
    path = Path(spec.path)
    if not path.is_file():
        if spec.required:
            return "[red]not found[/red]"
        return "[yellow]not found (optional)[/yellow]"
    size = path.stat().st_size
    if config.max_file_size > 0 and size > config.max_file_size:
        return "[red]too large[/red]"
    return "[green]exists[/green]"


def cmd_status(args, config: PipelineConfig):
    """Show status and configuration."""
    console.print("[bold]sops-decrypt-hook status[/bold]\n")

    sops_ok = check_sops_installed(config.sops_binary)
    age_ok = check_age_installed()
    config_file = args.config or get_default_config_file()
    age_key_file = get_age_key_file()

    table = Table(show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Path/Info", style="dim")

    table.add_row(
        "sops",
        "[green]installed[/green]" if sops_ok else "[red]not found[/red]",
        "https://github.com/getsops/sops" if not sops_ok else config.sops_binary
    )

    table.add_row(
        "age",
        "[green]installed[/green]" if age_ok else "[yellow]not found[/yellow]",
        "https://github.com/FiloSottile/age" if not age_ok else ""
    )

    table.add_row(
        "config file",
        "[green]exists[/green]" if config_file.exists() else "[dim]defaults[/dim]",
        str(config_file)
    )

    table.add_row(
        "age key",
        "[green]exists[/green]" if age_key_file.exists() else "[yellow]not found[/yellow]",
        str(age_key_file)
    )

    for spec in config.file_specs:
        table.add_row(f"{spec.format.value} file", _file_status(spec, config), spec.path)

    console.print(table)

    if not config.file_specs:
        console.print("\n[dim]No secret files configured. Use -f FILE or a config file.[/dim]")

    return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sops-decrypt-hook",
        description="Decrypt SOPS files and export their contents as environment variables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sops-decrypt-hook status                          # Check setup
  eval "$(sops-decrypt-hook -f secrets.env hook)"   # Export into this shell
  sops-decrypt-hook -f app.json --format json --prefix APP_ show
  sops-decrypt-hook -f secrets.env exec -- ./run-server.sh
  sops-decrypt-hook -f secrets.env hook --shell fish | source

Safety:
  - Protected variables (PATH, HOME, LD_PRELOAD, ...) are never set
  - Existing variables are kept unless --allow-overwrite is given
  - Values containing shell syntax are exported as literals
  - Invalid names and '..' paths are rejected

Environment:
  SOPS_DECRYPT_HOOK_CONFIG   Override config file location
  SOPS_AGE_KEY_FILE          Override age key location
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", type=Path, help="Config file (default: ./.sops-hook.yaml or ~/.config/sops-decrypt-hook/config.yaml)")
    parser.add_argument("-f", "--file", dest="files", action="append", default=[], type=Path,
                        help="SOPS file to decrypt (can repeat; replaces configured files)")
    parser.add_argument("--format", choices=[f.value for f in SecretFormat], help="Format of the -f files (default: dotenv)")
    parser.add_argument("--prefix", help="Prefix for names from the -f files")
    parser.add_argument("--filter", help="Only export names matching this regular expression")
    parser.add_argument("--optional", action="store_true", help="Treat missing -f files as optional")
    parser.add_argument("--global-prefix", help="Prefix for every exported name")
    parser.add_argument("--key-transform", choices=[t.value for t in KeyTransform], help="Change the case of names")
    parser.add_argument("--allow-overwrite", action="store_true", help="Overwrite variables that are already set")
    parser.add_argument("--fail-on-error", action="store_true", help="Stop at the first file that cannot be processed")
    parser.add_argument("--max-file-size", type=int, metavar="BYTES", help="Maximum encrypted file size (0 disables)")
    parser.add_argument("--no-validate-paths", action="store_true", help="Allow '..' in file paths")
    parser.add_argument("--no-validate-keys", action="store_true", help="Skip the name check on raw keys (final names must still be valid)")
    parser.add_argument("--timeout", type=float, metavar="SECONDS", help="Timeout for each sops call")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every decision to stderr")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # status
    subparsers.add_parser("status", help="Show status and configuration")

    # hook
    hook_parser = subparsers.add_parser("hook", help="Print shell code exporting the secrets")
    hook_parser.add_argument("--shell", choices=list(RENDERERS), default="bash", help="Output syntax (default: bash)")

    # show
    show_parser = subparsers.add_parser("show", help="List exported names with masked values")
    show_parser.add_argument("--chars", type=int, default=4, help="Chars to show (default: 4)")

    # exec
    exec_parser = subparsers.add_parser("exec", help="Run command with secrets injected")
    exec_parser.add_argument("exec_command", nargs=argparse.REMAINDER, help="Command to run")

    args = parser.parse_args(argv)

    # Handle file paths
    if args.config:
        args.config = Path(args.config).expanduser()
    args.files = [Path(f).expanduser() for f in args.files]

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = build_config(args)
    except ConfigError as e:
        err_console.print(f"[red]Config Error:[/red] {e}")
        return 2

    setup_logging(config.verbose)

    if args.command == "status":
        return cmd_status(args, config)
    elif args.command == "hook":
        return cmd_hook(args, config)
    elif args.command == "show":
        return cmd_show(args, config)
    elif args.command == "exec":
        return cmd_exec(args, config)

    return 0


if __name__ == "__main__":
    sys.exit(main())
