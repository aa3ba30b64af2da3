from __future__ import annotations

import argparse
import json
import logging
import shlex
from functools import partial
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter
from php_startup_optimizer import PhpOptimizer, StatusReport, load_settings
from php_startup_optimizer.settings import OptimizerSettings

_CONSOLE = Console(no_color=False)
_ERR_CONSOLE = Console(stderr=True)
_FORMATS = ("shell", "json", "lines")


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="phpopt")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)

    def print_help(self, file: Any | None = None) -> None:
        """Render help text to the target stream.

        Example:
            ```python
            parser.print_help()
            ```
        """
        super().print_help(file=file)


def _add_format_argument(parser: argparse.ArgumentParser) -> None:
    """Attach the shared ``--format`` option to a flag-printing subcommand.

    Example:
        ```python
        _add_format_argument(sub.add_parser("opcache"))
        ```
    """
    parser.add_argument(
        "--format",
        choices=_FORMATS,
        default="shell",
        help=(
            "Output style (default: shell).\n"
            "shell: one shell-quoted line; json: JSON array; lines: one token per line."
        ),
    )


def _add_buffer_argument(parser: argparse.ArgumentParser) -> None:
    """Attach the shared ``--jit-buffer-size`` option.

    Example:
        ```python
        _add_buffer_argument(sub.add_parser("jit"))
        ```
    """
    parser.add_argument(
        "--jit-buffer-size",
        help="Value for opcache.jit_buffer_size, passed through as given (default: 100M).",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for PHP startup flag generation.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="phpopt",
        description=(
            "php-startup-optimizer CLI\n"
            "Detect OPcache and JIT support of a PHP binary and print\n"
            "the -d startup flags that speed up its CLI processes.\n"
            "This CLI never runs your PHP scripts."
        ),
        epilog=(
            "Quick Examples:\n"
            "  phpopt status\n"
            "  phpopt params\n"
            "  phpopt params --no-jit\n"
            "  phpopt params --jit-buffer-size 200M --format json\n"
            "  phpopt opcache --format lines\n\n"
            "Binary Selection:\n"
            "  phpopt --php /usr/bin/php8.3 status\n"
            "  PHP_BINARY=php8.2 phpopt params\n"
            "  phpopt --config phpopt.toml params"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--php",
        help=(
            "PHP binary to inspect.\n"
            "Default: the config file, then $PHP_BINARY, then `php` on PATH."
        ),
    )
    parser.add_argument(
        "--config",
        help="Path to a TOML settings file ([optimizer] table).",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=int,
        help="Seconds to wait for the PHP probe (default: 10).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log detection details to stderr.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    params_cmd = sub.add_parser(
        "params",
        help="Print OPcache flags followed by JIT flags.",
        description=(
            "Print the merged startup flags for the detected runtime.\n"
            "JIT flags are only included together with OPcache flags."
        ),
        epilog=(
            "Examples:\n"
            "  phpopt params\n"
            "  phpopt params --no-jit\n"
            "  php $(phpopt params) bin/console cache:warmup"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    params_cmd.add_argument(
        "--no-opcache",
        dest="enable_opcache",
        action="store_false",
        default=None,
        help="Leave out OPcache flags (and therefore JIT flags).",
    )
    params_cmd.add_argument(
        "--no-jit",
        dest="enable_jit",
        action="store_false",
        default=None,
        help="Leave out JIT flags.",
    )
    _add_buffer_argument(params_cmd)
    _add_format_argument(params_cmd)

    opcache_cmd = sub.add_parser(
        "opcache",
        help="Print OPcache flags only.",
        description="Print the OPcache startup flags, or nothing when OPcache is not loaded.",
        formatter_class=_HELP_FORMATTER,
    )
    _add_format_argument(opcache_cmd)

    jit_cmd = sub.add_parser(
        "jit",
        help="Print JIT flags only.",
        description="Print the tracing JIT startup flags, or nothing when the JIT is unavailable.",
        formatter_class=_HELP_FORMATTER,
    )
    _add_buffer_argument(jit_cmd)
    _add_format_argument(jit_cmd)

    status_cmd = sub.add_parser(
        "status",
        help="Show detected OPcache/JIT support and reasons.",
        description=(
            "Show which capabilities the PHP binary supports.\n"
            "Unsupported capabilities are listed with the reason."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    status_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the status record as a JSON object.",
    )

    return parser


def configure_logging(verbose: bool) -> None:
    """Route library logs to stderr through Rich.

    Example:
        ```python
        configure_logging(verbose=True)
        ```
    """
    logger = logging.getLogger("php_startup_optimizer")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=_ERR_CONSOLE, show_path=False))
    logger.propagate = False


def resolve_settings(args: argparse.Namespace) -> OptimizerSettings:
    """Merge settings file, environment and CLI flags.

    Example:
        ```python
        settings = resolve_settings(args)
        ```
    """
    settings = load_settings(args.config)
    return settings.with_overrides(
        php_binary=args.php,
        probe_timeout_seconds=args.timeout_seconds,
        enable_opcache=getattr(args, "enable_opcache", None),
        enable_jit=getattr(args, "enable_jit", None),
        jit_buffer_size=getattr(args, "jit_buffer_size", None),
    )


def _print_flags(flags: list[str], output_format: str) -> None:
    """Render a flag list in the requested output style.

    Example:
        ```python
        _print_flags(["-d", "opcache.enable_cli=1"], "shell")
        ```
    """
    if output_format == "json":
        text = json.dumps(flags)
    elif output_format == "lines":
        text = "\n".join(flags)
    else:
        text = shlex.join(flags)
    if text:
        _CONSOLE.print(text, markup=False, highlight=False, soft_wrap=True)


def _print_status(report: StatusReport) -> None:
    """Render the status record in a rich table.

    Example:
        ```python
        _print_status(optimizer.get_status())
        ```
    """
    table = Table(title=f"PHP {report.php_version or 'unknown'}")
    table.add_column("Capability", style="cyan")
    table.add_column("Supported")
    table.add_column("Reason")
    for name, label, supported in (("opcache", "OPcache", report.opcache), ("jit", "JIT", report.jit)):
        table.add_row(
            label,
            "[bold green]yes[/bold green]" if supported else "[bold red]no[/bold red]",
            report.reasons.get(name, ""),
        )
    _CONSOLE.print(table)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `phpopt` CLI command handler.

    Example:
        ```python
        code = main(["params", "--no-jit"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose)
    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {exc}", border_style="red"))
        return 2
    optimizer = PhpOptimizer.from_settings(settings)

    if args.command == "params":
        flags = optimizer.get_optimized_parameters(
            enable_opcache=settings.enable_opcache,
            enable_jit=settings.enable_jit,
            jit_buffer_size=settings.jit_buffer_size,
        )
        _print_flags(flags, args.format)
        return 0
    if args.command == "opcache":
        _print_flags(optimizer.get_opcache_parameters(), args.format)
        return 0
    if args.command == "jit":
        _print_flags(optimizer.get_jit_parameters(settings.jit_buffer_size), args.format)
        return 0
    if args.command == "status":
        report = optimizer.get_status()
        if args.json:
            _CONSOLE.print(
                json.dumps(report.to_dict(), indent=2),
                markup=False,
                highlight=False,
                soft_wrap=True,
            )
        else:
            _print_status(report)
        return 0

    parser.error("Unhandled command")
    return 2
