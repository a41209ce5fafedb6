# Safekeep - Command Line Interface
#
# Exit codes:
#   0  success
#   1  malformed invocation (usage is printed) or any other error (message
#      is printed)

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, NoReturn, Optional

from dotenv import find_dotenv, load_dotenv

from . import __version__
from .config import Config
from .core import EventSeverity, EventType, configure_audit_logger
from .errors import SafeError, UsageError
from .loader import SafeLoader, initialize_safe, read_master_password_confirmed
from .utils import generate_password, get_password_input

logger = logging.getLogger(__name__)


class CommandParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad usage as UsageError instead of exiting 2."""

    def error(self, message: str) -> NoReturn:
        exc = UsageError(message)
        exc.parser = self
        raise exc


# ── Helpers ──────────────────────────────────────────────────────────


def _new_loader(config: Config, writable: bool) -> SafeLoader:
    loader = SafeLoader(config, writable=writable, prompt=get_password_input)
    for _ in range(config.general.unlock_retries):
        loader.remember_password()
    return loader


def _read_value(args: argparse.Namespace, config: Config) -> str:
    if args.generate:
        return generate_password(args.length or config.general.password_length)
    value = get_password_input(f"Enter a value for '{args.name}'").decode("utf-8")
    if not value:
        raise SafeError("Entry value must not be empty")
    return value


# ── Commands ─────────────────────────────────────────────────────────


def cmd_init(args: argparse.Namespace, config: Config) -> None:
    location = initialize_safe(config, prompt=get_password_input)
    print(f"safe initialized at {location}")


def cmd_add(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        value = _read_value(args, config)
        safe.add(args.name, value, username=args.username or "", notes=args.notes or "")
        safe.save()
    if args.generate:
        print(value)


def cmd_edit(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        safe.get(args.name)
        value = None if args.keep_value else _read_value(args, config)
        safe.edit(args.name, value=value, username=args.username, notes=args.notes)
        safe.save()
    if args.generate and not args.keep_value:
        print(value)


def cmd_cat(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=False).load() as safe:
        entry = safe.get(args.name)
    if args.verbose:
        if entry.username:
            print(f"username: {entry.username}")
        if entry.notes:
            print(f"notes: {entry.notes}")
        print(f"modified: {entry.modified_at}")
    print(entry.value)


def cmd_ls(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=False).load() as safe:
        names = safe.names()
    for name in names:
        print(name)


def cmd_rm(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        safe.remove(args.name)
        safe.save()
    print(f"removed {args.name}")


def cmd_mv(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        safe.move(args.old_name, args.new_name)
        safe.save()
    print(f"moved {args.old_name} -> {args.new_name}")


def cmd_cp(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        safe.copy(args.src, args.dst)
        safe.save()
    print(f"copied {args.src} -> {args.dst}")


def cmd_history(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=False).load() as safe:
        entry = safe.get(args.name)
    for item in entry.history:
        print(f"{item['archived_at']}  {item['value']}")
    print(f"{entry.modified_at}  {entry.value}  (current)")


def cmd_export(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=False).load() as safe:
        exported = safe.export()
    print(json.dumps(exported, indent=2, sort_keys=True))


def cmd_passwd(args: argparse.Namespace, config: Config) -> None:
    with _new_loader(config, writable=True).load() as safe:
        new_password = read_master_password_confirmed(get_password_input, new=True)
        safe.change_password(new_password)
        safe.save()
    print("master password changed")


# ── Parser ───────────────────────────────────────────────────────────


def build_parser() -> CommandParser:
    parser = CommandParser(
        prog="safekeep",
        description="Password-protected secret safe with pluggable storage",
    )
    parser.add_argument("--config", help="Config file (default: $SAFEKEEP_CONFIG or ~/.safekeep.toml)")
    parser.add_argument("--version", action="version", version=f"safekeep {__version__}")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    def command(name: str, handler: Callable, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.set_defaults(handler=handler)
        return p

    command("init", cmd_init, "Create a new safe")

    for name, handler, help_text in (
        ("add", cmd_add, "Add a secret"),
        ("edit", cmd_edit, "Change an existing secret"),
    ):
        p = command(name, handler, help_text)
        p.add_argument("name")
        p.add_argument("-u", "--username")
        p.add_argument("-n", "--notes")
        p.add_argument("-g", "--generate", action="store_true", help="Generate a random value")
        p.add_argument("-l", "--length", type=int, help="Length of a generated value")
        if name == "edit":
            p.add_argument("--keep-value", action="store_true", help="Only update username/notes")

    p = command("cat", cmd_cat, "Print a secret")
    p.add_argument("name")
    p.add_argument("-v", "--verbose", action="store_true", help="Also print username, notes and date")

    command("ls", cmd_ls, "List secret names")

    p = command("rm", cmd_rm, "Remove a secret")
    p.add_argument("name")

    p = command("mv", cmd_mv, "Rename a secret")
    p.add_argument("old_name")
    p.add_argument("new_name")

    p = command("cp", cmd_cp, "Copy a secret")
    p.add_argument("src")
    p.add_argument("dst")

    p = command("history", cmd_history, "Show previous values of a secret")
    p.add_argument("name")

    command("export", cmd_export, "Print the whole safe as JSON")
    command("passwd", cmd_passwd, "Change the master password")

    return parser


def run_command(parser: CommandParser, argv: Optional[List[str]] = None) -> int:
    """Parse ``argv``, run the command and return the process exit code."""
    try:
        args = parser.parse_args(argv)
        if args.command is None:
            raise UsageError("no command given")
        if getattr(args, "length", None) is not None and args.length < 1:
            raise UsageError("--length must be positive")

        config = Config.load(args.config)
        audit = configure_audit_logger(Path(config.general.audit_dir))
        audit.log_event(
            event_type=EventType.SYSTEM_START,
            severity=EventSeverity.INFO,
            message=f"safekeep {args.command}",
            details={"version": __version__, "command": args.command},
        )

        args.handler(args, config)
    except UsageError as e:
        getattr(e, "parser", parser).print_usage()
        print(e, file=sys.stderr)
        return 1
    except SafeError as e:
        print(e)
        return 1
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        print(f"Error: {e}")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    sys.exit(run_command(build_parser(), argv))
