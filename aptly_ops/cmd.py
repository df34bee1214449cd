"""This module contains command line entrypoints of aptly-search and aptly-sync"""
import argparse
import logging
import os
import os.path
import sys
from typing import List, Optional, Sequence
from urllib3 import Timeout
from aptly_ops import VERSION
from aptly_ops.api import ApiClient
from aptly_ops.aptly import CliClient, Client
from aptly_ops.config import Config, load_config, parse_override_dict
from aptly_ops.exceptions import AptlyOpsError, SyncAborted
from aptly_ops.mail import Mailer
from aptly_ops.report import UpdatesLog, file_handler
from aptly_ops.search import InvalidPattern, compile_pattern, search
from aptly_ops.sync import RepoResult, Synchronizer
from aptly_ops.util import print_table, str_list

log = logging.getLogger(__name__)

DEFAULT_LOG_DIR = "/var/log/aptly-ops"

SEARCH_EPILOG = """
examples:
  %(prog)s nginx        # exact match
  %(prog)s 'nginx*'     # wildcard match (prefix only)

Only trailing wildcards (e.g. nginx*) are supported.
Patterns like *nginx or *nginx* are not allowed.
"""


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser exiting with code 1 on usage errors"""

    def error(self, message: str) -> None:  # type: ignore
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def require_root() -> None:
    if os.geteuid() != 0:
        print("This script must be run as root", file=sys.stderr)
        sys.exit(1)


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--version", action="version", version="%(prog)s " + VERSION)

    parser.add_argument(
        "--debug",
        action="store_true",
        help="enable debug messages",
    )

    parser.add_argument("-c", "--config", help="path to config file")

    parser.add_argument(
        "-S",
        "--section",
        default="",
        help="section from config file. By default first one is used",
    )

    parser.add_argument(
        "-C",
        "--config-key",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        dest="config_keys",
        help="""
        provide value for configuration KEY.
        Takes precedence over config file.
        Use dots to set nested fields e.g. signing.gpgkey=somekey
        """,
    )


def init_logging(prog: str, log_level: int, console_level: int) -> logging.Logger:
    """Configure package logger to print messages on stderr"""
    log_format = "%(levelname)s " + prog + "(%(process)d) "
    if log_level <= logging.DEBUG:
        log_format += "[%(name)s:%(funcName)s()] "
    log_format += "%(message)s"

    app_logger = logging.getLogger(__package__)
    app_logger.setLevel(log_level)
    app_log_formatter = logging.Formatter(fmt=log_format)
    app_log_handler = logging.StreamHandler()
    app_log_handler.setLevel(console_level)
    app_log_handler.setFormatter(app_log_formatter)
    app_logger.addHandler(app_log_handler)
    if log_level <= logging.DEBUG:
        urllib3_logger = logging.getLogger("urllib3")
        urllib3_logger.setLevel(log_level)
        urllib3_logger.addHandler(app_log_handler)
    return app_logger


def load(args: argparse.Namespace) -> Config:
    try:
        override = parse_override_dict(args.config_keys)
        return load_config(path=args.config, section=args.section, override=override)
    except ValueError as exc:
        log.error("%s", exc)
        log.debug("Printing traceback for error above", exc_info=True)
        sys.exit(1)


def make_client(config: Config) -> Client:
    if config.backend == "api":
        return ApiClient(
            url=config.url,
            signing_config=config.signing,
            timeout=Timeout(connect=config.connect_timeout, read=config.read_timeout),
        )
    return CliClient(
        aptly_cmd=config.aptly_cmd,
        config_file=config.aptly_config,
        signing_config=config.signing,
    )


def report_error(exc: AptlyOpsError) -> None:
    error_msg = str(exc)
    if exc.__cause__ is not None:
        error_msg += f": {exc.__cause__}"
    log.error(error_msg)
    log.debug("Printing traceback for error above", exc_info=True)


def search_parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """parse aptly-search command line arguments"""
    parser = ArgumentParser(
        prog="aptly-search",
        description="search packages by name in all aptly snapshots",
        epilog=SEARCH_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_common_arguments(parser)
    parser.add_argument(
        "pattern",
        metavar="<packagename or pattern>",
        help="package name or name prefix followed by '*'",
    )
    args = parser.parse_args(argv)
    try:
        compile_pattern(args.pattern)
    except InvalidPattern as exc:
        parser.error(str(exc))
    return args


def search_main(argv: Optional[Sequence[str]] = None) -> None:
    """entrypoint of aptly-search"""
    require_root()
    args = search_parse_args(argv)
    init_logging(
        "search",
        logging.DEBUG if args.debug else logging.WARN,
        logging.DEBUG if args.debug else logging.WARN,
    )
    config = load(args)
    aptly = make_client(config)

    try:
        result = search(aptly, args.pattern)
    except AptlyOpsError as exc:
        report_error(exc)
        sys.exit(1)

    for snapshot, packages in result:
        for package in packages:
            print(package)
        print(f"Package(s) matching '{args.pattern}' found in snapshot: {snapshot}")

    if not result:
        print(f"No packages matching '{args.pattern}' found in any snapshot.")
        sys.exit(1)
    sys.exit(0)


def sync_parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """parse aptly-sync command line arguments"""
    parser = ArgumentParser(
        prog="aptly-sync",
        description="""update aptly mirrors, snapshot and publish new packages,
        drop old snapshots and send email notifications""",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "-r",
        "--repos",
        type=str_list,
        metavar="<repo>[,<repo>,...]",
        help="comma separated list of repositories to sync. All mirrors by default",
    )
    parser.add_argument(
        "-m",
        "--mail",
        type=str_list,
        metavar="<email>[,<email>,...]",
        help="comma separated list of emails to send email notification to",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="quiet",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="dry-run mode (no changes made, only logs actions)",
    )
    args = parser.parse_args(argv)
    if args.repos is not None and not args.repos:
        parser.error("list of repositories is empty")
    if args.mail is not None and not args.mail:
        parser.error("list of emails is empty")
    return args


def resolve_log_dir(config: Config, aptly: Client) -> str:
    if config.log_dir:
        return config.log_dir
    root_dir = aptly.root_dir()
    if root_dir:
        return os.path.join(root_dir, "log")
    return DEFAULT_LOG_DIR


def print_summary(results: List[RepoResult]) -> None:
    table = [
        [
            result.repository,
            result.status,
            result.published or "",
            len(result.dropped),
            list(result.drop_failed),
        ]
        for result in results
    ]
    print_table(
        table, ["repository", "status", "published", "dropped", "failed to drop"]
    )


def sync_main(argv: Optional[Sequence[str]] = None) -> None:
    """entrypoint of aptly-sync"""
    require_root()
    args = sync_parse_args(argv)
    app_logger = init_logging(
        "sync",
        logging.DEBUG if args.debug else logging.INFO,
        logging.ERROR if args.quiet else logging.DEBUG,
    )
    config = load(args)
    if args.mail:
        config = config._replace(mail_recipients=tuple(args.mail))
    aptly = make_client(config)

    try:
        log_dir = resolve_log_dir(config, aptly)
        app_logger.addHandler(file_handler(log_dir))
    except (AptlyOpsError, OSError) as exc:
        log.error("Failed to set up log directory: %s", exc)
        log.debug("Printing traceback for error above", exc_info=True)
        sys.exit(1)

    synchronizer = Synchronizer(
        aptly,
        config,
        Mailer(config.mail, config.mail_from),
        UpdatesLog(log_dir),
        dry_run=args.dry_run,
    )
    try:
        results = synchronizer.run(args.repos)
    except SyncAborted:
        sys.exit(1)

    if not args.quiet:
        print()
        print_summary(results)
