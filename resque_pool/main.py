import os
import sys
import logging
import argparse
from typing import List, Optional

import resque_pool.settings as default_settings
from resque_pool.exceptions import AlreadyRunningError, ConfigError
from resque_pool.global_config import pool_globals
from resque_pool.log.setup import setup_logging
from resque_pool.supervisor import Pool
from resque_pool.worker import CommandWorker

log = logging.getLogger("resque_pool.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resque-pool",
        description="Keep a configured number of queue workers running.",
    )
    parser.add_argument("-c", "--config", help="Pool configuration file (default: $RESQUE_POOL_CONFIG, config/resque-pool.yml or resque-pool.yml).")
    parser.add_argument("-E", "--environment", help="Environment section to merge over the defaults.")
    parser.add_argument("-p", "--pidfile", help="Write the manager PID to this file.")
    term = parser.add_mutually_exclusive_group()
    term.add_argument("--term-graceful", dest="term_behavior", action="store_const", const="graceful",
                      help="On TERM, let workers finish their current job before exiting.")
    term.add_argument("--term-immediate", dest="term_behavior", action="store_const", const="immediate",
                      help="On TERM, stop workers immediately (the default).")
    parser.add_argument("--handle-winch", action="store_true", default=None,
                        help="On WINCH, stop all workers but keep the manager running.")
    parser.add_argument("-w", "--worker-command", help=f"Command run for each worker (default: {default_settings.WORKER_COMMAND!r}).")
    parser.add_argument("-l", "--log-file", help="Also write logs to this file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level on the console.")
    return parser


def apply_environment(environment: Optional[str]) -> None:
    """Makes an explicit environment visible to every environment source."""
    if not environment:
        return
    for name in default_settings.ENVIRONMENT_ENV_VARS:
        os.environ[name] = environment


def build_pool(options: argparse.Namespace) -> Pool:
    kwargs = {
        "term_behavior": options.term_behavior,
        "handle_winch": options.handle_winch,
        "pid_file": options.pidfile,
    }
    if options.worker_command:
        kwargs["worker_runner"] = CommandWorker(options.worker_command)
    if options.config:
        return Pool(options.config, **kwargs)
    return Pool.create_configured(**kwargs)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the resque-pool command."""
    options = build_parser().parse_args(argv)

    setup_logging(logging.DEBUG if options.verbose else logging.INFO, options.log_file)
    apply_environment(options.environment)
    if options.term_behavior:
        pool_globals.set_term_behavior(options.term_behavior)

    try:
        pool = build_pool(options)
        pool.start()
    except (ConfigError, AlreadyRunningError) as e:
        log.error(f"resque-pool failed to start: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
