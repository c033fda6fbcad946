"""
Command-line interface for the job runner.

Commands:
- start: load the crontab, run its jobs and reload on every change
- check: parse the crontab and list the jobs it defines
- show-config: print the effective configuration
"""

import argparse
import json
import logging
import os
import signal
import sys
from pathlib import Path

from cronrunner import __version__
from cronrunner.config import RunnerConfig
from cronrunner.errors import CronRunnerError
from cronrunner.service import ReloadController, SchedulerService
from cronrunner.crontab import CrontabParser
from cronrunner.watcher import FileWatcher

logger = logging.getLogger(__name__)


def setup_logging(log_file: str = None, verbose: bool = False, level: str = "INFO"):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # APScheduler logs every job submission at INFO
    if not verbose:
        logging.getLogger('apscheduler').setLevel(logging.WARNING)

    # File handler
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)


def load_config(args) -> RunnerConfig:
    """Build the configuration from the config file, environment and flags."""
    config = RunnerConfig.load(
        args.config,
        crontab=getattr(args, 'crontab', None),
        executer=getattr(args, 'executer', None),
        shell=getattr(args, 'shell', None)
    )
    if getattr(args, 'log_file', None):
        config.logging.file = args.log_file

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"  - {error}")
        raise ValueError("Invalid configuration")
    return config


def cmd_start(args):
    """Run the crontab jobs until interrupted."""
    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        setup_logging(verbose=args.verbose)
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(log_file=config.logging.file, verbose=args.verbose, level=config.logging.level)
    logger.info(f"Starting job runner for {config.crontab}")

    controller = ReloadController(config)
    watcher = FileWatcher(config.crontab, controller.reload, debounce=config.watch_debounce)

    def terminate(code):
        watcher.stop()
        controller.shutdown()
        # In-flight jobs are abandoned, not awaited
        logging.shutdown()
        os._exit(code)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, stopping scheduler...")
        terminate(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        watcher.start()
        controller.reload()
    except CronRunnerError as e:
        logger.error(f"Failed to start job runner: {e}")
        watcher.stop()
        sys.exit(1)

    logger.info("Running. Press Ctrl+C to stop.")
    while not watcher.wait(timeout=1):
        pass

    if watcher.fatal_error is not None:
        logger.error(f"Terminating: {watcher.fatal_error}")
        terminate(1)


def cmd_check(args):
    """Parse the crontab and list its jobs without running them."""
    setup_logging(verbose=args.verbose)

    try:
        config = load_config(args)
        service = SchedulerService.from_config(config)
        parser = CrontabParser(service, config)
        with open(config.crontab, 'r', encoding='utf-8', errors='replace') as f:
            parser.parse_lines(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to check crontab: {e}")
        sys.exit(1)

    jobs = service.get_jobs()
    print(f"\n=== Jobs in {config.crontab} ({len(jobs)}) ===\n")
    for job in jobs:
        print(f"  {job['id'][:8]}  {job['schedule']}")
        print(f"    Command: {job['command']}")
        if job['args']:
            print(f"    Args:    {job['args']}")
        print(f"    Trigger: {job['trigger']}")
        print()


def cmd_show_config(args):
    """Print the effective configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    print(json.dumps(config.to_dict(), indent=2))


def _add_runner_arguments(parser):
    parser.add_argument('--crontab', type=str, help='Crontab file describing the jobs (default: /etc/crontab)')
    parser.add_argument(
        '--exec',
        dest='executer',
        type=str,
        help="'go' (or 'direct') to run commands without a shell, otherwise commands run via the shell"
    )
    parser.add_argument('--shell', type=str, help='Shell used to run commands (default: $SHELL)')


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the jobs of a crontab file and reload them whenever the file changes",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument(
        '-c', '--config',
        type=str,
        help='Path to JSON configuration file'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Start command
    start_parser = subparsers.add_parser('start', help='Run the crontab jobs')
    _add_runner_arguments(start_parser)
    start_parser.add_argument('--log-file', type=str, help='Log file path')
    start_parser.set_defaults(func=cmd_start)

    # Check command
    check_parser = subparsers.add_parser('check', help='Parse the crontab and list its jobs')
    _add_runner_arguments(check_parser)
    check_parser.set_defaults(func=cmd_check)

    # Show config command
    show_config_parser = subparsers.add_parser('show-config', help='Show configuration')
    _add_runner_arguments(show_config_parser)
    show_config_parser.set_defaults(func=cmd_show_config)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
