#!/usr/bin/env python3

"""
Command-line interface for fmutex
"""

import sys
import logging
import argparse
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from tqdm import tqdm

from .config import Config
from .errors import FMutexError
from .lock import FileMutex
from .utils import format_duration, parse_duration

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

CMD_LOCK = 'lock'
CMD_RELEASE = 'release'
CMD_UNLOCK = 'unlock'
CMD_TEST = 'test'

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNLOCKED = 1


class WaitProgress:
    """tqdm indicator shown while a lock attempt is contending"""

    def __init__(self, lock_id: str, silent: bool):
        self.lock_id = lock_id
        self.silent = silent
        self.pbar = None

    def __call__(self, event: str, path: str):
        if event == 'wait':
            if self.pbar is None:
                self.pbar = tqdm(
                    desc=f"waiting for {self.lock_id}",
                    unit="attempts",
                    bar_format="{desc:<30} {n_fmt} attempts [{elapsed}]",
                    colour="yellow",
                    leave=False,
                    # None disables tqdm when stderr is not a terminal
                    disable=True if self.silent else None,
                )
            self.pbar.update(1)

    def close(self):
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fmutex',
        description='Lock and release file-based mutexes shared through a (network) filesystem',
    )
    parser.add_argument('--root', help='root directory for mutex(es) (env FMUTEX_ROOT, default: system temp dir)')
    parser.add_argument('--id', help='mutex id (env FMUTEX_ID)')
    parser.add_argument('--config', help=f'YAML config file (default: ./{Config.DEFAULT_CONFIG_FILE})')
    parser.add_argument('-s', '--silent', action='store_true', default=None, help='silent execution')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')

    subparsers = parser.add_subparsers(dest='command', metavar='{lock,release,unlock,test}')
    subparsers.required = True

    lock_parser = subparsers.add_parser(CMD_LOCK, help='lock the mutex, waiting while it is held elsewhere')
    lock_parser.add_argument('--pulse', type=_duration,
                             help=f'frequency of locking attempts (default: {format_duration(Config.DEFAULTS["pulse"])})')
    lock_parser.add_argument('--refresh', type=_duration,
                             help='frequency of saving current timestamp in the locking file '
                                  f'(default: {format_duration(Config.DEFAULTS["refresh"])})')
    lock_parser.add_argument('--limit', type=_duration,
                             help='how long it takes to consider the mutex "dead", <= 0 never '
                                  f'(default: {format_duration(Config.DEFAULTS["limit"])})')
    lock_parser.add_argument('--timeout', type=_duration, help='locking timeout (if > 0)')

    subparsers.add_parser(CMD_RELEASE, aliases=[CMD_UNLOCK], help='release the mutex')
    subparsers.add_parser(CMD_TEST, help='exit with 0 if the mutex is locked, 1 otherwise')
    return parser


def configure_logging(silent: bool, verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('fmutex').setLevel(logging.CRITICAL + 1 if silent else logging.NOTSET)


def new_mutex(config: dict, progress_callback=None) -> FileMutex:
    return FileMutex(
        config['root'],
        config['id'],
        pulse=config['pulse'],
        refresh=config['refresh'],
        dead_age=config['limit'],
        progress_callback=progress_callback,
    )


def do_lock(config: dict) -> int:
    progress = WaitProgress(config['id'], config['silent'])
    try:
        mutex = new_mutex(config, progress)
        mutex.try_lock(config['timeout'])
    finally:
        progress.close()
    if not config['silent']:
        console.print("LOCKED")
    return EXIT_OK


def do_release(config: dict) -> int:
    new_mutex(config).try_unlock()
    if not config['silent']:
        console.print("RELEASED")
    return EXIT_OK


def do_test(config: dict) -> int:
    mutex = new_mutex(config)
    status = mutex.status()
    if not config['silent']:
        where = f"Mutex \"{escape(mutex.id)}\" ({escape(mutex.lock_path)})"
        if status.locked:
            err_console.print(f"{where} is [yellow]locked[/yellow] since {status.since.isoformat()}", soft_wrap=True)
        else:
            err_console.print(f"{where} is [green]unlocked[/green]", soft_wrap=True)
    return EXIT_OK if status.locked else EXIT_UNLOCKED


COMMANDS = {
    CMD_LOCK: do_lock,
    CMD_RELEASE: do_release,
    CMD_UNLOCK: do_release,
    CMD_TEST: do_test,
}


def main(argv: Optional[List[str]] = None) -> int:
    """main"""
    parser = build_parser()
    args = parser.parse_args(argv)

    file_config = Config.load_config(args.config)
    cli_config = vars(args)
    try:
        config = Config.merge_config(file_config, cli_config, Config.load_env())
    except FMutexError as e:
        parser.error(str(e))

    if not config.get('id'):
        parser.error("the --id option (or FMUTEX_ID) is required")

    configure_logging(config['silent'], args.verbose)
    logger.debug(f"{args.command}: {config}")

    try:
        return COMMANDS[args.command](config)
    except FMutexError as e:
        if not config['silent']:
            err_console.print(f"[bold red]{args.command} failed for mutex \"{escape(config['id'])}\": {escape(str(e))}[/bold red]",
                              soft_wrap=True)
        return EXIT_FAILURE


if __name__ == '__main__':
    sys.exit(main())
