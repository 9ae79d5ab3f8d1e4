"""Command-line entry point — ``py-vmm``.

Parses the classic options, builds a kernel with a console + log-file
logger, wires SIGINT/SIGTERM to cancellation, runs the simulation and
prints the final statistics::

    py-vmm [-n proc] [-s simul] [-i interval_ms] [-f logfile]
           [--config FILE] [--seed N] [--recycle-slots] [--time-limit S]

The helpers (``build_parser``, ``load_config``, ``build_logger``) are
pure and testable; ``main()`` is the thin I/O wrapper around them.

Exit status: 0 on any orderly stop (including timeout and interrupt),
1 if the log file or message channel cannot be opened, 2 for bad
options.
"""

from __future__ import annotations

import argparse
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from py_vmm.config import ConfigError, KernelConfig
from py_vmm.io.ipc import ChannelError
from py_vmm.kernel import Kernel
from py_vmm.logging import FileSink, Logger, LogLevel, StreamSink
from py_vmm.memmap import format_memory_map

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for ``py-vmm``."""
    parser = argparse.ArgumentParser(
        prog="py-vmm",
        description="Simulate demand paging with LRU replacement across many processes.",
    )
    parser.add_argument("-n", dest="total_processes", type=int, metavar="proc",
                        help="total number of processes to launch (default: 100)")
    parser.add_argument("-s", dest="max_concurrent", type=int, metavar="simul",
                        help="maximum number of concurrent processes (default: 18)")
    parser.add_argument("-i", dest="launch_interval_ms", type=int, metavar="interval",
                        help="simulated ms between process launches (default: 1000)")
    parser.add_argument("-f", dest="log_file", metavar="logfile",
                        help="log file name (default: oss.log)")
    parser.add_argument("--config", type=Path, metavar="FILE",
                        help="JSON file with configuration fields")
    parser.add_argument("--seed", type=int, help="seed for the worker random generators")
    parser.add_argument("--time-limit", dest="wall_clock_limit_s", type=float, metavar="SECONDS",
                        help="real-time safety limit (default: 5)")
    parser.add_argument("--recycle-slots", dest="recycle_slots", action="store_true", default=None,
                        help="reuse process-table slots after a process exits")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true",
                           help="only print the final statistics to the console")
    verbosity.add_argument("-v", "--verbose", action="store_true",
                           help="also print every memory reference to the console")
    return parser


def load_config(args: argparse.Namespace) -> KernelConfig:
    """Merge the optional JSON file with command-line overrides.

    Raises:
        ConfigError: If any value is invalid.
        OSError: If the config file cannot be read.

    """
    base = KernelConfig.from_json(args.config) if args.config is not None else KernelConfig()
    return base.with_overrides(
        total_processes=args.total_processes,
        max_concurrent=args.max_concurrent,
        launch_interval_ms=args.launch_interval_ms,
        log_file=args.log_file,
        seed=args.seed,
        wall_clock_limit_s=args.wall_clock_limit_s,
        recycle_slots=args.recycle_slots,
    ).validate()


def build_logger(
    config: KernelConfig,
    *,
    quiet: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> Logger:
    """Create a logger writing to the log file and (unless quiet) the console.

    Raises:
        OSError: If the log file cannot be opened.

    """
    logger = Logger(sinks=[FileSink(config.log_file)])
    if not quiet:
        level = LogLevel.DEBUG if verbose else LogLevel.INFO
        logger.add_sink(StreamSink(stream, min_level=level))
    return logger


@contextmanager
def _cancel_on_signals(kernel: Kernel) -> Generator[None]:
    """Route SIGINT/SIGTERM to ``kernel.cancel()`` for the duration."""

    def handler(_signum: int, _frame: object) -> None:
        kernel.cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def main(argv: Sequence[str] | None = None) -> int:
    """Run a simulation from the command line.

    Returns:
        The process exit status.

    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args)
    except (ConfigError, OSError) as e:
        parser.error(str(e))

    try:
        logger = build_logger(config, quiet=args.quiet, verbose=args.verbose)
    except OSError as e:
        print(f"py-vmm: failed to open log file {config.log_file}: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE

    kernel = Kernel(config, logger=logger)
    kernel.add_observer(lambda snap: logger.info(format_memory_map(snap), source="memmap"))
    try:
        with _cancel_on_signals(kernel):
            report = kernel.run()
    except ChannelError as e:
        print(f"py-vmm: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE
    finally:
        logger.close()

    if args.quiet:
        print(report.format())  # noqa: T201
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
