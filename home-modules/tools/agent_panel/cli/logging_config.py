"""Logging setup for `ap`.

All package loggers hang off the `agent_panel` logger. The CLI writes them to
stderr so `--json` output on stdout stays machine-readable:

    ap activate demo            warnings and errors only
    ap --verbose activate demo  + step-by-step progress
    ap --debug activate demo    + every aerospace/open/osascript invocation
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Sequence, Tuple

from ..core.command_runner import CommandResult, format_command


LOGGER_NAME = "agent_panel"

# Output captured from external commands is cut to this many characters
MAX_OUTPUT_CHARS = 200

# (level, format) per CLI verbosity
_LEVELS: Dict[str, Tuple[int, str]] = {
    "quiet": (logging.WARNING, "ap: %(levelname)s: %(message)s"),
    "verbose": (logging.INFO, "%(asctime)s %(levelname)s %(name)s: %(message)s"),
    "debug": (logging.DEBUG, "%(asctime)s %(levelname)s %(name)s:%(lineno)d: %(message)s"),
}


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps the level name in an ANSI colour."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",       # Dim
        logging.INFO: "\033[34m",       # Blue
        logging.WARNING: "\033[33m",    # Yellow
        logging.ERROR: "\033[31m",      # Red
        logging.CRITICAL: "\033[1;31m", # Bold red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Copy so handlers sharing the record keep the plain name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def verbosity(verbose: bool = False, debug: bool = False) -> str:
    """Map the CLI flags to a verbosity name; --debug wins over --verbose."""
    if debug:
        return "debug"
    if verbose:
        return "verbose"
    return "quiet"


def setup_logging(verbose: bool = False, debug: bool = False, stream=None) -> logging.Logger:
    """(Re)configure the `agent_panel` logger.

    Args:
        verbose: Show INFO progress messages
        debug: Show DEBUG command traces (implies verbose)
        stream: Destination, stderr by default

    Returns:
        The configured `agent_panel` logger
    """
    stream = stream if stream is not None else sys.stderr
    level, log_format = _LEVELS[verbosity(verbose, debug)]

    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    use_color = hasattr(stream, "isatty") and stream.isatty()
    handler.setFormatter(ColoredFormatter(log_format) if use_color else logging.Formatter(log_format))

    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _clip(text: str) -> str:
    text = text.strip()
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return f"{text[:MAX_OUTPUT_CHARS]}... ({len(text)} chars)"


def log_command_result(
    executable: str,
    args: Sequence[str],
    result: CommandResult,
    logger: logging.Logger,
) -> None:
    """Trace one finished external command at DEBUG."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(f"$ {format_command(executable, args)} -> exit {result.exit_code}")
    for name, output in (("stdout", result.stdout), ("stderr", result.stderr)):
        if output.strip():
            logger.debug(f"  {name}: {_clip(output)}")


@contextmanager
def log_timing(operation: str, logger: logging.Logger) -> Iterator[None]:
    """Log how long the wrapped block took, including when it raises."""
    start = time.perf_counter()
    logger.debug(f"{operation}: started")
    outcome = "failed"
    try:
        yield
        outcome = "done"
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{operation}: {outcome} in {elapsed_ms:.0f}ms")


_cli_logger: Optional[logging.Logger] = None


def init_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging once per CLI invocation."""
    global _cli_logger
    _cli_logger = setup_logging(verbose=verbose, debug=debug)


def get_global_logger() -> logging.Logger:
    """The CLI logger; quiet defaults when `init_logging` was not called."""
    global _cli_logger
    if _cli_logger is None:
        _cli_logger = setup_logging()
    return _cli_logger
