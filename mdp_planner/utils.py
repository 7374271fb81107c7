"""
Common helpers: logging setup, timing and bundled data paths.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def get_data_path(*paths: str) -> Path:
    """
    Path of a file shipped in the package's data directory.

    Example:
        >>> get_data_path('running_example.json')
        PosixPath('/path/to/mdp_planner/data/running_example.json')
    """
    return Path(__file__).resolve().parent.joinpath('data', *paths)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure root logging for command-line use.

    Args:
        verbose: If True, emit per-sweep DEBUG records as well.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT
    )


class Timer:
    """
    Wall-clock timer context manager.

    Example:
        >>> with Timer("Value iteration") as timer:
        ...     solver.solve(problem)
        >>> timer.elapsed_ms
    """

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def __enter__(self) -> Timer:
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.end_time = time.perf_counter()
        logger.debug(f"{self.name} completed in {self.elapsed_ms:.1f}ms")

    @property
    def elapsed(self) -> float:
        """Elapsed seconds; still running timers report time so far."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0
