"""
Utility functions for the sensor failure detection pipeline.

Includes logging setup, timing helpers, memory reporting and numeric cleaning.
"""

import logging
import os
import time
from functools import wraps
from typing import Dict, Optional

import numpy as np
import pandas as pd
import psutil
from rich.console import Console
from rich.logging import RichHandler

from .config import LOGGING_CONFIG


# Global console for rich output
console = Console()


def setup_logging(
    level: int = LOGGING_CONFIG["level"],
    log_file: Optional[str] = None
) -> logging.Logger:
    """Setup logging with rich formatting"""

    logger = logging.getLogger("sensor_fd")
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    rich_handler = RichHandler(console=console, show_time=True, show_path=False)
    rich_handler.setFormatter(
        logging.Formatter(
            fmt="%(message)s",
            datefmt="[%Y-%m-%d %H:%M:%S]"
        )
    )
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                fmt=LOGGING_CONFIG["format"],
                datefmt=LOGGING_CONFIG["datefmt"]
            )
        )
        logger.addHandler(file_handler)

    return logger


def get_memory_usage() -> Dict[str, float]:
    """Get current memory usage statistics"""
    process = psutil.Process()
    memory_info = process.memory_info()

    return {
        "rss_gb": memory_info.rss / (1024**3),
        "percent": process.memory_percent(),
        "available_gb": psutil.virtual_memory().available / (1024**3)
    }


def log_memory_usage(logger: logging.Logger, context: str = "") -> None:
    """Log current memory usage with context at DEBUG level"""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    memory_stats = get_memory_usage()
    logger.debug(
        f"Memory usage{' (' + context + ')' if context else ''}: "
        f"RSS={memory_stats['rss_gb']:.2f}GB, "
        f"Available={memory_stats['available_gb']:.1f}GB, "
        f"Process={memory_stats['percent']:.1f}%"
    )


def timed(label: str):
    """Decorator that logs start/end timing when SFD_STAGE_TRACE=1"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if os.environ.get("SFD_STAGE_TRACE") != "1":
                return func(*args, **kwargs)
            t0 = time.perf_counter()
            logger = logging.getLogger("sensor_fd")
            logger.info(f"START | {label}")
            try:
                return func(*args, **kwargs)
            finally:
                dt = time.perf_counter() - t0
                logger.info(f"END | {label} | took_s={dt:.3f}")
        return wrapper
    return decorator


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division with default for zero denominator"""
    if abs(denominator) < 1e-10:
        return default
    return numerator / denominator


def clean_numeric_column(
    series: pd.Series,
    valid_range: Optional[tuple] = None,
    fill_value: Optional[float] = None
) -> pd.Series:
    """
    Clean numeric column by coercing to float and masking invalid values.

    Unparsable, non-finite and out-of-range values become NaN, then are
    filled with fill_value when one is given.
    """
    series = pd.to_numeric(series, errors="coerce").astype(float)
    series = series.where(np.isfinite(series), np.nan)

    if valid_range:
        min_val, max_val = valid_range
        series = series.where(
            (series >= min_val) & (series <= max_val),
            np.nan
        )

    if fill_value is not None:
        series = series.fillna(fill_value)

    return series


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string"""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        return f"{seconds/3600:.1f}h"
