import functools
import logging
import os
import time
from datetime import datetime
from typing import Optional

import psutil

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that flood DEBUG output during plotting and HDF5 export
NOISY_LOGGERS = ('matplotlib', 'PIL', 'h5py')


def _resolve_level(level) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def setup_logging(log_level: str = 'INFO',
                  log_dir: str = 'logs',
                  log_to_file: bool = True,
                  log_to_console: bool = True,
                  include_timestamp: bool = True,
                  run_name: str = 'guided_projection',
                  quiet_libraries: bool = True) -> logging.Logger:
    """
    Configure the root logger for a solver run.

    Parameters:
    -----------
    log_level : str or int
        Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL) or numeric level
    log_dir : str
        Directory receiving `<run_name>[_<timestamp>].log`
    log_to_file, log_to_console : bool
        Which handlers to attach
    include_timestamp : bool
        Append the start time to the log file name
    run_name : str
        Stem of the log file name
    quiet_libraries : bool
        Raise plotting and HDF5 library loggers to WARNING

    Returns:
    --------
    logging.Logger
        The configured root logger
    """
    level = _resolve_level(log_level)
    root = logging.getLogger()
    root.setLevel(level)

    # Replace handlers from an earlier call
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_file = None
    if log_to_file:
        os.makedirs(log_dir, exist_ok=True)
        stem = run_name
        if include_timestamp:
            stem = f"{run_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        log_file = os.path.join(log_dir, f'{stem}.log')
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if log_file is not None:
        root.info(f"Logging to: {log_file}")
    return root


def get_logger(name: str) -> logging.Logger:
    """Module logger, normally called with __name__."""
    return logging.getLogger(name)


def _rss_megabytes() -> float:
    return psutil.Process().memory_info().rss / 1024 / 1024


def log_performance(func_name: str, logger: Optional[logging.Logger] = None):
    """
    Decorator logging wall time and resident memory change of each call.

    Failures are logged at ERROR with the elapsed time and re-raised.

    Parameters:
    -----------
    func_name : str
        Label used in the log lines
    logger : logging.Logger, optional
        Defaults to the logger of the decorated function's module
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            log = logger if logger is not None else logging.getLogger(func.__module__)
            start_time = time.perf_counter()
            start_memory = _rss_megabytes()
            log.info(f"Starting {func_name}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(f"{func_name} failed after {time.perf_counter() - start_time:.3f}s: {e}")
                raise
            log.info(f"{func_name} completed: {time.perf_counter() - start_time:.3f}s, "
                     f"memory: {_rss_megabytes() - start_memory:+.2f}MB")
            return result
        return wrapper
    return decorator
