import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that drown the screener's own output at DEBUG.
NOISY_LOGGERS = ('sqlalchemy.engine', 'mysql.connector')


def setup_logger(name=None, log_file=None, level=logging.INFO):
    """
    Configure console (stdout) and optional file logging for a CLI run.

    Args:
        name (str): Logger to configure. None configures the root logger, so
            every ``logging.getLogger(__name__)`` in screener/ and backtest/
            writes through these handlers.
        log_file (str, optional): Also append to this file, creating its
            directory if needed.
        level (int): Level for the configured logger.

    Returns:
        logging.Logger: The configured logger.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    # Re-running a CLI in one process must not duplicate every line.
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    return logger
