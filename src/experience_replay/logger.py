"""
Logging helpers for the replay buffers.

Defines the VERBOSE level (between DEBUG=10 and INFO=20) used for buffer
lifecycle messages and a ``setup_logger`` that wires console and optional
file handlers onto the package logger.
"""
import logging
import os
import sys


LOGGER_NAME = 'ExperienceReplay'

VERBOSE_LEVEL = 15
logging.addLevelName(VERBOSE_LEVEL, "VERBOSE")


def verbose(self, message, *args, **kwargs):
    """Log a message at VERBOSE level if enabled."""
    if self.isEnabledFor(VERBOSE_LEVEL):
        self._log(VERBOSE_LEVEL, message, args, **kwargs)


logging.Logger.verbose = verbose


def get_logger():
    return logging.getLogger(LOGGER_NAME)


def setup_logger(log_dir=None, log_filename='replay_buffer.log', console_level=logging.INFO):
    """
    Configure the package logger with a console handler and, if log_dir is
    given, a file handler capturing every level.

    Args:
        log_dir (str, optional): Directory where the log file is written.
        log_filename (str, optional): Name of the log file.
        console_level (int, optional): Minimum level shown on the console.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Calling twice must not duplicate output
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, log_filename))
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_buffer_info(writer, buffer, step):
    """
    Write the numeric entries of ``buffer.buffer_info()`` as tensorboard scalars.

    Args:
        writer (torch.utils.tensorboard.SummaryWriter): Destination writer.
        buffer: Any buffer exposing ``buffer_info()``.
        step (int): Global step of the scalars.
    """
    for key, value in buffer.buffer_info().items():
        if isinstance(value, str):
            continue
        writer.add_scalar(f"buffer/{key}", float(value), step)
