import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from stagenet.config import config


def setup_error_logger() -> logging.Logger:
    """
    Configure the package logger for stagenet.
    Writes WARN+ to stderr and, when file logging is enabled,
    ERROR+ to a rotating file under config.logs_dir.
    """
    logger = logging.getLogger("stagenet")
    if logger.handlers:
        return logger

    logger.setLevel(config.log_level)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.WARNING)
    sh.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(sh)

    if config.enable_logging:
        logs_dir = Path(config.logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        fh = RotatingFileHandler(
            logs_dir / "stagenet_errors.log",
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(logging.ERROR)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(fh)

    logger.propagate = False
    return logger


def get_error_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"stagenet.{name}")
