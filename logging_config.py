import logging
import logging.handlers
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# setup_logging 이 붙인 핸들러 표시 (다시 부르면 이것만 갈아끼운다)
_HANDLER_TAG = "_ministry_log_handler"


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def _remove_own_handlers(root_logger: logging.Logger) -> None:
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root_logger.removeHandler(handler)
            handler.close()


def setup_logging(app_name: str = "ministry-log", level: int = logging.INFO) -> None:
    """Configure application logging for the program that embeds the exporters.

    Calling it again replaces the handlers from the previous call, so log
    lines are never duplicated. Handlers added by other code are left alone.

    Args:
        app_name: Name to use for log files
        level: Level for the console and main log file

    """
    log_dir = Path(os.getenv("LOG_DIR", str(Path.home() / ".ministry_log" / "logs")))
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    _remove_own_handlers(root_logger)
    root_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = _tag(logging.StreamHandler())
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = _tag(logging.handlers.RotatingFileHandler(
        filename=log_dir / f"{app_name}.log",
        maxBytes=10_000_000,  # 10MB
        backupCount=5,
        encoding="utf-8",
    ))
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # ERROR 이상은 따로
    error_handler = _tag(logging.handlers.RotatingFileHandler(
        filename=log_dir / f"{app_name}-error.log",
        maxBytes=10_000_000,  # 10MB
        backupCount=5,
        encoding="utf-8",
    ))
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)
