# utils/logger.py

import os
import sys
import logging
from typing import Optional, Any, Dict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from storesync.config import config

LOG_FORMAT = '%(asctime)s - [%(levelname)s] - %(caller_info)s - %(message)s'

def describe_frame(frame) -> str:
    """file:Class.function:line for a stack frame, dropping the class for plain functions"""
    code = frame.f_code
    location = code.co_name
    owner = frame.f_locals.get('self')
    if owner is not None:
        location = f"{type(owner).__name__}.{location}"
    return f"{os.path.basename(code.co_filename)}:{location}:{frame.f_lineno}"

class CustomLogger:
    """
    Process logger shared by every component of the sync service.

    Records go to stderr and to a size-rotated file. Each line names the
    class and method that emitted it, so processor output for one run can be
    followed without threading context objects through every call.
    """

    def __init__(
        self,
        name: str = 'storesync',
        log_file: Optional[str] = None,
        level: Optional[str] = None
    ):
        self.log_file = log_file or config['LOG_FILE']
        self.log_level = (level or config['LOG_LEVEL']).upper()

        Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(name)
        level_no = logging.getLevelName(self.log_level)
        self.logger.setLevel(level_no if isinstance(level_no, int) else logging.INFO)
        self.logger.propagate = False
        self.logger.handlers.clear()

        formatter = logging.Formatter(LOG_FORMAT)
        for handler in (
            logging.StreamHandler(),
            RotatingFileHandler(
                self.log_file,
                maxBytes=config['LOG_MAX_BYTES'],
                backupCount=config['LOG_BACKUP_COUNT'],
                encoding='utf-8'
            )
        ):
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _emit(self, level: int, message: str, extra: Optional[Dict[str, Any]], exc_info=None) -> None:
        if not self.logger.isEnabledFor(level):
            return
        # 0 is _emit, 1 the level method, 2 whoever called it
        caller = sys._getframe(2)
        fields = dict(extra or {}, caller_info=describe_frame(caller))
        self.logger.log(level, message, exc_info=exc_info, extra=fields)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None):
        self._emit(logging.ERROR, message, extra, exc_info)

    def critical(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit(logging.CRITICAL, message, extra)

logger = CustomLogger()
