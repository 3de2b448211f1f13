"""
統一日誌系統
每個子系統一個具名 logger，首次取得時掛上單一 StreamHandler
"""

import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class SolverLogger:
    """統一求解器日誌管理"""

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(handler)
            self.logger.setLevel(level)

    @staticmethod
    def _prefix(tag: Optional[str]) -> str:
        return f"[{tag}] " if tag else ""

    def debug(self, message: str, tag: Optional[str] = None):
        self.logger.debug(f"{self._prefix(tag)}{message}")

    def info(self, message: str, tag: Optional[str] = None):
        self.logger.info(f"{self._prefix(tag)}{message}")

    def warning(self, message: str, tag: Optional[str] = None):
        self.logger.warning(f"{self._prefix(tag)}{message}")

    def error(self, message: str, tag: Optional[str] = None):
        self.logger.error(f"{self._prefix(tag)}{message}")

    def log(self, level: int, message: str, tag: Optional[str] = None):
        self.logger.log(level, f"{self._prefix(tag)}{message}")


_loggers = {}


def get_logger(name: str) -> SolverLogger:
    """取得 (或建立) 子系統 logger"""
    if name not in _loggers:
        _loggers[name] = SolverLogger(name)
    return _loggers[name]
