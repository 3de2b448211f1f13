"""
統一錯誤處理系統
相場LBM求解器的異常類別與錯誤記錄

碰撞-傳播核心本身沒有錯誤狀態：非有限輸入會無聲地傳遞到輸出，
偵測與回報交由診斷系統負責。這裡的異常只在 Python 端建構
(幾何、參數、設定檔) 或診斷被要求強制檢查時拋出。
"""

import time
import logging
import traceback
from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from src.utils.logger import get_logger

logger = get_logger('CFD_ErrorHandler')


class ErrorSeverity(Enum):
    """錯誤嚴重程度"""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"


class ErrorCategory(Enum):
    """錯誤類別"""
    NUMERICAL = "numerical"
    PHYSICS = "physics"
    CONFIGURATION = "configuration"
    IO = "io"


# 自定義異常類
class CFDError(Exception):
    """CFD模擬基礎異常類"""
    def __init__(self, message: str, category: ErrorCategory,
                 severity: ErrorSeverity, context: Dict = None):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.context = context or {}
        self.timestamp = time.time()


class ConfigurationError(CFDError):
    """幾何、參數或設定檔不合法"""
    def __init__(self, message: str, context: Dict = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, ErrorSeverity.FATAL, context)


class NumericalDivergenceError(CFDError):
    """數值發散異常 (NaN/Inf)"""
    def __init__(self, message: str, context: Dict = None):
        super().__init__(message, ErrorCategory.NUMERICAL, ErrorSeverity.CRITICAL, context)


class PhysicsViolationError(CFDError):
    """物理約束違反異常 (質量漂移)"""
    def __init__(self, message: str, context: Dict = None):
        super().__init__(message, ErrorCategory.PHYSICS, ErrorSeverity.ERROR, context)


@dataclass
class ErrorRecord:
    """錯誤記錄"""
    timestamp: float
    error_type: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    context: Dict = field(default_factory=dict)
    stack_trace: str = ""


_LOG_LEVELS = {
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.FATAL: logging.FATAL,
}


class ErrorRecorder:
    """錯誤記錄器 - 只記錄與統計，不嘗試恢復"""

    def __init__(self):
        self.error_log: List[ErrorRecord] = []

    def record(self, error: CFDError, context: Optional[Dict] = None) -> ErrorRecord:
        """記錄一個錯誤並依嚴重程度寫入日誌"""
        record = ErrorRecord(
            timestamp=time.time(),
            error_type=type(error).__name__,
            message=str(error),
            category=error.category,
            severity=error.severity,
            context={**error.context, **(context or {})},
            stack_trace=traceback.format_exc(),
        )
        self.error_log.append(record)
        logger.log(_LOG_LEVELS[error.severity], f"{error.category.value.upper()}: {error}")
        return record

    def get_error_statistics(self) -> Dict:
        """獲取錯誤統計信息"""
        if not self.error_log:
            return {"total_errors": 0}

        stats = {
            "total_errors": len(self.error_log),
            "by_category": {},
            "by_severity": {},
        }
        for category in ErrorCategory:
            count = len([e for e in self.error_log if e.category == category])
            if count > 0:
                stats["by_category"][category.value] = count
        for severity in ErrorSeverity:
            count = len([e for e in self.error_log if e.severity == severity])
            if count > 0:
                stats["by_severity"][severity.value] = count
        return stats

    def clear(self):
        self.error_log.clear()
