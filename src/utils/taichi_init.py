"""
Taichi 初始化模組
統一的一次性 ti.init，關閉 fast_math 以保持浮點運算順序 (逐位可重現)
"""

import taichi as ti

import config
from src.utils.logger import get_logger

logger = get_logger('taichi_init')

# 全域變數追蹤初始化狀態
_taichi_initialized = False

_PRECISIONS = {
    'f32': ti.f32,
    'f64': ti.f64,
}


def float_dtype(precision: str = config.FLOAT_PRECISION):
    """字串精度 → Taichi 資料型別"""
    return _PRECISIONS[precision]


def initialize_taichi_once(arch=None, precision: str = config.FLOAT_PRECISION, debug: bool = False):
    """統一的Taichi初始化函數 - 避免重複初始化

    Args:
        arch: Taichi 後端，預設 ti.cpu
        precision: 'f32' 或 'f64'，同時作為浮點字面值的預設精度
        debug: 開啟 Taichi 邊界檢查
    """
    global _taichi_initialized

    if _taichi_initialized:
        logger.debug("Taichi已初始化，跳過重複初始化")
        return

    ti.init(
        arch=arch if arch is not None else ti.cpu,
        default_fp=float_dtype(precision),
        fast_math=False,
        debug=debug,
        offline_cache=True,
    )
    _taichi_initialized = True
    logger.info(f"✓ Taichi初始化完成 (precision={precision}, debug={debug})")


def reset_taichi():
    """重置Taichi執行環境 (測試用)"""
    global _taichi_initialized
    ti.reset()
    _taichi_initialized = False
