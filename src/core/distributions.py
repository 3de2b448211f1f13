"""
雙緩衝分布函數儲存

每個分布族 (D3Q7 相場 f、D3Q19 流體 g) 分為：
- rest:   靜止方向 (方向0)，單一位置，原地更新，永不傳播
- moving: 其餘 Q-1 個方向，形狀 (2, Q-1, storage) 的兩個世代

current 世代供本時間步讀取，next 世代供 push-streaming 寫入；
兩者永遠不同，呼叫端在一次核心啟動完成後才呼叫 swap()。
"""

from typing import Optional

import numpy as np
import taichi as ti

from src.core.lattice import LatticeGeometry
from src.utils.error_handling import ConfigurationError
from src.utils.taichi_init import float_dtype

GENERATIONS = 2


@ti.data_oriented
class DistributionGenerations:
    """單一分布族的兩個時間步世代"""

    def __init__(self, geometry: LatticeGeometry, q: int, name: str = "f", dtype=None):
        self.geometry = geometry
        self.q = q
        self.name = name
        self.dtype = dtype if dtype is not None else float_dtype()

        self.rest = ti.field(dtype=self.dtype, shape=geometry.storage_size)
        self.moving = ti.field(dtype=self.dtype, shape=(GENERATIONS, q - 1, geometry.storage_size))

        self._current = 0

    # ------------------------------------------------------------------
    # 世代管理
    # ------------------------------------------------------------------

    @property
    def current(self) -> int:
        """本時間步讀取的世代"""
        return self._current

    @property
    def next(self) -> int:
        """本時間步傳播寫入的世代"""
        return 1 - self._current

    def swap(self):
        """交換 current/next (一次核心啟動完成之後)"""
        self._current = 1 - self._current

    # ------------------------------------------------------------------
    # 主機端存取
    # ------------------------------------------------------------------

    def _check_generation(self, generation: Optional[int]) -> int:
        generation = self._current if generation is None else int(generation)
        if generation not in (0, 1):
            raise ConfigurationError(f"{self.name}: 世代索引必須是0或1: {generation}")
        return generation

    def load(self, populations: np.ndarray, generation: Optional[int] = None):
        """
        載入完整分布 (Q, storage)；方向0寫入 rest，其餘寫入指定世代

        generation=None 表示 current 世代。
        """
        populations = np.asarray(populations, dtype=np.float64)
        expected = (self.q, self.geometry.storage_size)
        if populations.shape != expected:
            raise ConfigurationError(
                f"{self.name}: 分布形狀 {populations.shape} 與預期 {expected} 不符")
        generation = self._check_generation(generation)

        self.rest.from_numpy(populations[0])
        moving = self.moving.to_numpy()
        moving[generation] = populations[1:]
        self.moving.from_numpy(moving)

    def load_all_generations(self, populations: np.ndarray):
        """同一分布同時寫入兩個世代"""
        for generation in range(GENERATIONS):
            self.load(populations, generation)

    def populations(self, generation: Optional[int] = None) -> np.ndarray:
        """回傳 (Q, storage)：rest + 指定世代的移動方向"""
        generation = self._check_generation(generation)
        out = np.empty((self.q, self.geometry.storage_size), dtype=np.float64)
        out[0] = self.rest.to_numpy()
        out[1:] = self.moving.to_numpy()[generation]
        return out

    def zeroth_moment(self, generation: Optional[int] = None) -> np.ndarray:
        """各格點分布總和 (計算域陣列 [i, j, z])"""
        return self.geometry.gather(self.populations(generation).sum(axis=0))

    def fill(self, value: float):
        self.rest.fill(value)
        self.moving.fill(value)

    def memory_usage_mb(self) -> float:
        """兩個世代加 rest 的記憶體用量 (MB)"""
        bytes_per_element = 8 if self.dtype == ti.f64 else 4
        elements = self.geometry.storage_size * (1 + GENERATIONS * (self.q - 1))
        return elements * bytes_per_element / 1024**2
