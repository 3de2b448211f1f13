# boundary_conditions.py
"""
邊界條件系統 - 相場LBM

碰撞-傳播核心把靠近計算域邊緣的格點的分布直接寫入 ghost 層，
邊界條件負責在下一次啟動前把這些值放回正確位置。

邊界條件類型:
    - PeriodicHaloBoundary: 週期邊界，把落在 ghost 層的流體分布摺回映像格點

相場分布不傳播，因此只處理 D3Q19 流體分布的 next 世代。
"""

from abc import ABC, abstractmethod
from typing import List

import taichi as ti

import config
from src.core.lattice import LatticeGeometry
from src.core.distributions import DistributionGenerations
from src.utils.error_handling import ConfigurationError
from src.utils.logger import get_logger

logger = get_logger('boundary_conditions')


class BoundaryConditionBase(ABC):
    """
    邊界條件基類

    apply() 在一次碰撞-傳播啟動完成、世代交換之前呼叫，
    只能讀寫流體分布的 next 世代。
    """

    @abstractmethod
    def apply(self, hydro: DistributionGenerations):
        """對傳播後的 next 世代套用邊界條件"""


@ti.data_oriented
class PeriodicHaloBoundary(BoundaryConditionBase):
    """
    週期邊界

    ghost 格點 G 在方向 q 上只有在來源 G - c_q 位於計算域內時
    才由本次啟動寫入，此時把值複製到週期映像 wrap(G)。
    其他 ghost 值是舊資料，不能摺回。
    """

    def __init__(self, geometry: LatticeGeometry):
        self.geometry = geometry
        self.nx, self.ny, self.nz = geometry.nx, geometry.ny, geometry.nz
        self.ldx, self.ldy = geometry.ldx, geometry.ldy
        self.origin = geometry.origin
        self.velocities = tuple(config.d3q19_velocity(q) for q in range(1, config.Q_3D))
        self.num_moving = config.Q_3D - 1

    def apply(self, hydro: DistributionGenerations):
        if hydro.geometry is not self.geometry:
            raise ConfigurationError("週期邊界與流體分布使用不同的格點幾何")
        self._fold_ghost_layer(hydro.moving, hydro.next)

    @ti.func
    def _inside(self, i, j, z):
        return 0 <= i and i <= self.nx and 0 <= j and j <= self.ny and 0 <= z and z <= self.nz

    @ti.func
    def _site(self, i, j, z):
        return i + self.ldx * (j + self.ldy * z) + self.origin

    @ti.kernel
    def _fold_ghost_layer(self, g: ti.template(), nxt: ti.i32):
        for i, j, z in ti.ndrange((-1, self.nx + 2), (-1, self.ny + 2), (-1, self.nz + 2)):
            if not self._inside(i, j, z):
                ghost = self._site(i, j, z)
                image = self._site(i % (self.nx + 1), j % (self.ny + 1), z % (self.nz + 1))
                for q in ti.static(range(self.num_moving)):
                    c = ti.static(self.velocities[q])
                    if self._inside(i - c[0], j - c[1], z - c[2]):
                        g[nxt, q, image] = g[nxt, q, ghost]


class BoundaryConditionManager:
    """依序套用多個邊界條件"""

    def __init__(self, boundaries: List[BoundaryConditionBase] = None):
        self.boundaries = list(boundaries or [])

    def add(self, boundary: BoundaryConditionBase):
        self.boundaries.append(boundary)

    def apply_all(self, hydro: DistributionGenerations):
        for boundary in self.boundaries:
            boundary.apply(hydro)

    def get_boundary_info(self):
        return [type(b).__name__ for b in self.boundaries]
