"""
格點幾何 - 展平索引、ghost 邊界與 D3Q19 傳播位移表

格點 (i, j, z) ∈ [0, nx]×[0, ny]×[0, nz] (閉區間) 展平為
    m = i + ldx * (j + ldy * z)
ldx、ldy 可以大於 nx+1、ny+1，多出的欄位保留給 ghost/padding。
每側一層 ghost 格點讓 push-streaming 可以直接寫入 m + Δ。
儲存位置 = m + origin，使 (-1, -1, -1) 對應儲存索引 0。
"""

import math
from typing import Tuple

import numpy as np

import config
from src.utils.error_handling import ConfigurationError


class LatticeGeometry:
    """計算域形狀與展平索引 (整個模擬期間唯讀)"""

    def __init__(self, nx: int = config.NX, ny: int = config.NY, nz: int = config.NZ,
                 ldx: int = None, ldy: int = None,
                 block_shape: Tuple[int, int, int] = config.KERNEL_BLOCK_SHAPE):
        ghost = config.GHOST_LAYERS
        for name, value in (('nx', nx), ('ny', ny), ('nz', nz)):
            if int(value) != value or value < 0:
                raise ConfigurationError(f"{name} 必須是非負整數: {value}", {name: value})

        self.nx, self.ny, self.nz = int(nx), int(ny), int(nz)
        self.ldx = int(ldx) if ldx is not None else self.nx + 1 + 2 * ghost
        self.ldy = int(ldy) if ldy is not None else self.ny + 1 + 2 * ghost

        # ghost 欄 -1 與 n+1 必須各自佔用獨立位置
        if self.ldx < self.nx + 1 + 2 * ghost:
            raise ConfigurationError(
                f"ldx={self.ldx} 太小，至少需要 nx+3={self.nx + 3}",
                {'nx': self.nx, 'ldx': self.ldx})
        if self.ldy < self.ny + 1 + 2 * ghost:
            raise ConfigurationError(
                f"ldy={self.ldy} 太小，至少需要 ny+3={self.ny + 3}",
                {'ny': self.ny, 'ldy': self.ldy})

        if len(block_shape) != 3 or any(int(b) <= 0 for b in block_shape):
            raise ConfigurationError(f"工作群組形狀不合法: {block_shape}")
        self.block_shape = tuple(int(b) for b in block_shape)

        self.plane = self.ldx * self.ldy
        self.origin = ghost * (1 + self.ldx + self.plane)
        last = self.flat_index(self.nx + ghost, self.ny + ghost, self.nz + ghost)
        self.storage_size = last + self.origin + 1

        # 啟動範圍向上取整到工作群組的倍數，多出的任務由邊界判斷略過
        self.launch_extents = tuple(
            int(math.ceil((n + 1) / b)) * b
            for n, b in zip((self.nx, self.ny, self.nz), self.block_shape)
        )

        self.displacements = tuple(self.displacement(q) for q in range(config.Q_3D))

    # ------------------------------------------------------------------
    # 索引
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int, int]:
        """計算域格點數 (nx+1, ny+1, nz+1)"""
        return self.nx + 1, self.ny + 1, self.nz + 1

    @property
    def num_sites(self) -> int:
        return (self.nx + 1) * (self.ny + 1) * (self.nz + 1)

    def flat_index(self, i, j, z):
        """m = i + ldx * (j + ldy * z)"""
        return i + self.ldx * (j + self.ldy * z)

    def storage_index(self, i, j, z):
        """展平索引加上 ghost 偏移後的實際儲存位置"""
        return self.flat_index(i, j, z) + self.origin

    def displacement(self, q: int) -> int:
        """D3Q19 方向 q 在展平索引空間的位移 Δ_q"""
        cx, cy, cz = config.d3q19_velocity(q)
        return cx + self.ldx * cy + self.plane * cz

    def contains(self, i, j, z) -> bool:
        return 0 <= i <= self.nx and 0 <= j <= self.ny and 0 <= z <= self.nz

    def wrap(self, i, j, z) -> Tuple[int, int, int]:
        """週期性映像座標"""
        return i % (self.nx + 1), j % (self.ny + 1), z % (self.nz + 1)

    # ------------------------------------------------------------------
    # 主機陣列轉換 (計算域陣列索引為 [i, j, z])
    # ------------------------------------------------------------------

    def interior_storage_indices(self) -> np.ndarray:
        """形狀 (nx+1, ny+1, nz+1) 的儲存索引表"""
        i, j, z = np.meshgrid(np.arange(self.nx + 1), np.arange(self.ny + 1),
                              np.arange(self.nz + 1), indexing='ij')
        return self.storage_index(i, j, z)

    def interior_mask(self) -> np.ndarray:
        """儲存陣列中屬於計算域的位置"""
        mask = np.zeros(self.storage_size, dtype=bool)
        mask[self.interior_storage_indices().ravel()] = True
        return mask

    def scatter(self, interior: np.ndarray, fill_value: float = 0.0) -> np.ndarray:
        """計算域陣列 [i, j, z] → 展平儲存陣列 (ghost 填 fill_value)"""
        interior = np.asarray(interior, dtype=np.float64)
        if interior.shape != self.shape:
            raise ConfigurationError(
                f"陣列形狀 {interior.shape} 與計算域 {self.shape} 不符")
        flat = np.full(self.storage_size, fill_value, dtype=np.float64)
        flat[self.interior_storage_indices()] = interior
        return flat

    def gather(self, flat: np.ndarray) -> np.ndarray:
        """展平儲存陣列 → 計算域陣列 [i, j, z]"""
        return np.asarray(flat)[self.interior_storage_indices()]

    def __repr__(self):
        return (f"LatticeGeometry(nx={self.nx}, ny={self.ny}, nz={self.nz}, "
                f"ldx={self.ldx}, ldy={self.ldy})")
