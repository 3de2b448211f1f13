"""
相場梯度提供者
持有序參量 φ 及其衍生場 ∇φ、∇²φ (與核心相同的展平儲存)，
每個時間步在碰撞-傳播之前由 φ 重新計算。

- ∇φ: 二階中央差分 0.5 (φ+ - φ-)
- ∇²φ: 7點模板 Σ φ_nb - 6 φ
邊界: 週期 (預設) 或零梯度 (鏡像夾住索引)
"""

import numpy as np
import taichi as ti

from src.core.lattice import LatticeGeometry
from src.utils.error_handling import ConfigurationError
from src.utils.taichi_init import float_dtype


@ti.data_oriented
class PhaseFieldGradients:
    """序參量場與其梯度/Laplacian"""

    def __init__(self, geometry: LatticeGeometry, periodic: bool = True, dtype=None):
        self.geometry = geometry
        self.periodic = periodic
        self.dtype = dtype if dtype is not None else float_dtype()

        self.phi = ti.field(dtype=self.dtype, shape=geometry.storage_size)
        self.laplacian_phi = ti.field(dtype=self.dtype, shape=geometry.storage_size)
        self.grad_phi = ti.Vector.field(3, dtype=self.dtype, shape=geometry.storage_size)

        # 編譯期常數
        self.nx, self.ny, self.nz = geometry.nx, geometry.ny, geometry.nz
        self.ldx, self.ldy = geometry.ldx, geometry.ldy
        self.origin = geometry.origin

    # ------------------------------------------------------------------
    # 主機端
    # ------------------------------------------------------------------

    def set_order_parameter(self, phi: np.ndarray):
        """載入計算域陣列 φ[i, j, z]"""
        self.phi.from_numpy(self.geometry.scatter(phi))

    def set_uniform(self, value: float):
        self.phi.fill(value)

    def get_order_parameter(self) -> np.ndarray:
        return self.geometry.gather(self.phi.to_numpy())

    def get_laplacian(self) -> np.ndarray:
        return self.geometry.gather(self.laplacian_phi.to_numpy())

    def get_gradient(self) -> np.ndarray:
        """回傳 [i, j, z, 3]"""
        return self.geometry.gather(self.grad_phi.to_numpy())

    def set_derived_fields(self, laplacian: np.ndarray, gradient: np.ndarray):
        """直接指定 ∇²φ 與 ∇φ (外部提供者或測試用)"""
        gradient = np.asarray(gradient, dtype=np.float64)
        if gradient.shape != self.geometry.shape + (3,):
            raise ConfigurationError(
                f"梯度形狀 {gradient.shape} 與計算域 {self.geometry.shape + (3,)} 不符")
        self.laplacian_phi.from_numpy(self.geometry.scatter(laplacian))
        flat = np.zeros((self.geometry.storage_size, 3), dtype=np.float64)
        flat[self.geometry.interior_storage_indices()] = gradient
        self.grad_phi.from_numpy(flat)

    def compute(self):
        """由目前的 φ 更新 ∇φ 與 ∇²φ"""
        self._compute_derivatives()

    # ------------------------------------------------------------------
    # 核心
    # ------------------------------------------------------------------

    @ti.func
    def _neighbor(self, c, n):
        """鄰居座標: 週期映像或夾在 [0, n]"""
        out = c
        if ti.static(self.periodic):
            out = c % (n + 1)
        else:
            out = ti.max(0, ti.min(c, n))
        return out

    @ti.func
    def _site(self, i, j, z):
        return i + self.ldx * (j + self.ldy * z) + self.origin

    @ti.kernel
    def _compute_derivatives(self):
        for i, j, z in ti.ndrange(self.nx + 1, self.ny + 1, self.nz + 1):
            m = self._site(i, j, z)
            xp = self._site(self._neighbor(i + 1, self.nx), j, z)
            xm = self._site(self._neighbor(i - 1, self.nx), j, z)
            yp = self._site(i, self._neighbor(j + 1, self.ny), z)
            ym = self._site(i, self._neighbor(j - 1, self.ny), z)
            zp = self._site(i, j, self._neighbor(z + 1, self.nz))
            zm = self._site(i, j, self._neighbor(z - 1, self.nz))

            self.grad_phi[m] = ti.Vector([
                (self.phi[xp] - self.phi[xm]) * 0.5,
                (self.phi[yp] - self.phi[ym]) * 0.5,
                (self.phi[zp] - self.phi[zm]) * 0.5,
            ])
            self.laplacian_phi[m] = (
                self.phi[xp] + self.phi[xm] +
                self.phi[yp] + self.phi[ym] +
                self.phi[zp] + self.phi[zm] -
                6.0 * self.phi[m]
            )
