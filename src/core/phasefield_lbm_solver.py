"""
兩相相場LBM求解器
將相場梯度、碰撞-傳播核心、週期邊界與雙緩衝分布組合成時間步進

每個時間步:
    1. 由 φ 計算 ∇φ、∇²φ
    2. 碰撞-傳播核心 (相場原地、流體寫入 next 世代)
    3. 邊界條件 (週期摺回)
    4. 兩個分布族同時交換世代

序參量 φ 的對流更新屬於外部階段，可透過 set_order_parameter() 提供。
"""

import time
from typing import Optional

import numpy as np

import config
from src.core.lattice import LatticeGeometry
from src.core.simulation_parameters import SimulationParameters
from src.core.distributions import DistributionGenerations
from src.core.phase_field_gradients import PhaseFieldGradients
from src.core.site_update import SiteUpdateKernel
from src.core.equilibrium import quiescent_phase_populations, quiescent_hydro_populations
from src.physics.boundary_conditions import BoundaryConditionManager, PeriodicHaloBoundary
from src.utils.taichi_init import initialize_taichi_once
from src.utils.logger import get_logger

logger = get_logger('phasefield_lbm')


class PhaseFieldLBMSolver:
    """兩相Cahn-Hilliard LBM求解器"""

    def __init__(self, geometry: Optional[LatticeGeometry] = None,
                 params: Optional[SimulationParameters] = None,
                 periodic: bool = True):
        initialize_taichi_once()

        self.geometry = geometry if geometry is not None else LatticeGeometry()
        self.params = params if params is not None else SimulationParameters.from_relaxation_times()
        self.periodic = periodic

        self.fields = PhaseFieldGradients(self.geometry, periodic=periodic)
        self.phase = DistributionGenerations(self.geometry, config.Q_PHASE, name="f")
        self.hydro = DistributionGenerations(self.geometry, config.Q_3D, name="g")
        self.kernel = SiteUpdateKernel(self.geometry)

        self.boundaries = BoundaryConditionManager()
        if periodic:
            self.boundaries.add(PeriodicHaloBoundary(self.geometry))

        # 相場移動方向在核心啟動時的 current 世代 (原地更新的位置)
        self.phase_generation = self.phase.current
        self.step_count = 0
        self.step_times = []

        logger.info(f"📊 相場LBM求解器初始化完成: {self.geometry}, periodic={periodic}")
        logger.info(f"   分布記憶體: f {self.phase.memory_usage_mb():.2f} MB, "
                    f"g {self.hydro.memory_usage_mb():.2f} MB")

    # ------------------------------------------------------------------
    # 初始化
    # ------------------------------------------------------------------

    def _as_interior(self, value) -> np.ndarray:
        return np.broadcast_to(np.asarray(value, dtype=np.float64), self.geometry.shape).copy()

    def set_order_parameter(self, phi):
        """更新序參量 φ (外部對流階段的輸出)"""
        self.fields.set_order_parameter(self._as_interior(phi))

    def initialize_fields(self, phi, rho=1.0):
        """
        以靜止平衡初始化兩個分布族的兩個世代

        Args:
            phi: 序參量，純量或 [i, j, z] 陣列
            rho: 密度，純量或 [i, j, z] 陣列
        """
        phi = self._as_interior(phi)
        rho = self._as_interior(rho)

        self.set_order_parameter(phi)
        self.fields.compute()
        laplacian = self.fields.get_laplacian()

        f_eq = quiescent_phase_populations(self.params, phi, laplacian)
        g_eq = quiescent_hydro_populations(self.params, rho, phi, laplacian)

        self.phase.load_all_generations(self._scatter_populations(f_eq))
        self.hydro.load_all_generations(self._scatter_populations(g_eq))
        self.phase_generation = self.phase.current
        self.step_count = 0
        logger.info(f"✅ 場初始化完成: 總質量={self.total_mass():.6f}")

    def _scatter_populations(self, populations: np.ndarray) -> np.ndarray:
        return np.stack([self.geometry.scatter(p) for p in populations])

    # ------------------------------------------------------------------
    # 時間步進
    # ------------------------------------------------------------------

    def step(self, recompute_gradients: bool = True):
        """執行一個完整時間步"""
        start = time.time()

        if recompute_gradients:
            self.fields.compute()

        self.phase_generation = self.phase.current
        self.kernel.update(self.fields, self.phase, self.hydro, self.params)
        self.boundaries.apply_all(self.hydro)

        # 啟動完成後才交換世代
        self.hydro.swap()
        self.phase.swap()

        self.step_count += 1
        self.step_times.append(time.time() - start)

    def run(self, steps: int, diagnostics=None, diag_freq: int = 10):
        """連續執行多個時間步，可選擇性地每 diag_freq 步更新診斷"""
        for _ in range(steps):
            self.step()
            if diagnostics is not None and self.step_count % diag_freq == 0:
                diagnostics.update_diagnostics(self.step_count)
        return self.step_count

    # ------------------------------------------------------------------
    # 巨觀量 (主機端)
    # ------------------------------------------------------------------

    def get_density(self) -> np.ndarray:
        """ρ = Σ g_q (current 世代)，[i, j, z]"""
        return self.hydro.zeroth_moment()

    def total_mass(self) -> float:
        return float(np.sum(self.get_density()))

    def get_force(self) -> np.ndarray:
        """界面力 F = μ ∇φ，[i, j, z, 3]"""
        phi = self.fields.get_order_parameter()
        mu = self.params.chemical_potential(phi, self.fields.get_laplacian())
        return mu[..., None] * self.fields.get_gradient()

    def get_velocity(self) -> np.ndarray:
        """u = (Σ c_q g_q + 0.5 F) / ρ，[i, j, z, 3]"""
        g = self.hydro.populations()
        velocities = np.stack([config.CX_3D, config.CY_3D, config.CZ_3D], axis=1).astype(np.float64)
        momentum = self.geometry.gather((velocities.T @ g).T)
        rho = self.get_density()
        return (momentum + 0.5 * self.get_force()) / rho[..., None]

    def get_phase_moment(self) -> np.ndarray:
        """相場分布零階矩 (最近一次原地更新的世代)，[i, j, z]"""
        return self.phase.zeroth_moment(self.phase_generation)

    def get_performance_stats(self):
        if not self.step_times:
            return {'steps': 0}
        return {
            'steps': self.step_count,
            'mean_step_time': float(np.mean(self.step_times)),
            'mlups': self.geometry.num_sites / max(float(np.mean(self.step_times)), 1e-12) / 1e6,
        }
