"""
兩相相場LBM 碰撞-傳播融合核心
==============================

每個格點一個獨立任務，一次啟動內完成四個階段：
1. 巨觀量恢復: ρ = Σ g_q，irho 只算一次
2. 化學勢與界面力: μ = α φ (φ² - φ₀²) - k ∇²φ，F = μ ∇φ
3. 相場碰撞 (D3Q7 BGK + 源項)，原地更新，不傳播
4. 流體碰撞 (D3Q19 BGK + 體力) 並 push-streaming 寫入 next 世代

速度含半步體力修正 u = (Σ c_q g_q + 0.5 F) / ρ，於碰撞前套用。
浮點運算順序固定 (方向依索引遞增累加)，關閉 fast_math 時逐位可重現。

核心沒有錯誤狀態：ρ = 0 或非有限 φ 會直接傳遞到輸出，
由診斷系統負責偵測。
"""

import taichi as ti

import config
from src.core.lattice import LatticeGeometry
from src.core.distributions import DistributionGenerations
from src.core.simulation_parameters import SimulationParameters
from src.utils.error_handling import ConfigurationError
from src.utils.logger import get_logger

logger = get_logger('site_update')


@ti.data_oriented
class SiteUpdateKernel:
    """
    格點更新核心

    方向表在建構時由 config 的 D3Q19/D3Q7 速度表產生，核心內以
    ti.static 展開，位移 Δ 為編譯期常數。
    """

    def __init__(self, geometry: LatticeGeometry):
        self.geometry = geometry

        # 編譯期常數
        self.nx, self.ny, self.nz = geometry.nx, geometry.ny, geometry.nz
        self.ldx, self.ldy = geometry.ldx, geometry.ldy
        self.origin = geometry.origin
        self.launch_x, self.launch_y, self.launch_z = geometry.launch_extents
        bx, by, bz = geometry.block_shape
        self.block_dim = bx * by * bz

        # 移動方向 q (1..18) 的速度，索引 q-1 對應 moving 欄位
        self.hydro_velocities = tuple(config.d3q19_velocity(q) for q in range(1, config.Q_3D))

        # 成對表: (正向槽, 反向槽), (Δ正, Δ反), 殼層 (0=面, 1=對角), 正向速度
        self.pair_slots = tuple((a - 1, b - 1) for a, b in config.PAIRS_3D)
        self.pair_shifts = tuple((geometry.displacement(a), geometry.displacement(b))
                                 for a, b in config.PAIRS_3D)
        self.pair_shells = tuple(0 if p < config.FACE_PAIR_COUNT else 1
                                 for p in range(len(config.PAIRS_3D)))
        self.pair_velocities = tuple(config.d3q19_velocity(a) for a, _ in config.PAIRS_3D)
        self.num_moving = config.Q_3D - 1
        self.num_pairs = len(config.PAIRS_3D)

        logger.info(f"🧮 格點更新核心建立: {geometry}, 啟動範圍 {geometry.launch_extents}")

    def _check_family(self, dist: DistributionGenerations, q: int):
        if dist.geometry is not self.geometry:
            raise ConfigurationError(f"{dist.name}: 分布與核心使用不同的格點幾何")
        if dist.q != q:
            raise ConfigurationError(f"{dist.name}: 需要 D3Q{q} 分布，收到 D3Q{dist.q}")

    def update(self, fields, phase: DistributionGenerations,
               hydro: DistributionGenerations, params: SimulationParameters):
        """
        對整個計算域執行一次碰撞-傳播

        Args:
            fields: 提供 phi、laplacian_phi、grad_phi 的相場梯度物件
            phase: D3Q7 相場分布 (current 世代原地更新)
            hydro: D3Q19 流體分布 (讀 current，寫 next)
            params: 不可變參數包 (grav 不使用)
        """
        self._check_family(phase, config.Q_PHASE)
        self._check_family(hydro, config.Q_3D)
        if fields.geometry is not self.geometry:
            raise ConfigurationError("相場梯度與核心使用不同的格點幾何")

        self._collide_stream(
            fields.phi, fields.laplacian_phi, fields.grad_phi,
            phase.rest, phase.moving, hydro.rest, hydro.moving,
            phase.current, hydro.current, hydro.next,
            params.k, params.alpha, params.phi2, params.gamma,
            params.itauphi, params.itauphi1, params.ieta, params.itaurho,
            params.eg0, params.eg1, params.eg2,
            params.egc0, params.egc1, params.egc2,
        )

    @ti.kernel
    def _collide_stream(self,
                        phi: ti.template(), laplacian_phi: ti.template(), grad_phi: ti.template(),
                        f_rest: ti.template(), f: ti.template(),
                        g_rest: ti.template(), g: ti.template(),
                        f_cur: ti.i32, g_cur: ti.i32, g_nxt: ti.i32,
                        k: ti.f64, alpha: ti.f64, phi2: ti.f64, gamma: ti.f64,
                        itauphi: ti.f64, itauphi1: ti.f64, ieta: ti.f64, itaurho: ti.f64,
                        eg0: ti.f64, eg1: ti.f64, eg2: ti.f64,
                        egc0: ti.f64, egc1: ti.f64, egc2: ti.f64):
        ti.loop_config(block_dim=self.block_dim)
        for i, j, z in ti.ndrange(self.launch_x, self.launch_y, self.launch_z):
            # 計算域外的任務不做任何事
            if i <= self.nx and j <= self.ny and z <= self.nz:
                m = i + self.ldx * (j + self.ldy * z) + self.origin

                current_phi = phi[m]
                current_phi_2 = current_phi * current_phi

                # ---- 1. 巨觀量恢復 ----
                rho = g_rest[m]
                for q in ti.static(range(self.num_moving)):
                    rho += g[g_cur, q, m]
                irho = 1.0 / rho

                # ---- 2. 化學勢與界面力 ----
                mu_phi = alpha * current_phi * (current_phi_2 - phi2) - k * laplacian_phi[m]
                force = mu_phi * grad_phi[m]

                # 一階矩 + 半步體力修正
                u = ti.Vector([0.0, 0.0, 0.0])
                for a in ti.static(range(3)):
                    moment = 0.0
                    for q in ti.static(range(self.num_moving)):
                        if ti.static(self.hydro_velocities[q][a] > 0):
                            moment += g[g_cur, q, m]
                        if ti.static(self.hydro_velocities[q][a] < 0):
                            moment -= g[g_cur, q, m]
                    u[a] = (moment + 0.50 * force[a]) * irho

                # ---- 3. 相場碰撞 (原地) ----
                af = 0.50 * gamma * mu_phi * itauphi
                cf = itauphi * ieta * current_phi

                f_rest[m] = itauphi1 * f_rest[m] + -3.0 * gamma * mu_phi * itauphi + itauphi * current_phi

                for p in ti.static(range(3)):
                    f[f_cur, 2 * p, m] = itauphi1 * f[f_cur, 2 * p, m] + af + cf * u[p]
                    f[f_cur, 2 * p + 1, m] = itauphi1 * f[f_cur, 2 * p + 1, m] + af - cf * u[p]

                # ---- 4. 流體碰撞 + 傳播 ----
                ag = 3.0 * current_phi * mu_phi + rho
                v = 1.50 * (u[0] * u[0] + u[1] * u[1] + u[2] * u[2])
                uf = u[0] * force[0] + u[1] * force[1] + u[2] * force[2]

                g_rest[m] = itaurho * g_rest[m] + eg0 * ((rho - 6.0 * current_phi * mu_phi) - rho * v) - egc0 * uf

                eg_ag = ti.Vector([eg1 * ag, eg2 * ag])
                eg_rho = ti.Vector([eg1 * rho, eg2 * rho])
                egc = ti.Vector([egc1, egc2])

                for p in ti.static(range(self.num_pairs)):
                    # 沿成對速度的投影
                    u_p = 0.0
                    f_p = 0.0
                    for a in ti.static(range(3)):
                        if ti.static(self.pair_velocities[p][a] > 0):
                            u_p += u[a]
                            f_p += force[a]
                        if ti.static(self.pair_velocities[p][a] < 0):
                            u_p -= u[a]
                            f_p -= force[a]

                    shell = ti.static(self.pair_shells[p])
                    tmp1 = eg_ag[shell] + eg_rho[shell] * (0.50 * u_p * u_p - v) + egc[shell] * (u_p * f_p - uf)
                    tmp2 = eg_rho[shell] * u_p + egc[shell] * f_p

                    slot_a = ti.static(self.pair_slots[p][0])
                    slot_b = ti.static(self.pair_slots[p][1])
                    g[g_nxt, slot_a, m + ti.static(self.pair_shifts[p][0])] = itaurho * g[g_cur, slot_a, m] + tmp1 + tmp2
                    g[g_nxt, slot_b, m + ti.static(self.pair_shifts[p][1])] = itaurho * g[g_cur, slot_b, m] + tmp1 - tmp2
