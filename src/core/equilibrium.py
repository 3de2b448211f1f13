"""
靜止平衡初始化

u = 0、F = 0 時碰撞算子的不動點 (主機端 numpy 計算)：
    f0*  = itauphi (φ - 3γμ) / (1 - itauphi1)
    f_i* = 0.5 γ μ itauphi / (1 - itauphi1)             i = 1..6
    g0*  = eg0 (ρ - 6φμ) / (1 - itaurho)
    g_i* = eg (ρ + 3φμ) / (1 - itaurho)                 eg = eg1 (面), eg2 (對角)
標準參數下 Σ f* = φ、Σ g* = ρ。
"""

import numpy as np

import config
from src.core.simulation_parameters import SimulationParameters
from src.utils.error_handling import ConfigurationError


def _retention_gap(value: float, name: str) -> float:
    gap = 1.0 - value
    if gap == 0.0:
        raise ConfigurationError(f"{name}=1 時沒有不動點 (分布不鬆弛)", {name: value})
    return gap


def quiescent_phase_populations(params: SimulationParameters, phi, laplacian_phi=0.0) -> np.ndarray:
    """D3Q7 相場不動點，回傳形狀 (7,) + φ.shape"""
    phi = np.asarray(phi, dtype=np.float64)
    gap = _retention_gap(params.itauphi1, 'itauphi1')
    mu = params.chemical_potential(phi, laplacian_phi)

    f = np.empty((config.Q_PHASE,) + phi.shape, dtype=np.float64)
    f[0] = (-3.0 * params.gamma * mu * params.itauphi + params.itauphi * phi) / gap
    f[1:] = 0.5 * params.gamma * mu * params.itauphi / gap
    return f


def quiescent_hydro_populations(params: SimulationParameters, rho, phi, laplacian_phi=0.0) -> np.ndarray:
    """D3Q19 流體不動點，回傳形狀 (19,) + φ.shape"""
    phi = np.asarray(phi, dtype=np.float64)
    rho = np.broadcast_to(np.asarray(rho, dtype=np.float64), phi.shape)
    gap = _retention_gap(params.itaurho, 'itaurho')
    mu = params.chemical_potential(phi, laplacian_phi)
    ag = 3.0 * phi * mu + rho

    g = np.empty((config.Q_3D,) + phi.shape, dtype=np.float64)
    g[0] = params.eg0 * (rho - 6.0 * phi * mu) / gap
    for q in range(1, config.Q_3D):
        weight = params.eg1 if q <= 2 * config.FACE_PAIR_COUNT else params.eg2
        g[q] = weight * ag / gap
    return g
