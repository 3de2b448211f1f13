"""
phasefield.py - 兩相Cahn-Hilliard相場模型的物理參數 (格子單位)

自由能模型:
    F = ∫ [ α/4 (φ² - φ₀²)² + k/2 |∇φ|² ] dV
    μ = α φ (φ² - φ₀²) - k ∇²φ

平衡界面的厚度 W 與表面張力 σ 決定 α 與 k:
    α = 3σ / (2 W φ₀⁴)
    k = 3σW / (4 φ₀²)
"""

import math

# ==============================================
# 界面參數
# ==============================================

PHI_0 = 1.0                    # 兩相序參量 ±φ₀
INTERFACE_WIDTH = 4.0          # 界面厚度 W (lu)
SURFACE_TENSION = 0.01         # 表面張力 σ (lu)

# ==============================================
# 鬆弛時間與遷移率
# ==============================================

TAU_PHI = 1.0                  # 相場分布鬆弛時間 τφ
TAU_RHO = 1.0                  # 流體分布鬆弛時間 τρ
MOBILITY_GAMMA = 1.0           # 遷移率係數 γ (M = γ (τφ - 0.5))
ETA = 2.0                      # 界面對流係數 η (D3Q7: Σ f_i c_i = φu)

# 保留給呼叫端相容，碰撞核心不使用
GRAVITY_LU = 0.0

# 穩定性下限 (BGK: τ > 0.5)
MIN_TAU_STABLE = 0.5


def free_energy_coefficients(surface_tension=SURFACE_TENSION,
                             interface_width=INTERFACE_WIDTH,
                             phi_0=PHI_0):
    """由 σ、W、φ₀ 計算 (α, k, φ₀²)"""
    phi2 = phi_0 * phi_0
    alpha = 3.0 * surface_tension / (2.0 * interface_width * phi2 * phi2)
    kappa = 3.0 * surface_tension * interface_width / (4.0 * phi2)
    return alpha, kappa, phi2


def get_phasefield_summary():
    """相場參數摘要"""
    alpha, kappa, phi2 = free_energy_coefficients()
    return {
        'phi_0': PHI_0,
        'interface_width': INTERFACE_WIDTH,
        'surface_tension': SURFACE_TENSION,
        'alpha': alpha,
        'kappa': kappa,
        'phi2': phi2,
        'tau_phi': TAU_PHI,
        'tau_rho': TAU_RHO,
        'mobility': MOBILITY_GAMMA * (TAU_PHI - 0.5),
        'eta': ETA,
        'interface_width_check': math.sqrt(2.0 * kappa / alpha) / PHI_0,
    }
