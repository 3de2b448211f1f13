"""
模擬參數包 - 不可變，逐次明確傳入碰撞-傳播核心

欄位與核心係數一一對應：
    k, alpha, phi2         化學勢 μ = α φ (φ² - φ₀²) - k ∇²φ
    gamma                  遷移率係數
    itauphi, itauphi1      相場 1/τφ 與保留係數 1 - 1/τφ
    ieta                   界面對流係數 1/η
    itaurho                流體分布保留係數 (1 - 1/τρ)
    eg0, eg1, eg2          流體平衡權重 (靜止/面/對角)
    egc0, egc1, egc2       體力耦合係數 (靜止/面/對角)
    grav                   保留欄位，核心不使用
"""

import math
from dataclasses import dataclass, asdict, replace
from typing import Dict

import config
from src.utils.error_handling import ConfigurationError


@dataclass(frozen=True)
class SimulationParameters:
    """碰撞-傳播核心的常數參數包"""

    k: float
    alpha: float
    phi2: float
    gamma: float
    itauphi: float
    itauphi1: float
    ieta: float
    itaurho: float
    eg0: float
    eg1: float
    eg2: float
    egc0: float
    egc1: float
    egc2: float
    grav: float = 0.0

    def __post_init__(self):
        bad = {name: value for name, value in asdict(self).items()
               if not isinstance(value, (int, float)) or not math.isfinite(value)}
        if bad:
            raise ConfigurationError(f"模擬參數必須為有限實數: {bad}", bad)
        # 統一轉為 float，避免整數欄位進入核心
        for name, value in asdict(self).items():
            object.__setattr__(self, name, float(value))

    @classmethod
    def from_relaxation_times(cls,
                              tau_phi: float = config.TAU_PHI,
                              tau_rho: float = config.TAU_RHO,
                              eta: float = config.ETA,
                              gamma: float = config.MOBILITY_GAMMA,
                              surface_tension: float = config.SURFACE_TENSION,
                              interface_width: float = config.INTERFACE_WIDTH,
                              phi_0: float = config.PHI_0,
                              grav: float = config.GRAVITY_LU) -> "SimulationParameters":
        """
        由物理參數推導核心係數

        流體平衡權重取 eg_q = w_q / τρ (w = 1/3, 1/18, 1/36)，
        體力係數取 egc_q = 3 w_q (1 - 1/(2τρ))。
        """
        for name, tau in (('tau_phi', tau_phi), ('tau_rho', tau_rho)):
            if not tau > config.MIN_TAU_STABLE:
                raise ConfigurationError(
                    f"{name}={tau} 必須大於 {config.MIN_TAU_STABLE}", {name: tau})
        if eta == 0.0:
            raise ConfigurationError("eta 不可為 0", {'eta': eta})
        if not interface_width > 0.0 or phi_0 == 0.0:
            raise ConfigurationError(
                "界面厚度必須為正且 φ₀ 不可為 0",
                {'interface_width': interface_width, 'phi_0': phi_0})

        alpha, kappa, phi2 = config.free_energy_coefficients(surface_tension, interface_width, phi_0)
        itauphi = 1.0 / tau_phi
        omega = 1.0 / tau_rho
        w0, w1, w2 = (float(config.WEIGHTS_3D[0]), float(config.WEIGHTS_3D[1]),
                      float(config.WEIGHTS_3D[7]))
        forcing = 1.0 - 0.5 * omega

        return cls(
            k=kappa, alpha=alpha, phi2=phi2, gamma=gamma,
            itauphi=itauphi, itauphi1=1.0 - itauphi, ieta=1.0 / eta,
            itaurho=1.0 - omega,
            eg0=w0 * omega, eg1=w1 * omega, eg2=w2 * omega,
            egc0=3.0 * w0 * forcing, egc1=3.0 * w1 * forcing, egc2=3.0 * w2 * forcing,
            grav=grav,
        )

    def with_overrides(self, **changes) -> "SimulationParameters":
        """回傳修改部分欄位後的新參數包"""
        return replace(self, **changes)

    def chemical_potential(self, phi: float, laplacian_phi: float = 0.0) -> float:
        """μ = α φ (φ² - φ₀²) - k ∇²φ (與核心相同運算順序)"""
        return self.alpha * phi * (phi * phi - self.phi2) - self.k * laplacian_phi

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)
