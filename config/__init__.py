# config/__init__.py - 統一配置系統入口
"""
相場LBM統一配置入口

- config.core: 離散速度模型、網格與核心啟動參數
- config.phasefield: Cahn-Hilliard 自由能與鬆弛參數
- config.config_manager: YAML 覆寫載入
"""

from .core import (
    # 網格參數
    NX, NY, NZ, GHOST_LAYERS, FLOAT_PRECISION, KERNEL_BLOCK_SHAPE,

    # D3Q19
    Q_3D, CX_3D, CY_3D, CZ_3D, OPPOSITE_3D, WEIGHTS_3D, PAIRS_3D, FACE_PAIR_COUNT,

    # D3Q7
    Q_PHASE, CX_PHASE, CY_PHASE, CZ_PHASE, OPPOSITE_PHASE, PAIRS_PHASE,

    d3q19_velocity, d3q7_velocity, get_core_summary
)

from .phasefield import (
    PHI_0, INTERFACE_WIDTH, SURFACE_TENSION,
    TAU_PHI, TAU_RHO, MOBILITY_GAMMA, ETA, GRAVITY_LU, MIN_TAU_STABLE,
    free_energy_coefficients, get_phasefield_summary
)

__version__ = "1.0.0"
