"""
core.py - 相場LBM核心參數 (單一來源)

定義兩組離散速度模型與預設網格/啟動設定：
- D3Q19: 流體動力分布函數 g (質量與動量)
- D3Q7: 相場分布函數 f (序參量 φ)

方向編號與碰撞-傳播核心一致，相反方向永遠相鄰 (1/2, 3/4, ...)，
因此成對計算時只需遍歷奇數方向。
"""

import numpy as np

# ==============================================
# 網格參數
# ==============================================

# 預設計算域 (格點索引為閉區間 [0, N])
NX = 31
NY = 31
NZ = 31

# 每側保留一層 ghost 格點供 push-streaming 寫入
GHOST_LAYERS = 1

# 浮點精度：核心以雙精度保持逐位可重現
FLOAT_PRECISION = "f64"

# 工作群組形狀 (對應GPU block，啟動範圍會向上取整)
KERNEL_BLOCK_SHAPE = (8, 8, 4)

# ==============================================
# D3Q19 流體動力模型
# ==============================================

Q_3D = 19

# 0: 靜止, 1-6: 面鄰居, 7-18: 邊鄰居 (相反方向成對相鄰)
CX_3D = np.array([0, 1, -1, 0, 0, 0, 0, 1, -1, 1, -1, 1, -1, 1, -1, 0, 0, 0, 0], dtype=np.int32)
CY_3D = np.array([0, 0, 0, 1, -1, 0, 0, 1, -1, -1, 1, 0, 0, 0, 0, 1, -1, 1, -1], dtype=np.int32)
CZ_3D = np.array([0, 0, 0, 0, 0, 1, -1, 0, 0, 0, 0, 1, -1, -1, 1, 1, -1, -1, 1], dtype=np.int32)

OPPOSITE_3D = np.array([0, 2, 1, 4, 3, 6, 5, 8, 7, 10, 9, 12, 11, 14, 13, 16, 15, 18, 17], dtype=np.int32)

WEIGHTS_3D = np.array(
    [1.0/3.0]
    + [1.0/18.0] * 6
    + [1.0/36.0] * 12,
    dtype=np.float64,
)

# 成對方向 (正向, 反向)；前3對為面方向，後6對為對角方向
PAIRS_3D = tuple((q, q + 1) for q in range(1, Q_3D, 2))
FACE_PAIR_COUNT = 3

# 驗證理論一致性
assert abs(np.sum(WEIGHTS_3D) - 1.0) < 1e-12, "D3Q19權重歸一化失敗"
assert all(OPPOSITE_3D[a] == b and OPPOSITE_3D[b] == a for a, b in PAIRS_3D), "D3Q19反向表不一致"

# ==============================================
# D3Q7 相場模型
# ==============================================

Q_PHASE = 7

CX_PHASE = np.array([0, 1, -1, 0, 0, 0, 0], dtype=np.int32)
CY_PHASE = np.array([0, 0, 0, 1, -1, 0, 0], dtype=np.int32)
CZ_PHASE = np.array([0, 0, 0, 0, 0, 1, -1], dtype=np.int32)

OPPOSITE_PHASE = np.array([0, 2, 1, 4, 3, 6, 5], dtype=np.int32)

PAIRS_PHASE = tuple((q, q + 1) for q in range(1, Q_PHASE, 2))


def d3q19_velocity(q):
    """回傳D3Q19方向q的整數速度向量 (cx, cy, cz)"""
    return int(CX_3D[q]), int(CY_3D[q]), int(CZ_3D[q])


def d3q7_velocity(q):
    """回傳D3Q7方向q的整數速度向量 (cx, cy, cz)"""
    return int(CX_PHASE[q]), int(CY_PHASE[q]), int(CZ_PHASE[q])


def get_core_summary():
    """核心參數摘要"""
    return {
        'grid': (NX, NY, NZ),
        'ghost_layers': GHOST_LAYERS,
        'precision': FLOAT_PRECISION,
        'block_shape': KERNEL_BLOCK_SHAPE,
        'hydro_model': f"D3Q{Q_3D}",
        'phase_model': f"D3Q{Q_PHASE}",
    }
