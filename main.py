# main.py
"""
Phase-Field LBM Simulation
兩相Cahn-Hilliard LBM主程式 - 週期計算域中的靜止液滴

使用方式:
    python main.py [步數] [輸出目錄]

設定檔由 PHASEFIELD_LBM_CONFIG 指定 (預設 config/config.yaml)。
"""

import os
import sys

import numpy as np

from config.config_manager import load_run_configuration
from src.core.phasefield_lbm_solver import PhaseFieldLBMSolver
from src.visualization.lbm_diagnostics import LBMDiagnostics
from src.utils.error_handling import CFDError
from src.utils.logger import get_logger

logger = get_logger('main')


def drop_profile(geometry, radius=None, phi_0=1.0, width=4.0):
    """球形液滴 φ = φ₀ tanh(2 (R - r) / W)，液滴中心在計算域中央"""
    shape = np.array(geometry.shape)
    radius = radius if radius is not None else 0.25 * shape.min()
    i, j, z = np.meshgrid(*(np.arange(n) for n in geometry.shape), indexing='ij')
    cx, cy, cz = 0.5 * (shape - 1)
    r = np.sqrt((i - cx) ** 2 + (j - cy) ** 2 + (z - cz) ** 2)
    return phi_0 * np.tanh(2.0 * (radius - r) / width)


def run_simulation(max_steps=100, output_dir="output", diag_freq=10):
    """執行液滴模擬並輸出中央切片"""
    geometry, params = load_run_configuration()
    solver = PhaseFieldLBMSolver(geometry, params, periodic=True)
    solver.initialize_fields(phi=drop_profile(geometry, phi_0=np.sqrt(params.phi2)), rho=1.0)

    diagnostics = LBMDiagnostics(solver)
    diagnostics.set_reference()

    logger.info(f"🚀 開始模擬: {max_steps:,} 步")
    solver.run(max_steps, diagnostics=diagnostics, diag_freq=diag_freq)

    report = diagnostics.get_summary_report()
    logger.info(f"📊 模擬完成: {report}")
    logger.info(f"⏱️ 效能: {solver.get_performance_stats()}")

    os.makedirs(output_dir, exist_ok=True)
    for field in ('rho', 'phase'):
        diagnostics.save_slice_snapshot(os.path.join(output_dir, f"{field}_step_{solver.step_count:06d}.png"),
                                        field=field)
    return solver, diagnostics


def main():
    max_steps = int(sys.argv[1]) if len(sys.argv) > 1 else 100
    output_dir = sys.argv[2] if len(sys.argv) > 2 else "output"
    try:
        run_simulation(max_steps=max_steps, output_dir=output_dir)
    except CFDError as e:
        logger.error(f"❌ 模擬中止 ({e.category.value}): {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
