# lbm_diagnostics.py
"""
LBM診斷監控系統 - 相場LBM
碰撞-傳播核心沒有錯誤狀態，非有限值與質量漂移由這裡偵測：
- 總質量 Σρ 與相對漂移
- 相場分布零階矩 Σf
- NaN/Inf 計數
- 可選的強制檢查 (拋出 NumericalDivergenceError / PhysicsViolationError)
- matplotlib 切片快照
"""

import os
import time
from collections import deque
from datetime import datetime

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from src.utils.error_handling import (
    ErrorRecorder, NumericalDivergenceError, PhysicsViolationError
)
from src.utils.logger import get_logger

logger = get_logger('lbm_diagnostics')


class CircularBuffer:
    """循環緩衝區 - 高效歷史數據管理"""
    def __init__(self, max_size=1000):
        self.max_size = max_size
        self.data = deque(maxlen=max_size)
        self.timestamps = deque(maxlen=max_size)

    def add(self, timestamp, data_dict):
        self.timestamps.append(timestamp)
        self.data.append(data_dict.copy())

    def get_recent(self, n=10):
        """獲取最近n個數據點"""
        return list(self.timestamps)[-n:], list(self.data)[-n:]

    def get_all(self):
        return list(self.timestamps), list(self.data)

    def __len__(self):
        return len(self.data)


class LBMDiagnostics:
    """相場LBM診斷監控"""

    def __init__(self, solver, mass_tolerance: float = 1e-10, history_size: int = 1000,
                 recorder: ErrorRecorder = None):
        self.solver = solver
        self.mass_tolerance = mass_tolerance
        self.history = CircularBuffer(max_size=history_size)
        self.recorder = recorder if recorder is not None else ErrorRecorder()

        self.reference_mass = None
        self.reference_phase_mass = None
        self.calculation_times = []

        logger.info(f"🔬 LBM診斷監控系統已初始化 (質量容差 {mass_tolerance:g})")

    # ------------------------------------------------------------------
    # 量測
    # ------------------------------------------------------------------

    def set_reference(self):
        """以目前狀態作為質量參考值"""
        self.reference_mass = self.solver.total_mass()
        self.reference_phase_mass = float(np.sum(self.solver.get_phase_moment()))
        logger.info(f"📏 參考質量: ρ={self.reference_mass:.12g}, φ={self.reference_phase_mass:.12g}")

    def count_non_finite(self):
        """各場的 NaN/Inf 格點數"""
        rho = self.solver.get_density()
        phase = self.solver.get_phase_moment()
        return {
            'rho': int(np.count_nonzero(~np.isfinite(rho))),
            'phase': int(np.count_nonzero(~np.isfinite(phase))),
        }

    @staticmethod
    def _relative_drift(value, reference):
        if reference is None:
            return 0.0
        scale = abs(reference) if reference != 0.0 else 1.0
        return abs(value - reference) / scale

    def measure(self):
        """計算一次完整診斷，不寫入歷史"""
        if self.reference_mass is None:
            self.set_reference()

        rho = self.solver.get_density()
        phase = self.solver.get_phase_moment()
        total_mass = float(np.sum(rho))
        phase_mass = float(np.sum(phase))

        return {
            'total_mass': total_mass,
            'phase_mass': phase_mass,
            'mass_drift': self._relative_drift(total_mass, self.reference_mass),
            'phase_mass_drift': self._relative_drift(phase_mass, self.reference_phase_mass),
            'rho_min': float(np.nanmin(rho)) if np.isfinite(rho).any() else float('nan'),
            'rho_max': float(np.nanmax(rho)) if np.isfinite(rho).any() else float('nan'),
            'non_finite': self.count_non_finite(),
        }

    def update_diagnostics(self, step_num, enforce: bool = False):
        """主要診斷更新函數，結果存入歷史"""
        start = time.time()
        diagnostics = self.measure()
        diagnostics['step'] = step_num
        diagnostics['timestamp'] = datetime.now().isoformat()
        self.history.add(step_num, diagnostics)
        self.calculation_times.append(time.time() - start)

        if enforce:
            self.check(diagnostics)
        return diagnostics

    # ------------------------------------------------------------------
    # 強制檢查
    # ------------------------------------------------------------------

    def check(self, diagnostics=None):
        """
        檢查數值與守恆狀態，違反時記錄並拋出異常

        Raises:
            NumericalDivergenceError: 出現 NaN/Inf
            PhysicsViolationError: 質量相對漂移超過容差
        """
        diagnostics = diagnostics if diagnostics is not None else self.measure()

        bad = diagnostics['non_finite']
        if bad['rho'] or bad['phase']:
            error = NumericalDivergenceError(
                f"偵測到非有限值: ρ {bad['rho']} 格點, φ {bad['phase']} 格點", dict(bad))
            self.recorder.record(error)
            raise error

        if diagnostics['mass_drift'] > self.mass_tolerance:
            error = PhysicsViolationError(
                f"質量漂移 {diagnostics['mass_drift']:.3e} 超過容差 {self.mass_tolerance:.3e}",
                {'total_mass': diagnostics['total_mass'], 'reference_mass': self.reference_mass})
            self.recorder.record(error)
            raise error

        return True

    # ------------------------------------------------------------------
    # 輸出
    # ------------------------------------------------------------------

    def save_slice_snapshot(self, filename, field='rho', axis=2, index=None, dpi=100):
        """
        輸出單一切片影像

        Args:
            field: 'rho'、'phase' 或 'phi'
            axis: 切片法向 (0=x, 1=y, 2=z)
            index: 切片位置，預設取中央
        """
        sources = {
            'rho': self.solver.get_density,
            'phase': self.solver.get_phase_moment,
            'phi': self.solver.fields.get_order_parameter,
        }
        if field not in sources:
            raise ValueError(f"未知場: {field}，可用 {sorted(sources)}")

        data = sources[field]()
        index = data.shape[axis] // 2 if index is None else index
        slice_2d = np.take(data, index, axis=axis)

        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)

        fig, ax = plt.subplots(figsize=(6, 5))
        try:
            im = ax.imshow(slice_2d.T, origin='lower', aspect='auto', cmap='viridis')
            fig.colorbar(im, ax=ax, label=field)
            ax.set_title(f"{field} (axis={axis}, index={index}, step={self.solver.step_count})")
            fig.savefig(filename, dpi=dpi)
        finally:
            plt.close(fig)

        logger.info(f"🖼️ 切片快照已輸出: {filename}")
        return filename

    def get_performance_stats(self):
        if not self.calculation_times:
            return {'samples': 0}
        return {
            'samples': len(self.calculation_times),
            'mean_time': float(np.mean(self.calculation_times)),
        }

    def get_summary_report(self):
        """歷史摘要"""
        _, data = self.history.get_all()
        if not data:
            return {'samples': 0}
        drifts = [d['mass_drift'] for d in data]
        return {
            'samples': len(data),
            'last_step': data[-1]['step'],
            'max_mass_drift': float(np.max(drifts)),
            'last_total_mass': data[-1]['total_mass'],
            'errors': self.recorder.get_error_statistics(),
        }
