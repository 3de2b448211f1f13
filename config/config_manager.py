"""
config_manager.py

統一設定載入器：從 YAML 讀取使用者設定，建立格點幾何與核心參數包。
數值核心的派生係數 (itauphi、eg*、egc* 等) 只能由物理參數推導，不可直接覆寫。

使用方式：

    from config.config_manager import load_run_configuration
    geometry, params = load_run_configuration()

可用環境變數：
- PHASEFIELD_LBM_CONFIG: 指定 YAML 路徑（預設: config/config.yaml）
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional, Tuple

import yaml

from . import core, phasefield
from src.utils.error_handling import ConfigurationError
from src.utils.logger import get_logger

logger = get_logger('config_manager')

DEFAULT_CONFIG_PATH = os.environ.get(
    "PHASEFIELD_LBM_CONFIG", os.path.join(os.path.dirname(__file__), "config.yaml"))


# 禁止直接覆寫的派生係數（必須由鬆弛時間推導）
PROHIBITED = {
    "itauphi", "itauphi1", "itaurho", "ieta",
    "eg0", "eg1", "eg2", "egc0", "egc1", "egc2",
    "alpha", "k", "phi2",
}

# YAML -> 參數名稱映射
MAPPING: Dict[str, str] = {
    # domain
    "domain.nx": "nx",
    "domain.ny": "ny",
    "domain.nz": "nz",
    "domain.ldx": "ldx",
    "domain.ldy": "ldy",
    # kernel
    "kernel.block_shape": "block_shape",
    # phase field
    "phasefield.phi_0": "phi_0",
    "phasefield.interface_width": "interface_width",
    "phasefield.surface_tension": "surface_tension",
    "phasefield.gamma": "gamma",
    "phasefield.eta": "eta",
    # relaxation
    "relaxation.tau_phi": "tau_phi",
    "relaxation.tau_rho": "tau_rho",
    # forces
    "forces.gravity": "grav",
}

DEFAULTS: Dict[str, Any] = {
    "nx": core.NX,
    "ny": core.NY,
    "nz": core.NZ,
    "ldx": None,
    "ldy": None,
    "block_shape": core.KERNEL_BLOCK_SHAPE,
    "phi_0": phasefield.PHI_0,
    "interface_width": phasefield.INTERFACE_WIDTH,
    "surface_tension": phasefield.SURFACE_TENSION,
    "gamma": phasefield.MOBILITY_GAMMA,
    "eta": phasefield.ETA,
    "tau_phi": phasefield.TAU_PHI,
    "tau_rho": phasefield.TAU_RHO,
    "grav": phasefield.GRAVITY_LU,
}


def _flatten(d: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in d.items():
        key = f"{prefix}.{k}" if prefix else k
        if isinstance(v, dict):
            out.update(_flatten(v, key))
        else:
            out[key] = v
    return out


def _load_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML 解析失敗: {path}", {'error': str(e)}) from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"設定檔頂層必須是映射: {path}")
    return data


def _coerce(name: str, old: Any, new: Any) -> Any:
    """依預設值型別做基本型別轉換"""
    try:
        if new is None and old is None:
            return None
        if name == "block_shape":
            return tuple(int(b) for b in new)
        if old is None or isinstance(old, int):
            return int(new)
        if isinstance(old, float):
            return float(new)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"設定值型別錯誤: {name}={new!r}", {name: new}) from e
    return new


def resolve_settings(data: Dict[str, Any]) -> Dict[str, Any]:
    """把 YAML 內容套用到預設值上，回傳完整設定字典"""
    flat = _flatten(data)
    settings = dict(DEFAULTS)
    applied = []
    skipped = []

    for ykey, value in flat.items():
        leaf = ykey.rsplit(".", 1)[-1]
        if leaf in PROHIBITED:
            raise ConfigurationError(
                f"{ykey} 是派生係數，請改設定對應的物理參數", {ykey: value})
        if ykey not in MAPPING:
            skipped.append(ykey)
            continue
        name = MAPPING[ykey]
        new_val = _coerce(name, settings[name], value)
        applied.append((ykey, name, settings[name], new_val))
        settings[name] = new_val

    if applied:
        logger.info("🧩 套用YAML覆寫：")
        for ykey, name, old, new in applied:
            logger.info(f"   - {ykey} → {name}: {old} → {new}")
    if skipped:
        logger.warning(f"ℹ️  略過未知設定: {', '.join(skipped)}")
    return settings


def load_run_configuration(path: Optional[str] = None) -> Tuple["LatticeGeometry", "SimulationParameters"]:
    """讀取YAML並建立 (LatticeGeometry, SimulationParameters)。

    找不到設定檔時使用預設值。
    """
    # 延遲導入，避免 config 套件與 src 互相循環導入
    from src.core.lattice import LatticeGeometry
    from src.core.simulation_parameters import SimulationParameters

    path = path or DEFAULT_CONFIG_PATH
    data = _load_yaml(path)
    if not data:
        logger.info(f"⚙️  使用預設設定（未找到: {path}）")

    settings = resolve_settings(data)
    geometry = LatticeGeometry(
        settings["nx"], settings["ny"], settings["nz"],
        ldx=settings["ldx"], ldy=settings["ldy"],
        block_shape=settings["block_shape"],
    )
    params = SimulationParameters.from_relaxation_times(
        tau_phi=settings["tau_phi"],
        tau_rho=settings["tau_rho"],
        eta=settings["eta"],
        gamma=settings["gamma"],
        surface_tension=settings["surface_tension"],
        interface_width=settings["interface_width"],
        phi_0=settings["phi_0"],
        grav=settings["grav"],
    )
    return geometry, params
