#!/usr/bin/env python3
"""
碰撞-傳播融合核心測試
以獨立的 numpy 參考實作 (逐方向 c_q·u 形式) 對照核心的成對計算
"""

import numpy as np
import pytest
import taichi as ti

import config
from src.core.lattice import LatticeGeometry
from src.core.distributions import DistributionGenerations
from src.core.phase_field_gradients import PhaseFieldGradients
from src.core.simulation_parameters import SimulationParameters
from src.core.site_update import SiteUpdateKernel
from src.utils.error_handling import ConfigurationError
from src.utils.taichi_init import initialize_taichi_once, reset_taichi


SENTINEL = -777.0


@pytest.fixture(scope="module", autouse=True)
def setup_taichi():
    """設置Taichi測試環境 (雙精度CPU)"""
    initialize_taichi_once(arch=ti.cpu, precision='f64')
    yield
    reset_taichi()


@pytest.fixture(scope="module")
def params():
    return SimulationParameters(
        k=0.03, alpha=0.02, phi2=1.0, gamma=1.5,
        itauphi=0.8, itauphi1=0.2, ieta=0.5, itaurho=0.4,
        eg0=0.2, eg1=1.0 / 30.0, eg2=1.0 / 60.0,
        egc0=0.1, egc1=0.05, egc2=0.025,
    )


class KernelSystem:
    """測試用的完整核心組合"""

    def __init__(self, geometry):
        self.geometry = geometry
        self.fields = PhaseFieldGradients(geometry)
        self.phase = DistributionGenerations(geometry, config.Q_PHASE, name="f")
        self.hydro = DistributionGenerations(geometry, config.Q_3D, name="g")
        self.kernel = SiteUpdateKernel(geometry)

    def load(self, f_interior, g_interior, fill=SENTINEL):
        """計算域分布 (Q, nx+1, ny+1, nz+1) 載入兩個世代，其餘位置填 fill"""
        scatter = self.geometry.scatter
        self.phase.load_all_generations(np.stack([scatter(p, fill) for p in f_interior]))
        self.hydro.load_all_generations(np.stack([scatter(p, fill) for p in g_interior]))

    def update(self, params):
        self.kernel.update(self.fields, self.phase, self.hydro, params)


def reference_collision(g, f, phi, lap, grad, p):
    """
    逐格點參考碰撞 (不含傳播)

    g: (19, N)、f: (7, N)、phi/lap: (N,)、grad: (N, 3)
    """
    c = np.stack([config.CX_3D, config.CY_3D, config.CZ_3D], axis=1).astype(np.float64)
    rho = g.sum(axis=0)
    mu = p.alpha * phi * (phi * phi - p.phi2) - p.k * lap
    force = mu[:, None] * grad
    u = ((c.T @ g).T + 0.5 * force) / rho[:, None]

    f_new = np.empty_like(f)
    f_new[0] = p.itauphi1 * f[0] - 3.0 * p.gamma * mu * p.itauphi + p.itauphi * phi
    for q in range(1, config.Q_PHASE):
        cu = (np.array(config.d3q7_velocity(q)) * u).sum(axis=1)
        f_new[q] = p.itauphi1 * f[q] + 0.5 * p.gamma * mu * p.itauphi + p.itauphi * p.ieta * phi * cu

    ag = 3.0 * phi * mu + rho
    v = 1.5 * (u * u).sum(axis=1)
    uf = (u * force).sum(axis=1)

    g_new = np.empty_like(g)
    g_new[0] = p.itaurho * g[0] + p.eg0 * ((rho - 6.0 * phi * mu) - rho * v) - p.egc0 * uf
    for q in range(1, config.Q_3D):
        eg, egc = (p.eg1, p.egc1) if q <= 6 else (p.eg2, p.egc2)
        cu = u @ c[q]
        cf = force @ c[q]
        g_new[q] = (p.itaurho * g[q] + eg * ag + eg * rho * (0.5 * cu * cu - v)
                    + egc * (cu * cf - uf) + eg * rho * cu + egc * cf)
    return f_new, g_new


def random_state(geometry, seed=7):
    rng = np.random.default_rng(seed)
    shape = geometry.shape
    g = (config.WEIGHTS_3D[:, None, None, None] * (1.0 + 0.05 * rng.standard_normal((19,) + shape)))
    f = 0.1 + 0.02 * rng.standard_normal((7,) + shape)
    phi = 0.3 * rng.standard_normal(shape)
    lap = 0.05 * rng.standard_normal(shape)
    grad = 0.05 * rng.standard_normal(shape + (3,))
    return f, g, phi, lap, grad


def flat_sites(array, geometry):
    """[..., i, j, z] → [..., N]，順序同 interior_storage_indices().ravel()"""
    lead = array.shape[:array.ndim - 3]
    return array.reshape(lead + (geometry.num_sites,))


class TestGoldenScenario:
    """單一格點黃金回歸：ρ=2 平均分配、φ=0.5、零梯度"""

    def test_golden_values(self, params):
        geometry = LatticeGeometry(2, 2, 2)
        system = KernelSystem(geometry)
        shape = geometry.shape

        g0 = 2.0 / 19.0
        f0 = 0.1
        system.load(np.full((7,) + shape, f0), np.full((19,) + shape, g0))
        system.fields.set_order_parameter(np.full(shape, 0.5))
        system.fields.set_derived_fields(np.zeros(shape), np.zeros(shape + (3,)))
        system.update(params)

        p = params
        mu = p.alpha * 0.5 * (0.25 - p.phi2)
        assert mu == pytest.approx(-0.0075)

        expected_f0 = p.itauphi1 * f0 + -3.0 * p.gamma * mu * p.itauphi + p.itauphi * 0.5
        expected_fd = p.itauphi1 * f0 + 0.50 * p.gamma * mu * p.itauphi
        rho = 2.0
        expected_g0 = p.itaurho * g0 + p.eg0 * (rho - 6.0 * 0.5 * mu)
        expected_face = p.itaurho * g0 + p.eg1 * (3.0 * 0.5 * mu + rho)
        expected_diag = p.itaurho * g0 + p.eg2 * (3.0 * 0.5 * mu + rho)

        center = geometry.storage_index(1, 1, 1)
        f = system.phase.populations(system.phase.current)
        assert f[0, center] == pytest.approx(expected_f0, rel=1e-14)
        for q in range(1, 7):
            assert f[q, center] == pytest.approx(expected_fd, rel=1e-14)

        g = system.hydro.populations(system.hydro.next)
        assert g[0, center] == pytest.approx(expected_g0, rel=1e-14)
        for q in range(1, 19):
            target = center + geometry.displacement(q)
            expected = expected_face if q <= 6 else expected_diag
            assert g[q, target] == pytest.approx(expected, rel=1e-14)

        # 數值錨點
        assert expected_fd == pytest.approx(0.2 * 0.1 + 0.5 * 1.5 * -0.0075 * 0.8)
        assert expected_g0 == pytest.approx(0.4 * 2.0 / 19.0 + 0.2 * (2.0 + 0.0225))


class TestAgainstReference:
    """隨機狀態對照參考實作"""

    @pytest.fixture(scope="class")
    def updated(self, params):
        geometry = LatticeGeometry(5, 4, 3)
        system = KernelSystem(geometry)
        f, g, phi, lap, grad = random_state(geometry)
        system.load(f, g)
        system.fields.set_order_parameter(phi)
        system.fields.set_derived_fields(lap, grad)
        system.update(params)

        f_ref, g_ref = reference_collision(
            flat_sites(g, geometry), flat_sites(f, geometry),
            phi.ravel(), lap.ravel(), grad.reshape(-1, 3), params)
        return system, f_ref, g_ref

    def test_phase_collision_in_place(self, updated):
        system, f_ref, _ = updated
        sites = system.geometry.interior_storage_indices().ravel()
        f = system.phase.populations(system.phase.current)
        np.testing.assert_allclose(f[:, sites], f_ref, rtol=1e-12, atol=1e-15)

    def test_hydro_rest_in_place(self, updated):
        system, _, g_ref = updated
        sites = system.geometry.interior_storage_indices().ravel()
        np.testing.assert_allclose(system.hydro.rest.to_numpy()[sites], g_ref[0], rtol=1e-12, atol=1e-15)

    @pytest.mark.parametrize("q", range(1, 19))
    def test_hydro_streamed_to_neighbor(self, updated, q):
        """方向 q 的碰撞後分布寫入 next 世代的 m + Δ_q"""
        system, _, g_ref = updated
        geometry = system.geometry
        sites = geometry.interior_storage_indices().ravel()
        g_next = system.hydro.moving.to_numpy()[system.hydro.next]
        np.testing.assert_allclose(g_next[q - 1, sites + geometry.displacement(q)], g_ref[q],
                                   rtol=1e-12, atol=1e-15)

    def test_pair_symmetric_decomposition(self, updated, params):
        """成對方向增量的偶部/奇部分解"""
        system, _, g_ref = updated
        geometry = system.geometry
        p = params
        _, g, phi, lap, grad = random_state(geometry)
        g = flat_sites(g, geometry)
        phi, lap, grad = phi.ravel(), lap.ravel(), grad.reshape(-1, 3)

        c = np.stack([config.CX_3D, config.CY_3D, config.CZ_3D], axis=1).astype(np.float64)
        rho = g.sum(axis=0)
        mu = p.alpha * phi * (phi * phi - p.phi2) - p.k * lap
        force = mu[:, None] * grad
        u = ((c.T @ g).T + 0.5 * force) / rho[:, None]
        v = 1.5 * (u * u).sum(axis=1)
        uf = (u * force).sum(axis=1)
        ag = 3.0 * phi * mu + rho

        sites = geometry.interior_storage_indices().ravel()
        g_next = system.hydro.moving.to_numpy()[system.hydro.next]
        for index, (a, b) in enumerate(config.PAIRS_3D):
            eg, egc = (p.eg1, p.egc1) if index < config.FACE_PAIR_COUNT else (p.eg2, p.egc2)
            u_p, f_p = u @ c[a], force @ c[a]
            delta_a = g_next[a - 1, sites + geometry.displacement(a)] - p.itaurho * g[a]
            delta_b = g_next[b - 1, sites + geometry.displacement(b)] - p.itaurho * g[b]
            tmp1 = eg * ag + eg * rho * (0.5 * u_p * u_p - v) + egc * (u_p * f_p - uf)
            tmp2 = eg * rho * u_p + egc * f_p
            np.testing.assert_allclose(0.5 * (delta_a + delta_b), tmp1, rtol=1e-10, atol=1e-14)
            np.testing.assert_allclose(0.5 * (delta_a - delta_b), tmp2, rtol=1e-10, atol=1e-14)


class TestLaunchBounds:
    """啟動範圍大於計算域時，多出的任務不寫入任何位置"""

    def test_padding_untouched(self, params):
        # ldx/ldy 帶額外 padding，啟動範圍 (8, 8, 4) 大於計算域 (5, 4, 3)
        geometry = LatticeGeometry(4, 3, 2, ldx=12, ldy=9, block_shape=(8, 8, 4))
        assert geometry.launch_extents == (8, 8, 4)
        system = KernelSystem(geometry)
        f, g, phi, lap, grad = random_state(geometry, seed=3)
        system.load(f, g, fill=SENTINEL)
        system.fields.set_order_parameter(phi)
        system.fields.set_derived_fields(lap, grad)
        system.update(params)

        sites = geometry.interior_storage_indices().ravel()
        outside = ~geometry.interior_mask()

        assert np.all(system.hydro.rest.to_numpy()[outside] == SENTINEL)
        assert np.all(system.phase.rest.to_numpy()[outside] == SENTINEL)
        assert np.all(system.phase.moving.to_numpy()[:, :, outside] == SENTINEL)

        g_next = system.hydro.moving.to_numpy()[system.hydro.next]
        for q in range(1, 19):
            written = np.zeros(geometry.storage_size, dtype=bool)
            written[sites + geometry.displacement(q)] = True
            assert np.all(g_next[q - 1, ~written & outside] == SENTINEL)
            assert np.all(np.isfinite(g_next[q - 1, written]))


class TestGenerationContract:
    """世代讀寫規則"""

    def test_phase_directional_not_streamed(self, params):
        """相場方向分布原地更新於 current 世代，next 世代不變"""
        geometry = LatticeGeometry(3, 3, 3)
        system = KernelSystem(geometry)
        f, g, phi, lap, grad = random_state(geometry, seed=11)
        system.load(f, g)
        f_next_marker = np.full((6, geometry.storage_size), 0.123)
        moving = system.phase.moving.to_numpy()
        moving[system.phase.next] = f_next_marker
        system.phase.moving.from_numpy(moving)

        system.fields.set_order_parameter(phi)
        system.fields.set_derived_fields(lap, grad)
        before = system.phase.moving.to_numpy()[system.phase.current].copy()
        system.update(params)
        after = system.phase.moving.to_numpy()

        np.testing.assert_array_equal(after[system.phase.next], f_next_marker)
        sites = geometry.interior_storage_indices().ravel()
        assert not np.allclose(after[system.phase.current][:, sites], before[:, sites])
        f_ref, _ = reference_collision(
            flat_sites(g, geometry), flat_sites(f, geometry),
            phi.ravel(), lap.ravel(), grad.reshape(-1, 3), params)
        np.testing.assert_allclose(after[system.phase.current][:, sites], f_ref[1:], rtol=1e-12, atol=1e-15)

    def test_hydro_current_generation_untouched(self, params):
        geometry = LatticeGeometry(3, 3, 3)
        system = KernelSystem(geometry)
        f, g, phi, lap, grad = random_state(geometry, seed=5)
        system.load(f, g)
        system.fields.set_order_parameter(phi)
        system.fields.set_derived_fields(lap, grad)
        before = system.hydro.moving.to_numpy()[system.hydro.current].copy()
        system.update(params)
        np.testing.assert_array_equal(system.hydro.moving.to_numpy()[system.hydro.current], before)

    def test_gravity_is_unused(self, params):
        """grav 改變不影響任何輸出"""
        geometry = LatticeGeometry(3, 3, 3)
        outputs = []
        for grav in (0.0, 9.81):
            system = KernelSystem(geometry)
            f, g, phi, lap, grad = random_state(geometry, seed=13)
            system.load(f, g)
            system.fields.set_order_parameter(phi)
            system.fields.set_derived_fields(lap, grad)
            system.update(params.with_overrides(grav=grav))
            outputs.append((system.phase.populations(system.phase.current),
                            system.hydro.populations(system.hydro.next)))
        np.testing.assert_array_equal(outputs[0][0], outputs[1][0])
        np.testing.assert_array_equal(outputs[0][1], outputs[1][1])


class TestArgumentChecks:
    """錯誤配置在 Python 端即被拒絕"""

    def test_mismatched_geometry(self, params):
        geometry = LatticeGeometry(2, 2, 2)
        system = KernelSystem(geometry)
        other = DistributionGenerations(LatticeGeometry(2, 2, 2), config.Q_PHASE)
        with pytest.raises(ConfigurationError):
            system.kernel.update(system.fields, other, system.hydro, params)

    def test_wrong_family(self, params):
        geometry = LatticeGeometry(2, 2, 2)
        system = KernelSystem(geometry)
        with pytest.raises(ConfigurationError):
            system.kernel.update(system.fields, system.phase, system.phase, params)
