#!/usr/bin/env python3
"""
相場梯度提供者測試
中央差分梯度與7點 Laplacian，週期與零梯度邊界
"""

import numpy as np
import pytest
import taichi as ti

from src.core.lattice import LatticeGeometry
from src.core.phase_field_gradients import PhaseFieldGradients
from src.utils.error_handling import ConfigurationError
from src.utils.taichi_init import initialize_taichi_once, reset_taichi


@pytest.fixture(scope="module", autouse=True)
def setup_taichi():
    """設置Taichi測試環境 (雙精度CPU)"""
    initialize_taichi_once(arch=ti.cpu, precision='f64')
    yield
    reset_taichi()


@pytest.fixture(scope="module")
def geometry():
    return LatticeGeometry(7, 5, 4)


def sample_field(geometry):
    i, j, z = np.meshgrid(*(np.arange(n) for n in geometry.shape), indexing='ij')
    nx, ny, nz = geometry.shape
    return (np.sin(2.0 * np.pi * i / nx) * np.cos(2.0 * np.pi * j / ny)
            + 0.3 * np.sin(2.0 * np.pi * z / nz))


class TestPeriodicDerivatives:
    """週期邊界"""

    def test_gradient_matches_central_difference(self, geometry):
        gradients = PhaseFieldGradients(geometry, periodic=True)
        phi = sample_field(geometry)
        gradients.set_order_parameter(phi)
        gradients.compute()

        expected = np.stack([
            0.5 * (np.roll(phi, -1, axis=a) - np.roll(phi, 1, axis=a)) for a in range(3)
        ], axis=-1)
        np.testing.assert_allclose(gradients.get_gradient(), expected, atol=1e-14)

    def test_laplacian_matches_stencil(self, geometry):
        gradients = PhaseFieldGradients(geometry, periodic=True)
        phi = sample_field(geometry)
        gradients.set_order_parameter(phi)
        gradients.compute()

        expected = sum(np.roll(phi, s, axis=a) for a in range(3) for s in (-1, 1)) - 6.0 * phi
        np.testing.assert_allclose(gradients.get_laplacian(), expected, atol=1e-13)

    def test_uniform_field_has_no_gradient(self, geometry):
        gradients = PhaseFieldGradients(geometry, periodic=True)
        gradients.set_uniform(0.25)
        gradients.compute()
        np.testing.assert_array_equal(gradients.get_gradient(), 0.0)
        np.testing.assert_allclose(gradients.get_laplacian(), 0.0, atol=1e-15)
        np.testing.assert_array_equal(gradients.get_order_parameter(), 0.25)


class TestClampedDerivatives:
    """零梯度 (夾住索引) 邊界"""

    def test_boundary_one_sided(self, geometry):
        gradients = PhaseFieldGradients(geometry, periodic=False)
        phi = sample_field(geometry)
        gradients.set_order_parameter(phi)
        gradients.compute()

        grad = gradients.get_gradient()
        np.testing.assert_allclose(grad[0, :, :, 0], 0.5 * (phi[1] - phi[0]), atol=1e-14)
        np.testing.assert_allclose(grad[-1, :, :, 0], 0.5 * (phi[-1] - phi[-2]), atol=1e-14)
        np.testing.assert_allclose(grad[3, :, :, 0], 0.5 * (phi[4] - phi[2]), atol=1e-14)


class TestDerivedFields:
    """外部指定衍生場"""

    def test_set_derived_fields(self, geometry):
        gradients = PhaseFieldGradients(geometry)
        lap = np.full(geometry.shape, 0.5)
        grad = np.zeros(geometry.shape + (3,))
        grad[..., 1] = -0.2
        gradients.set_derived_fields(lap, grad)
        np.testing.assert_array_equal(gradients.get_laplacian(), lap)
        np.testing.assert_array_equal(gradients.get_gradient(), grad)

    def test_gradient_shape_checked(self, geometry):
        gradients = PhaseFieldGradients(geometry)
        with pytest.raises(ConfigurationError):
            gradients.set_derived_fields(np.zeros(geometry.shape), np.zeros(geometry.shape))
