"""有限差分径向基与积分的单元测试（氢样体系有解析解）。"""

import numpy as np
import pytest

from atomconf.basis import RadialBasis, second_derivative_matrix
from atomconf.exceptions import InvalidStateError, UnsupportedParameterError
from atomconf.linalg import eig_gsym


@pytest.fixture(scope="module")
def hydrogen():
    return RadialBasis(Z=1, lmax=1, npoints=600, rmax=30.0, order=4)


def _ground_state(basis, l=0):
    H = basis.kinetic() + basis.nuclear() + l * (l + 1) * basis.kinetic_l()
    return eig_gsym(H, basis.Sinvh())


@pytest.mark.operator
@pytest.mark.quick
@pytest.mark.parametrize("order", [1, 3, 6])
def test_unsupported_order_raises(order):
    with pytest.raises(UnsupportedParameterError):
        RadialBasis(Z=1, lmax=0, npoints=50, rmax=10.0, order=order)
    with pytest.raises(UnsupportedParameterError):
        second_derivative_matrix(50, 0.1, order)


@pytest.mark.operator
@pytest.mark.quick
def test_second_derivative_of_quadratic():
    # 内部远离边界处 d2/dr2 r^2 = 2
    n, h = 40, 0.05
    r = h * np.arange(1, n + 1)
    for order in (2, 4):
        d2 = second_derivative_matrix(n, h, order) @ r**2
        assert np.allclose(d2[3:-3], 2.0, atol=1e-9)


@pytest.mark.operator
@pytest.mark.quick
def test_half_inverse_overlap(hydrogen):
    X = hydrogen.Sinvh()
    S = hydrogen.overlap()
    assert np.allclose(X.T @ S @ X, np.eye(hydrogen.Nbf()), atol=1e-12)


@pytest.mark.operator
def test_hydrogen_levels(hydrogen):
    eps_s, C = _ground_state(hydrogen, 0)
    eps_p, _ = _ground_state(hydrogen, 1)
    assert abs(eps_s[0] + 0.5) < 2e-3
    assert abs(eps_s[1] + 0.125) < 1e-3
    assert abs(eps_p[0] + 0.125) < 1e-3
    # 本征向量对 S 正交归一
    S = hydrogen.overlap()
    assert np.allclose(C[:, :3].T @ S @ C[:, :3], np.eye(3), atol=1e-10)


@pytest.mark.operator
def test_hartree_potential_of_1s(hydrogen):
    _, C = _ground_state(hydrogen, 0)
    c = C[:, 0]
    P = np.outer(c, c)
    assert np.isclose(np.trace(P @ hydrogen.overlap()), 1.0)
    r = hydrogen.radii()
    vH = hydrogen.coulomb_potential(P)
    exact = 1.0 / r - (1.0 + 1.0 / r) * np.exp(-2.0 * r)
    mask = (r > 0.5) & (r < 10.0)
    assert np.allclose(vH[mask], exact[mask], atol=2e-3)


@pytest.mark.operator
@pytest.mark.quick
def test_one_electron_exchange_cancels_coulomb(hydrogen):
    _, C = _ground_state(hydrogen, 0)
    c = C[:, 0]
    P = np.outer(c, c)
    J = hydrogen.coulomb(P)
    K = hydrogen.exchange(np.stack([P, np.zeros_like(P)]))
    assert np.isclose(0.5 * np.sum(P * J) + 0.5 * np.sum(P * K[0]), 0.0, atol=1e-12)
    # p 通道感受到的 s 电子交换为负定
    assert np.all(np.linalg.eigvalsh(K[1]) <= 1e-12)


@pytest.mark.operator
def test_exchange_rejects_too_many_channels(hydrogen):
    nbf = hydrogen.Nbf()
    with pytest.raises(InvalidStateError):
        hydrogen.exchange(np.zeros((3, nbf, nbf)))


@pytest.mark.operator
def test_nuclear_density_of_1s(hydrogen):
    _, C = _ground_state(hydrogen, 0)
    c = C[:, 0]
    n0 = hydrogen.nuclear_density(np.outer(c, c))
    assert np.isclose(n0, 1.0 / np.pi, rtol=2e-2)


@pytest.mark.operator
@pytest.mark.quick
def test_fourth_order_first_row_follows_nuclear_cusp():
    # u = r exp(-Zr) 满足尖点条件，第一个内部点的截断误差应为 O(h)
    Z, n, h = 1.0, 200, 0.01
    r = h * np.arange(1, n + 1)
    u = r * np.exp(-Z * r)
    exact = (Z * Z * r - 2.0 * Z) * np.exp(-Z * r)
    d2 = second_derivative_matrix(n, h, 4, Z) @ u
    assert abs(d2[0] - exact[0]) < 1e-2
    # 奇延拓的误差约为 Z/6
    d2_odd = second_derivative_matrix(n, h, 4) @ u
    assert abs(d2_odd[0] - exact[0]) > 0.1
    assert np.allclose(second_derivative_matrix(n, h, 4, Z), second_derivative_matrix(n, h, 4, Z).T)


@pytest.mark.operator
def test_fourth_order_hydrogen_converges_faster_than_second():
    def error(npoints, order):
        basis = RadialBasis(Z=1, lmax=0, npoints=npoints, rmax=20.0, order=order)
        eps, _ = _ground_state(basis, 0)
        return abs(eps[0] + 0.5)

    coarse, fine = error(100, 4), error(200, 4)
    # 步长减半误差至少降到 1/5（二阶格式只降到 1/4）
    assert fine < coarse / 5.0
    assert fine < error(200, 2)
