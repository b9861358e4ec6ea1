from unittest import mock

import numpy as np
import pytest

from atomconf.basis import RadialBasis
from atomconf.diis import DIIS
from atomconf.exceptions import UnsupportedParameterError
from atomconf.linalg import eig_gsym


@pytest.fixture(scope="module")
def small_basis():
    return RadialBasis(Z=2, lmax=1, npoints=30, rmax=8.0)


def _core(basis):
    Tl = basis.kinetic_l()
    H0 = basis.kinetic() + basis.nuclear()
    return np.stack([H0 + l * (l + 1) * Tl for l in range(basis.lmax + 1)])


def _density(F, basis, nocc=(2.0, 0.0)):
    P = np.zeros_like(F)
    for l, n in enumerate(nocc):
        _, C = eig_gsym(F[l], basis.Sinvh())
        P[l] = n * np.outer(C[:, 0], C[:, 0])
    return P


def _perturbed(basis, scale, seed):
    rng = np.random.default_rng(seed)
    F = _core(basis)
    R = rng.normal(scale=scale, size=F.shape)
    return F + (R + R.transpose(0, 2, 1)) * basis.h


def _diis(basis, **kw):
    return DIIS(basis.overlap(), basis.Sinvh(), basis.lmax + 1, **kw)


@pytest.mark.quick
def test_commuting_fock_and_density_have_zero_error(small_basis):
    F = _core(small_basis)
    P = _density(F, small_basis)
    d = _diis(small_basis)
    assert d.update([F], [P], -2.0) < 1e-10


@pytest.mark.quick
def test_error_is_max_over_spins(small_basis):
    F = _core(small_basis)
    Fp = _perturbed(small_basis, 1e-2, 1)
    P = _density(F, small_basis)
    d = _diis(small_basis)
    e_single = _diis(small_basis).update([Fp], [P], 0.0)
    e_both = d.update([F, Fp], [P, P], 0.0)
    assert e_single > 1e-6
    assert np.isclose(e_both, e_single)


@pytest.mark.quick
def test_history_is_bounded_fifo(small_basis):
    F = _core(small_basis)
    P = _density(F, small_basis)
    d = _diis(small_basis, order=3)
    for i in range(5):
        d.update([F], [P], float(i))
    assert len(d) == 3
    assert [s.E for s in d.history] == [2.0, 3.0, 4.0]


@pytest.mark.scf
def test_diis_coefficients_sum_to_one(small_basis):
    d = _diis(small_basis)
    for seed in range(4):
        F = _perturbed(small_basis, 1e-3, seed)
        d.update([F], [_density(_core(small_basis), small_basis)], -2.0 + 1e-3 * seed)
    c = d._diis_coefficients()
    assert np.isclose(c.sum(), 1.0)


@pytest.mark.scf
def test_singular_diis_falls_back_to_least_squares(small_basis):
    F = _perturbed(small_basis, 1e-3, 3)
    P = _density(_core(small_basis), small_basis)
    d = _diis(small_basis)
    d.update([F], [P], -2.0)
    d.update([F], [P], -2.0)
    c = d._diis_coefficients()
    assert np.allclose(c, [0.5, 0.5])


@pytest.mark.scf
def test_adiis_coefficients_are_convex(small_basis):
    d = _diis(small_basis)
    for seed in range(4):
        F = _perturbed(small_basis, 1e-2, seed)
        d.update([F], [_density(F, small_basis)], -2.0 + 0.01 * seed)
    c = d._adiis_coefficients()
    assert np.all(c >= 0.0)
    assert np.isclose(c.sum(), 1.0)


@pytest.mark.scf
@pytest.mark.quick
def test_large_error_uses_adiis_only(small_basis):
    d = _diis(small_basis, diiseps=1e-8, diisthr=1e-9)
    P = _density(_core(small_basis), small_basis)
    for seed in range(3):
        d.update([_perturbed(small_basis, 1e-2, seed)], [P], -2.0)
    with mock.patch.object(d, "_diis_coefficients", side_effect=AssertionError("DIIS should not run")):
        c = d.coefficients()
    assert np.isclose(c.sum(), 1.0)


@pytest.mark.scf
@pytest.mark.quick
def test_small_error_uses_diis_only(small_basis):
    d = _diis(small_basis, diiseps=1e3, diisthr=1e2)
    P = _density(_core(small_basis), small_basis)
    for seed in range(3):
        d.update([_perturbed(small_basis, 1e-2, seed)], [P], -2.0)
    with mock.patch.object(d, "_adiis_coefficients", side_effect=AssertionError("ADIIS should not run")):
        c = d.coefficients()
    assert np.isclose(c.sum(), 1.0)


@pytest.mark.scf
@pytest.mark.quick
def test_disabled_acceleration_returns_latest(small_basis):
    d = _diis(small_basis, usediis=False, useadiis=False)
    P = _density(_core(small_basis), small_basis)
    fs = [_perturbed(small_basis, 1e-2, seed) for seed in range(3)]
    for F in fs:
        d.update([F], [P], -2.0)
    (Fext,) = d.solve()
    assert np.allclose(Fext, fs[-1])


@pytest.mark.scf
@pytest.mark.quick
def test_solve_returns_cube_per_spin(small_basis):
    d = _diis(small_basis)
    P = _density(_core(small_basis), small_basis)
    for seed in range(3):
        F = _perturbed(small_basis, 1e-3, seed)
        d.update([F, F], [P, P], -2.0)
    out = d.solve()
    assert len(out) == 2
    assert out[0].shape == (small_basis.lmax + 1, small_basis.Nbf(), small_basis.Nbf())


@pytest.mark.quick
def test_invalid_thresholds(small_basis):
    with pytest.raises(UnsupportedParameterError):
        _diis(small_basis, diiseps=1e-4, diisthr=1e-2)
    with pytest.raises(UnsupportedParameterError):
        _diis(small_basis, order=0)
