"""SCF 驱动测试：He / H 原子的端到端求解与前置条件。"""

import warnings
from unittest import mock

import numpy as np
import pytest

from atomconf.basis import RadialBasis
from atomconf.configuration import Configuration
from atomconf.exceptions import InvalidStateError, SCFConvergenceWarning, UnsupportedParameterError
from atomconf.occupations import OrbitalChannel
from atomconf.scf import SCFConfig, SCFSolver


@pytest.fixture(scope="module")
def helium_basis():
    return RadialBasis(Z=2, lmax=0, npoints=300, rmax=15.0)


@pytest.fixture(scope="module")
def helium_hf(helium_basis):
    solver = SCFSolver(helium_basis, SCFConfig(x_func="hf"))
    conf = _aufbau_conf(solver, 2, 0)
    with warnings.catch_warnings():
        warnings.simplefilter("error", SCFConvergenceWarning)
        result = solver.solve(conf)
    return solver, conf, result


def _aufbau_conf(solver, nel, lmax, restricted=True, nalpha=None):
    if restricted:
        counts = [nel]
    else:
        na = (nel + 1) // 2 if nalpha is None else nalpha
        counts = [na, nel - na]
    channels = []
    for n in counts:
        ch = OrbitalChannel(restricted, lmax)
        solver.initialize(ch)
        ch.aufbau(n)
        channels.append(ch)
    return Configuration(channels)


@pytest.mark.scf
def test_helium_restricted_hf_converges(helium_hf):
    _, conf, result = helium_hf
    assert conf.channels[0].occs.tolist() == [2]
    assert result.converged
    assert result.occupations == ((2,),)
    assert result.iterations <= 100
    assert result.diis_error < 1e-7
    # 初猜能量（核哈密顿量轨道）高于自洽能量
    assert result.total_energy < result.energy_history[0]
    assert abs(result.total_energy - (-2.8617)) < 1e-2


@pytest.mark.scf
def test_helium_virial_and_components(helium_hf):
    _, _, result = helium_hf
    e = result.energies
    assert e.kinetic > 0 and e.nuclear < 0 and e.coulomb > 0 and e.xc < 0
    # 精确交换对闭壳层 He 恰为 -J/2
    assert np.isclose(e.xc, -0.5 * e.coulomb, rtol=1e-10)
    assert np.isclose(-(e.total - e.kinetic) / e.kinetic, 2.0, atol=1e-2)
    assert np.isclose(e.total, e.kinetic + e.nuclear + e.coulomb + e.xc)


@pytest.mark.scf
def test_occupations_unchanged_by_scf(helium_hf):
    _, conf, result = helium_hf
    assert conf.n_electrons == 2
    assert result.n_electrons == 2


@pytest.mark.scf
def test_non_convergence_is_a_warning(helium_basis):
    solver = SCFSolver(helium_basis, SCFConfig(maxit=2))
    conf = _aufbau_conf(solver, 2, 0)
    with pytest.warns(SCFConvergenceWarning):
        result = solver.solve(conf)
    assert not result.converged
    assert result.iterations == 2
    assert len(result.energy_history) == 2


@pytest.mark.scf
@pytest.mark.quick
def test_unset_orbitals_fail_before_fock_build(helium_basis):
    solver = SCFSolver(helium_basis)
    conf = Configuration.restricted([2], lmax=0)
    with mock.patch.object(solver.fock_builder, "build", wraps=solver.fock_builder.build) as spy:
        with pytest.raises(InvalidStateError):
            solver.solve(conf)
    spy.assert_not_called()


@pytest.mark.scf
@pytest.mark.quick
def test_precondition_violations(helium_basis):
    solver = SCFSolver(helium_basis)

    ch = OrbitalChannel(True, 0)
    solver.initialize(ch)
    ch.set_occs([2, 0])
    with pytest.raises(InvalidStateError):
        solver.solve(Configuration([ch]))

    u = OrbitalChannel(False, 0, [1])
    solver.initialize(u)
    with pytest.raises(InvalidStateError):
        solver.solve(Configuration([u]))

    r1 = OrbitalChannel(True, 0, [1])
    r2 = OrbitalChannel(True, 0, [1])
    solver.initialize(r1)
    solver.initialize(r2)
    with pytest.raises(InvalidStateError):
        solver.solve(Configuration([r1, r2]))

    empty = OrbitalChannel(True, 0, [0])
    solver.initialize(empty)
    with pytest.raises(InvalidStateError):
        solver.solve(Configuration([empty]))


@pytest.mark.scf
def test_initialize_rejects_lmax_beyond_basis(helium_basis):
    solver = SCFSolver(helium_basis)
    with pytest.raises(InvalidStateError):
        solver.initialize(OrbitalChannel(True, 2))


@pytest.mark.quick
@pytest.mark.parametrize(
    "kwargs",
    [
        {"maxit": 0},
        {"shift": -1.0},
        {"convthr": 0.0},
        {"energythr": 0.0},
        {"diiseps": 1e-4, "diisthr": 1e-3},
        {"diisorder": 0},
        {"damping": 1.5},
        {"x_func": "b88"},
        {"c_func": "lyp"},
    ],
)
def test_scf_config_validation(kwargs):
    with pytest.raises(UnsupportedParameterError):
        SCFConfig(**kwargs)


@pytest.mark.scf
def test_hydrogen_unrestricted_hf():
    basis = RadialBasis(Z=1, lmax=0, npoints=300, rmax=25.0)
    solver = SCFSolver(basis, SCFConfig(x_func="hf"))
    conf = _aufbau_conf(solver, 1, 0, restricted=False)
    assert conf.key() == ((1,), (0,))
    result = solver.solve(conf)
    assert result.converged
    # 单电子体系没有自相互作用
    assert np.isclose(result.energies.coulomb + result.energies.xc, 0.0, atol=1e-10)
    assert abs(result.total_energy + 0.5) < 2e-3


@pytest.mark.scf
def test_lda_restricted_matches_unrestricted_closed_shell(helium_basis):
    cfg = SCFConfig(x_func="slater", c_func="vwn")
    solver = SCFSolver(helium_basis, cfg)
    rres = solver.solve(_aufbau_conf(solver, 2, 0))
    ures = solver.solve(_aufbau_conf(solver, 2, 0, restricted=False))
    assert rres.converged and ures.converged
    assert np.isclose(rres.total_energy, ures.total_energy, atol=1e-6)
    assert -2.9 < rres.total_energy < -2.75


@pytest.mark.scf
def test_damped_update_converges(helium_basis):
    solver = SCFSolver(helium_basis, SCFConfig(damping=0.5, maxit=150))
    result = solver.solve(_aufbau_conf(solver, 2, 0))
    assert result.converged
    assert abs(result.total_energy - (-2.8617)) < 1e-2


@pytest.mark.scf
def test_restricted_potential_table(helium_hf, helium_basis):
    solver, conf, _ = helium_hf
    table = solver.restricted_potential(conf)
    r = helium_basis.radii()
    assert table.shape == (r.size, 8)
    assert np.allclose(table[:, 0], r)
    assert np.allclose(table[:, 6], helium_basis.quadrature_weights())
    # 核附近未屏蔽，远处被两个电子完全屏蔽
    assert abs(table[0, 7] - 2.0) < 0.3
    far = np.argmin(np.abs(r - 10.0))
    assert abs(table[far, 7]) < 0.05
    with pytest.raises(InvalidStateError):
        solver.unrestricted_potential(conf)


@pytest.mark.scf
def test_unrestricted_potentials_agree_for_closed_shell(helium_basis):
    solver = SCFSolver(helium_basis, SCFConfig(x_func="slater"))
    conf = _aufbau_conf(solver, 2, 0, restricted=False)
    solver.solve(conf)
    u = solver.unrestricted_potential(conf)
    a = solver.average_potential(conf)
    w = solver.weighted_potential(conf)
    # 两自旋密度相同时三种平均一致
    assert np.allclose(u[:, 5], a[:, 5], atol=1e-10)
    assert np.allclose(u[:, 5], w[:, 5], atol=1e-10)
    assert np.allclose(u[:, 1], w[:, 1])


@pytest.mark.scf
def test_nuclear_density(helium_hf):
    solver, conf, result = helium_hf
    n0 = solver.nuclear_density(result)
    assert np.isclose(n0, solver.nuclear_density(conf))
    assert np.isclose(n0, 3.596, rtol=5e-2)


@pytest.mark.quick
def test_energy_threshold_defaults_to_error_threshold():
    assert SCFConfig(convthr=1e-6).energythr == 1e-6
    cfg = SCFConfig(convthr=1e-6, energythr=1e-4)
    assert cfg.convthr == 1e-6 and cfg.energythr == 1e-4


@pytest.mark.scf
def test_loose_energy_threshold_stops_no_later(helium_basis, helium_hf):
    _, _, strict = helium_hf
    solver = SCFSolver(helium_basis, SCFConfig(energythr=1e-2))
    loose = solver.solve(_aufbau_conf(solver, 2, 0))
    assert loose.converged
    assert loose.iterations <= strict.iterations
    assert loose.diis_error < 1e-7
