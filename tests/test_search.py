"""组态搜索与排序测试。"""

import warnings

import numpy as np
import pytest

from atomconf.basis import RadialBasis
from atomconf.configuration import (
    CandidateOutcome,
    Configuration,
    ConfigurationResult,
    EnergyComponents,
    rank_results,
    ranking_key,
)
from atomconf.exceptions import InvalidStateError, SCFConvergenceWarning, UnsupportedParameterError
from atomconf.scf import SCFConfig, SCFSolver
from atomconf.search import ConfigurationSearch, SearchConfig


def _fake_result(occs, energy, converged):
    return ConfigurationResult(
        occupations=(tuple(occs),),
        restricted=True,
        energies=EnergyComponents(kinetic=0.0, nuclear=energy, coulomb=0.0, xc=0.0),
        orbital_energies=(np.zeros((len(occs), 1)),),
        iterations=1,
        diis_error=0.0,
        energy_history=(energy,),
        converged=converged,
    )


@pytest.mark.search
@pytest.mark.quick
def test_ranking_prefers_lower_energy():
    a = _fake_result([2], -2.0, True)
    b = _fake_result([1], -1.0, True)
    ranked = rank_results([b, a])
    assert ranked[0] is a and ranked[1] is b


@pytest.mark.search
@pytest.mark.quick
def test_ranking_prefers_converged():
    conv = _fake_result([2], -1.0, True)
    unconv = _fake_result([1], -5.0, False)
    assert rank_results([unconv, conv])[0] is conv
    assert ranking_key(conv) < ranking_key(unconv)


@pytest.mark.search
@pytest.mark.quick
def test_candidate_outcome_ok():
    assert CandidateOutcome(key=((2,),), result=_fake_result([2], -1.0, True)).ok
    assert not CandidateOutcome(key=((2,),), error=InvalidStateError("boom")).ok


@pytest.mark.search
@pytest.mark.quick
def test_search_config_validation():
    with pytest.raises(UnsupportedParameterError):
        SearchConfig(max_workers=0)
    with pytest.raises(UnsupportedParameterError):
        SearchConfig(max_steps=0)


@pytest.fixture(scope="module")
def boron():
    basis = RadialBasis(Z=5, lmax=1, npoints=150, rmax=12.0)
    solver = SCFSolver(basis, SCFConfig(maxit=60, convthr=1e-6))
    return basis, solver


@pytest.fixture(scope="module")
def boron_search(boron):
    _, solver = boron
    search = ConfigurationSearch(solver, SearchConfig(max_workers=4, max_steps=10))
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SCFConvergenceWarning)
        return search.run(5, 1, restricted=False)


@pytest.mark.search
def test_seed_uses_aufbau(boron):
    _, solver = boron
    conf = ConfigurationSearch(solver).seed(5, 1, restricted=False)
    na, nb = conf.key()
    assert sum(na) == 3 and sum(nb) == 2
    assert conf.channels[0].C is not conf.channels[1].C


@pytest.mark.search
def test_seed_explicit_occupations(boron):
    _, solver = boron
    search = ConfigurationSearch(solver)
    conf = search.seed(5, 1, restricted=False, occs=[[2, 1], [2, 0]])
    assert conf.key() == ((2, 1), (2, 0))
    with pytest.raises(InvalidStateError):
        search.seed(5, 1, restricted=False, occs=[[2, 1], [1, 0]])
    with pytest.raises(InvalidStateError):
        search.seed(5, 1, restricted=False, occs=[[2, 1]])


@pytest.mark.search
def test_boron_search_explores_s_to_p_moves(boron_search):
    res = boron_search
    seed = res.explored[0].key
    # 至少尝试过一个在 s 与 p 通道之间移动电子的候选
    moved = [
        o.key for o in res.explored[1:]
        if any(k[0] != s[0] for k, s in zip(o.key, seed))
    ]
    assert moved
    assert all(sum(map(sum, o.key)) == 5 for o in res.explored)


@pytest.mark.search
def test_boron_search_terminates_at_local_optimum(boron_search):
    res = boron_search
    assert res.steps >= 1
    assert res.best.n_electrons == 5
    keys = [o.key for o in res.explored]
    # 全局去重：每个占据方案只求解一次
    assert len(keys) == len(set(keys))
    best_key = ranking_key(res.best)
    for r in res.results:
        assert best_key <= ranking_key(r)


@pytest.mark.search
def test_only_best_result_keeps_orbitals(boron_search):
    res = boron_search
    holding = [r for r in res.results if r.has_orbitals]
    assert len(holding) == 1 and holding[0] is res.best
    assert len(res.results) > 1
    released = next(r for r in res.results if r is not res.best)
    assert np.isfinite(released.total_energy)
    with pytest.raises(InvalidStateError):
        released.channels()


@pytest.mark.search
def test_neighbors_are_independent_copies(boron_search, boron):
    _, solver = boron
    search = ConfigurationSearch(solver)
    best = boron_search.best
    nbrs = search.neighbors(best)
    assert nbrs
    coeffs = [ch.C for conf in nbrs for ch in conf.channels]
    assert len({id(c) for c in coeffs}) == len(coeffs)
    assert all(conf.n_electrons == best.n_electrons for conf in nbrs)


@pytest.mark.search
def test_failed_candidates_are_recorded(boron):
    _, solver = boron
    search = ConfigurationSearch(solver, SearchConfig(max_workers=2))
    good = search.seed(5, 1, restricted=False)
    bad = Configuration.unrestricted([3, 0], [2, 0], lmax=1)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SCFConvergenceWarning)
        outcomes = search.solve_all([bad, good])
    assert not outcomes[0].ok
    assert isinstance(outcomes[0].error, InvalidStateError)
    assert outcomes[1].ok
    assert outcomes[1].key == good.key()


@pytest.mark.search
def test_restricted_helium_search_stays_at_aufbau():
    basis = RadialBasis(Z=2, lmax=1, npoints=120, rmax=12.0)
    solver = SCFSolver(basis)
    res = ConfigurationSearch(solver, SearchConfig(max_workers=1)).run(2, 1)
    assert res.best.occupations == ((2, 0),)
    assert res.best.converged
    assert res.steps == 1
    assert {o.key for o in res.explored} == {((2, 0),), ((1, 1),), ((0, 2),)}
