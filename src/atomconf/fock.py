r"""Fock 矩阵与能量
================

对给定组态按角动量通道构造有效单体算子：

.. math::
    F^\sigma_\ell = T + V + \ell(\ell+1) T_\ell + J[P] + a_x K^\sigma_\ell + V^\sigma_{xc},

能量分量

.. math::
    E_{kin} = \sum_{\sigma\ell}\mathrm{tr}\,P^\sigma_\ell\,(T + \ell(\ell+1)T_\ell),\quad
    E_{nuc} = \mathrm{tr}\,P V,\quad
    E_{coul} = \tfrac12\mathrm{tr}\,P J,\quad
    E_{xc} = \tfrac{a_x}{2}\sum_{\sigma\ell}\mathrm{tr}\,K^\sigma_\ell P^\sigma_\ell + E^{loc}_{xc}.

自旋限制时两自旋密度相同，精确交换用总密度的一半构造（只有同自旋电子对参与交换），
:math:`E_x = \tfrac{a_x}{2}\sum_\ell \mathrm{tr}\,K_\ell P_\ell`。
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .basis import RadialBasis
from .configuration import Configuration, EnergyComponents
from .dftgrid import DFTGrid
from .linalg import total_density
from .xc import exact_exchange_fraction, has_local_part, validate_functional

__all__ = ["FockBuilder"]

logger = logging.getLogger(__name__)


class FockBuilder:
    """Fock/能量求值器（只读，可在多个 SCF 之间共享）。

    Parameters
    ----------
    basis : RadialBasis
        径向基与积分服务。
    x_func, x_params, c_func, c_params
        交换与关联泛函标识及参数，见 :mod:`atomconf.xc`。
    dftthr : float, optional
        局域 XC 的密度截断阈值。
    """

    def __init__(
        self,
        basis: RadialBasis,
        x_func: str = "hf",
        x_params: Sequence[float] = (),
        c_func: str = "none",
        c_params: Sequence[float] = (),
        dftthr: float = 1e-12,
    ):
        validate_functional(x_func, x_params, c_func, c_params)
        self.basis = basis
        self.grid = DFTGrid(basis)
        self.x_func = x_func
        self.x_params = tuple(x_params)
        self.c_func = c_func
        self.c_params = tuple(c_params)
        self.dftthr = float(dftthr)

        self.kfrac = exact_exchange_fraction(x_func, self.x_params)
        self.local_xc = has_local_part(x_func, self.x_params, c_func)
        self.H0 = basis.kinetic() + basis.nuclear()
        self._T = basis.kinetic()
        self._Tl = basis.kinetic_l()
        self._V = basis.nuclear()

    def core_hamiltonian(self, lmax: int) -> np.ndarray:
        """核哈密顿量立方体 :math:`H_0 + \\ell(\\ell+1) T_\\ell`。"""
        return np.stack([self.H0 + l * (l + 1) * self._Tl for l in range(lmax + 1)])

    def build(self, conf: Configuration) -> tuple[EnergyComponents, tuple[np.ndarray, ...], tuple[np.ndarray, ...]]:
        """由组态当前轨道与占据构造能量分量、各自旋 Fock 立方体与密度立方体。"""
        lmax = conf.lmax
        dens = tuple(ch.density() for ch in conf.channels)
        Pspin = tuple(total_density(P) for P in dens)
        Ptot = sum(Pspin)
        Hcore = self.core_hamiltonian(lmax)

        Ekin = 0.0
        for P in dens:
            for l in range(lmax + 1):
                Ekin += np.sum(P[l] * (self._T + l * (l + 1) * self._Tl))
        Enuc = float(np.sum(Ptot * self._V))

        J = self.basis.coulomb(Ptot)
        Ecoul = 0.5 * float(np.sum(Ptot * J))

        Exc = 0.0
        K = [np.zeros_like(P) for P in dens]
        if self.kfrac != 0.0:
            if conf.is_restricted:
                K = [self.basis.exchange(0.5 * dens[0])]
                Exc += 0.5 * self.kfrac * float(np.sum(K[0] * dens[0]))
            else:
                K = [self.basis.exchange(P) for P in dens]
                Exc += 0.5 * self.kfrac * sum(float(np.sum(Ks * P)) for Ks, P in zip(K, dens))

        Vxc = [0.0 for _ in dens]
        if self.local_xc:
            if conf.is_restricted:
                xc = self.grid.eval_fxc(
                    self.x_func, self.x_params, self.c_func, self.c_params, Pspin[0], dftthr=self.dftthr
                )
            else:
                xc = self.grid.eval_fxc(
                    self.x_func, self.x_params, self.c_func, self.c_params, Pspin[0], Pspin[1], dftthr=self.dftthr
                )
            Vxc = list(xc.potentials)
            Exc += xc.energy
            logger.debug("Grid integrated %.10f electrons", xc.nelec)

        fock = tuple(Hcore + J + self.kfrac * Ks + V for Ks, V in zip(K, Vxc))
        energies = EnergyComponents(kinetic=float(Ekin), nuclear=Enuc, coulomb=Ecoul, xc=float(Exc))
        return energies, fock, dens
