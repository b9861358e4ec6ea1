r"""径向 DFT 积分网格

在有限差分基的格点上求局域交换关联势与能量。三维密度 :math:`n(r)=\rho(r)/(4\pi r^2)`，
体积分 :math:`\int 4\pi r^2 f(r)\,dr` 用格点权重求和。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .basis import RadialBasis
from .xc import eval_xc_density

__all__ = ["XCResult", "DFTGrid"]


@dataclass(frozen=True)
class XCResult:
    r"""局域交换关联的求值结果。

    Attributes
    ----------
    potentials : tuple[numpy.ndarray, ...]
        势矩阵；限制性计算一个，非限制性计算两个（alpha, beta）。
    energy : float
        交换关联能 :math:`E_{xc}`。
    nelec : float
        网格上积分得到的电子数。
    """

    potentials: tuple[np.ndarray, ...]
    energy: float
    nelec: float


class DFTGrid:
    """绑定到 :class:`RadialBasis` 的 XC 求值器（只读，可在线程间共享）。"""

    def __init__(self, basis: RadialBasis):
        self.basis = basis
        self._vol = 4.0 * np.pi * basis.r**2 * basis.w

    def eval_vxc(
        self,
        x_func: str,
        x_params: Sequence[float],
        c_func: str,
        c_params: Sequence[float],
        Pa: np.ndarray,
        Pb: np.ndarray | None = None,
        dftthr: float = 1e-12,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """返回格点上的 ``(v_a, v_b, e_xc, n_total)``。

        若 ``Pb`` 为 ``None``，``Pa`` 视为自旋限制的总密度矩阵，按 :math:`n_\\uparrow=n_\\downarrow=n/2` 求值。
        总密度低于 ``dftthr`` 的格点上势与能量密度置零。
        """
        if Pb is None:
            n = self.basis.electron_density(Pa)
            n_up = n_dn = 0.5 * n
        else:
            n_up = self.basis.electron_density(Pa)
            n_dn = self.basis.electron_density(Pb)
        v_a, v_b, e_xc = eval_xc_density(x_func, x_params, c_func, c_params, n_up, n_dn)

        n_tot = n_up + n_dn
        small = n_tot < dftthr
        v_a[small] = 0.0
        v_b[small] = 0.0
        e_xc[small] = 0.0
        return v_a, v_b, e_xc, n_tot

    def eval_fxc(
        self,
        x_func: str,
        x_params: Sequence[float],
        c_func: str,
        c_params: Sequence[float],
        Pa: np.ndarray,
        Pb: np.ndarray | None = None,
        dftthr: float = 1e-12,
    ) -> XCResult:
        """求 XC 势矩阵、能量与积分电子数。"""
        v_a, v_b, e_xc, n_tot = self.eval_vxc(x_func, x_params, c_func, c_params, Pa, Pb, dftthr)
        energy = float(np.dot(self._vol, e_xc))
        nelec = float(np.dot(self._vol, n_tot))
        if Pb is None:
            potentials = (self.basis.potential_matrix(v_a),)
        else:
            potentials = (self.basis.potential_matrix(v_a), self.basis.potential_matrix(v_b))
        return XCResult(potentials=potentials, energy=energy, nelec=nelec)
