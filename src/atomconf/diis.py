r"""DIIS / ADIIS 加速
==================

保存最近若干次迭代的 (Fock, 密度, 能量) 快照，外推出改进的 Fock 矩阵。

- 各 l 通道的矩阵先拼成块对角超矩阵，再按自旋分别处理。
- 误差矩阵为正交基下的对易子 :math:`X^T (FPS - SPF) X`，误差度量取所有自旋中的最大绝对元素。
- **DIIS** （Pulay 1980）：在 :math:`\sum_i c_i = 1` 约束下最小化 :math:`\|\sum_i c_i e_i\|^2`。
- **ADIIS** （Hu & Yang 2010）：最小化能量的二次模型

  .. math::
      f(c) = E_n + \sum_i c_i\,\mathrm{tr}\,\Delta P_i F_n
      + \tfrac12 \sum_{ij} c_i c_j\,\mathrm{tr}\,\Delta P_i \Delta F_j,

  其中 :math:`\Delta P_i = P_i - P_n`，:math:`\Delta F_j = F_j - F_n`，
  系数参数化为 :math:`c_i = x_i^2/\sum_j x_j^2` 以满足非负与归一约束。

误差大于 ``diiseps`` 时只用 ADIIS，小于 ``diisthr`` 时只用 DIIS，介于两者之间时线性混合两组系数。
历史记录容量为 ``order``，超出时丢弃最旧的快照。每个 SCF 求解独占一个实例。
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.optimize import minimize

from .exceptions import InvalidStateError, UnsupportedParameterError
from .linalg import block_diag_cube, orthonormal_commutator, replicate_cube, split_blocks

__all__ = ["DIISSnapshot", "DIIS"]


@dataclass(frozen=True)
class DIISSnapshot:
    """一次迭代的超矩阵快照（每个自旋一项）。"""

    F: tuple[np.ndarray, ...]
    P: tuple[np.ndarray, ...]
    E: float
    errors: tuple[np.ndarray, ...]

    @property
    def error(self) -> float:
        return max(float(np.max(np.abs(e))) for e in self.errors)


class DIIS:
    """Fock 矩阵外推器。

    Parameters
    ----------
    S, Sinvh : numpy.ndarray
        单个 l 通道的重叠矩阵与半逆重叠矩阵。
    nblocks : int
        角动量通道数 ``lmax+1``。
    diiseps, diisthr : float
        ADIIS 与 DIIS 的切换阈值，要求 ``diisthr <= diiseps``。
    order : int
        历史记录容量。
    usediis, useadiis : bool
        是否启用相应方法；两者都关闭时直接返回最新的 Fock 矩阵。
    """

    def __init__(
        self,
        S: np.ndarray,
        Sinvh: np.ndarray,
        nblocks: int,
        diiseps: float = 1e-2,
        diisthr: float = 1e-3,
        order: int = 10,
        usediis: bool = True,
        useadiis: bool = True,
        logger: logging.Logger | None = None,
    ):
        if order < 1:
            raise UnsupportedParameterError(f"DIIS 历史容量必须为正，收到 {order}")
        if diisthr > diiseps:
            raise UnsupportedParameterError(f"要求 diisthr <= diiseps，收到 {diisthr} > {diiseps}")
        self.nblocks = int(nblocks)
        self.S = block_diag_cube(replicate_cube(S, self.nblocks))
        self.Sinvh = block_diag_cube(replicate_cube(Sinvh, self.nblocks))
        self.diiseps = float(diiseps)
        self.diisthr = float(diisthr)
        self.usediis = bool(usediis)
        self.useadiis = bool(useadiis)
        self.history: deque[DIISSnapshot] = deque(maxlen=int(order))
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self.history)

    def update(self, fock: Sequence[np.ndarray], dens: Sequence[np.ndarray], E: float) -> float:
        """记录一次迭代并返回其误差度量。"""
        if len(fock) != len(dens):
            raise InvalidStateError("Fock 与密度的自旋通道数不一致")
        F = tuple(block_diag_cube(Fs) for Fs in fock)
        P = tuple(block_diag_cube(Ps) for Ps in dens)
        errors = tuple(orthonormal_commutator(Fs, Ps, self.S, self.Sinvh) for Fs, Ps in zip(F, P))
        snap = DIISSnapshot(F=F, P=P, E=float(E), errors=errors)
        self.history.append(snap)
        return snap.error

    @property
    def error(self) -> float:
        if not self.history:
            raise InvalidStateError("DIIS 历史为空")
        return self.history[-1].error

    def coefficients(self) -> np.ndarray:
        """按误差大小选择 DIIS、ADIIS 或二者混合的外推系数。"""
        n = len(self.history)
        if n == 0:
            raise InvalidStateError("DIIS 历史为空")
        latest = np.zeros(n)
        latest[-1] = 1.0
        if n == 1:
            return latest

        err = self.error
        if self.usediis and self.useadiis:
            if err > self.diiseps:
                return self._adiis_coefficients()
            if err < self.diisthr:
                return self._diis_coefficients()
            cd = self._diis_coefficients()
            ca = self._adiis_coefficients()
            weight = (err - self.diisthr) / (self.diiseps - self.diisthr)
            return weight * ca + (1.0 - weight) * cd
        if self.usediis:
            return self._diis_coefficients()
        if self.useadiis:
            return self._adiis_coefficients()
        return latest

    def solve(self) -> tuple[np.ndarray, ...]:
        """外推后的各自旋 Fock 立方体。"""
        c = self.coefficients()
        self.logger.debug("DIIS coefficients %s", np.array2string(c, precision=4))
        nspin = len(self.history[-1].F)
        out = []
        for s in range(nspin):
            F = sum(ci * snap.F[s] for ci, snap in zip(c, self.history))
            out.append(split_blocks(F, self.nblocks))
        return tuple(out)

    def _diis_coefficients(self) -> np.ndarray:
        n = len(self.history)
        B = np.zeros((n + 1, n + 1))
        for i, si in enumerate(self.history):
            for j, sj in enumerate(self.history):
                B[i, j] = sum(float(np.sum(ei * ej)) for ei, ej in zip(si.errors, sj.errors))
        # 误差很小时重标度，避免矩阵条件数过差
        scale = np.max(np.abs(B[:n, :n]))
        if scale > 0.0:
            B[:n, :n] /= scale
        B[:n, n] = -1.0
        B[n, :n] = -1.0
        rhs = np.zeros(n + 1)
        rhs[n] = -1.0
        try:
            sol = np.linalg.solve(B, rhs)
        except np.linalg.LinAlgError:
            sol = None
        if sol is None or not np.all(np.isfinite(sol)):
            self.logger.debug("Singular DIIS system, using least squares")
            sol = np.linalg.lstsq(B, rhs, rcond=None)[0]
        return sol[:n]

    def _adiis_coefficients(self) -> np.ndarray:
        n = len(self.history)
        last = self.history[-1]
        g = np.zeros(n)
        M = np.zeros((n, n))
        for i, si in enumerate(self.history):
            dP = [Pi - Pn for Pi, Pn in zip(si.P, last.P)]
            g[i] = sum(float(np.sum(d * Fn)) for d, Fn in zip(dP, last.F))
            for j, sj in enumerate(self.history):
                M[i, j] = sum(float(np.sum(d * (Fj - Fn))) for d, Fj, Fn in zip(dP, sj.F, last.F))
        M = 0.5 * (M + M.T)

        def fun(x):
            s = float(np.dot(x, x))
            c = x * x / s
            G = g + M @ c
            f = last.E + float(np.dot(c, g)) + 0.5 * float(c @ M @ c)
            jac = 2.0 * x * (G - float(np.dot(G, c))) / s
            return f, jac

        res = minimize(fun, np.ones(n), jac=True, method="BFGS")
        x = res.x
        return x * x / float(np.dot(x, x))
