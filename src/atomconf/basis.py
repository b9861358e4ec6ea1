r"""有限差分径向基
================

把等间距网格上的格点值 :math:`u(r_i)` 作为径向基函数系数，提供 SCF 所需的全部单、双电子积分。

表示约定
--------

- 轨道系数即径向函数在内部格点上的取值，:math:`c_i = u(r_i)`；归一化 :math:`\int u^2\,dr = 1`
  对应 :math:`c^T S c = 1`，其中 :math:`S = h I`。
- 密度矩阵 :math:`P = \sum_o n_o c_o c_o^T`（:math:`n_o` 为轨道电子数），
  其对角元即径向密度 :math:`\rho(r_i) = \sum_o n_o u_o(r_i)^2`，:math:`\mathrm{tr}(PS) = N`。
- 局域势 :math:`v(r)` 的矩阵为 :math:`S\,\mathrm{diag}(v)`。

动能算子
--------

.. math::
    T = -\tfrac{1}{2} h D_2,\qquad T_\ell = \ell(\ell+1)\, S\,\mathrm{diag}\!\left(\frac{1}{2r^2}\right),

其中 :math:`D_2` 为二阶（三点）或四阶（五点）中心差分矩阵，端点外按 Dirichlet 边界补零。

双电子积分
----------

Slater 核 :math:`G^k_{ij} = r_<^k / r_>^{k+1}` 在构造时一次性预计算（只读，可在线程间共享）：

.. math::
    v_H(r_i) = h\sum_j G^0_{ij}\rho_j,\qquad
    (K_\ell)_{ij} = -h^2 \sum_{\ell'}\sum_k
    \begin{pmatrix} \ell & k & \ell' \\ 0&0&0 \end{pmatrix}^2 (P_{\ell'})_{ij} G^k_{ij}.
"""

from __future__ import annotations

import numpy as np

from .angular import exchange_couplings
from .exceptions import InvalidStateError, UnsupportedParameterError
from .grid import radial_grid_uniform

__all__ = [
    "SUPPORTED_ORDERS",
    "second_derivative_matrix",
    "RadialBasis",
]

SUPPORTED_ORDERS = (2, 4)


def second_derivative_matrix(n: int, h: float, order: int = 4, Z: float = 0.0) -> np.ndarray:
    r"""等间距网格上二阶导数的中心差分矩阵（Dirichlet 边界）。

    - ``order=2``：:math:`(u_{i-1} - 2u_i + u_{i+1})/h^2`
    - ``order=4``：:math:`(-u_{i-2} + 16u_{i-1} - 30u_i + 16u_{i+1} - u_{i+2})/(12h^2)`

    四阶格式在第一个内部点需要 :math:`r=-h` 处的幽灵点。核电荷 :math:`Z` 处 s 轨道满足尖点条件
    :math:`u''(0) = -2Z\,u'(0)`，即 :math:`u = a(r - Zr^2 + O(r^3))`，解析延拓给出

    .. math::
        u(-h) = -(1 + 2Zh)\,u(h) + O(h^3).

    单纯奇延拓 :math:`u(-h) = -u(h)` 在第一行引入 :math:`O(1)` 截断误差，
    使本征值只有 :math:`O(h^2)` 收敛；带尖点修正后第一行误差为 :math:`O(h)`，
    能量误差降为 :math:`O(h^3)`。修正只改动对角元，矩阵保持对称。

    Parameters
    ----------
    n : int
        内部点个数。
    h : float
        网格步长。
    order : int, optional
        差分精度阶数，仅支持 2 与 4。
    Z : float, optional
        原点处的核电荷，仅用于四阶格式的幽灵点；``Z=0`` 退化为奇延拓。

    Returns
    -------
    D2 : numpy.ndarray
        对称带状矩阵，形状 ``(n, n)``。
    """
    if order not in SUPPORTED_ORDERS:
        raise UnsupportedParameterError(f"不支持的差分阶数 {order}，可选 {SUPPORTED_ORDERS}")
    if order == 2:
        stencil = {0: -2.0, 1: 1.0}
        denom = h * h
    else:
        stencil = {0: -30.0, 1: 16.0, 2: -1.0}
        denom = 12.0 * h * h

    D2 = np.zeros((n, n), dtype=float)
    for offset, coef in stencil.items():
        idx = np.arange(n - offset)
        D2[idx, idx + offset] = coef
        D2[idx + offset, idx] = coef
    if order == 4:
        # 幽灵点 u(-h) 的系数为 -1
        D2[0, 0] += 1.0 + 2.0 * Z * h
    return D2 / denom


class RadialBasis:
    """有限差分径向基与积分服务。

    Parameters
    ----------
    Z : int
        原子序数。
    lmax : int
        最大角动量；决定预计算的 Slater 核阶数 :math:`k \\le 2\\ell_{\\max}`。
    npoints : int
        内部网格点数（即基函数个数）。
    rmax : float
        截断半径（Bohr）。
    order : int, optional
        动能算子的差分精度阶数（2 或 4，默认 4）。
    """

    def __init__(self, Z: int, lmax: int, npoints: int, rmax: float, order: int = 4):
        if Z < 1:
            raise UnsupportedParameterError(f"原子序数必须为正，收到 Z={Z}")
        if lmax < 0:
            raise UnsupportedParameterError(f"lmax 必须非负，收到 {lmax}")
        if order not in SUPPORTED_ORDERS:
            raise UnsupportedParameterError(f"不支持的差分阶数 {order}，可选 {SUPPORTED_ORDERS}")

        self.Z = int(Z)
        self.lmax = int(lmax)
        self.order = int(order)
        self.r, self.w, self.h = radial_grid_uniform(npoints, rmax)

        n = self.r.size
        self._S = self.h * np.eye(n)
        self._Sinvh = np.eye(n) / np.sqrt(self.h)
        self._T = -0.5 * self.h * second_derivative_matrix(n, self.h, self.order, self.Z)
        self._Tl = np.diag(self.h * 0.5 / self.r**2)
        self._Vnuc = np.diag(-self.h * self.Z / self.r)

        # Slater 核 r_<^k / r_>^{k+1}
        rl = np.minimum.outer(self.r, self.r)
        rg = np.maximum.outer(self.r, self.r)
        self._kernels = {k: rl**k / rg ** (k + 1) for k in range(2 * self.lmax + 1)}

    def Nbf(self) -> int:
        return self.r.size

    def charge(self) -> int:
        return self.Z

    def radii(self) -> np.ndarray:
        return self.r.copy()

    def quadrature_weights(self) -> np.ndarray:
        return self.w.copy()

    def overlap(self) -> np.ndarray:
        return self._S.copy()

    def Sinvh(self) -> np.ndarray:
        return self._Sinvh.copy()

    def kinetic(self) -> np.ndarray:
        """l 无关的动能矩阵 :math:`-\\tfrac12 d^2/dr^2`。"""
        return self._T.copy()

    def kinetic_l(self) -> np.ndarray:
        """离心项矩阵 :math:`1/(2r^2)`；实际使用时乘以 :math:`\\ell(\\ell+1)`。"""
        return self._Tl.copy()

    def nuclear(self) -> np.ndarray:
        return self._Vnuc.copy()

    def potential_matrix(self, v: np.ndarray) -> np.ndarray:
        """局域势 :math:`v(r_i)` 的矩阵 :math:`S\\,\\mathrm{diag}(v)`。"""
        if v.shape != self.r.shape:
            raise ValueError("势数组的形状必须与网格一致")
        return np.diag(self.h * v)

    def radial_density(self, P: np.ndarray) -> np.ndarray:
        """径向密度 :math:`\\rho(r_i) = \\sum_o n_o u_o(r_i)^2`（:math:`\\int\\rho\\,dr = N`）。"""
        return np.diag(P).copy()

    def coulomb_potential(self, P: np.ndarray) -> np.ndarray:
        r"""Hartree 势 :math:`v_H(r) = \int \rho(r')/r_>\,dr'`。"""
        return self.h * (self._kernels[0] @ self.radial_density(P))

    def coulomb(self, P: np.ndarray) -> np.ndarray:
        """总密度矩阵 ``P`` 产生的 Coulomb 矩阵 :math:`J`。"""
        return self.potential_matrix(self.coulomb_potential(P))

    def exchange(self, Pl: np.ndarray) -> np.ndarray:
        """同自旋密度立方体 ``Pl`` 产生的各 l 通道交换矩阵（负定）。

        Parameters
        ----------
        Pl : numpy.ndarray
            形状 ``(lmax+1, nbf, nbf)``；每个切片按电子数加权。

        Returns
        -------
        K : numpy.ndarray
            与 ``Pl`` 同形状。
        """
        nl = Pl.shape[0]
        if nl > self.lmax + 1:
            raise InvalidStateError(f"密度立方体含 {nl} 个通道，超过基组预计算的 lmax={self.lmax}")
        K = np.zeros_like(Pl)
        for l in range(nl):
            for lp in range(nl):
                if not np.any(Pl[lp]):
                    continue
                for k, c3j in exchange_couplings(l, lp):
                    K[l] -= c3j * Pl[lp] * self._kernels[k]
        return self.h * self.h * K

    def orbitals(self, C: np.ndarray) -> np.ndarray:
        """在网格点上求轨道值 :math:`u(r_i)`（按列）。"""
        return np.array(C, dtype=float, copy=True)

    def electron_density(self, P: np.ndarray) -> np.ndarray:
        r"""三维电子数密度 :math:`n(r) = \rho(r)/(4\pi r^2)`。"""
        return self.radial_density(P) / (4.0 * np.pi * self.r**2)

    def electron_density_gradient(self, P: np.ndarray) -> np.ndarray:
        return np.gradient(self.electron_density(P), self.r)

    def electron_density_laplacian(self, P: np.ndarray) -> np.ndarray:
        r"""球对称拉普拉斯 :math:`n'' + 2n'/r`。"""
        dn = self.electron_density_gradient(P)
        return np.gradient(dn, self.r) + 2.0 * dn / self.r

    def nuclear_density(self, P: np.ndarray) -> float:
        """将 :math:`n(r)` 用前三个格点二次外推到原子核处。"""
        n = self.electron_density(P)
        coeffs = np.polyfit(self.r[:3], n[:3], 2)
        return float(coeffs[-1])
