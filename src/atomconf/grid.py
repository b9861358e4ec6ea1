from __future__ import annotations

import numpy as np

from .exceptions import UnsupportedParameterError

__all__ = [
    "radial_grid_uniform",
    "trapezoid_weights",
]


def trapezoid_weights(r: np.ndarray) -> np.ndarray:
    r"""为单调递增的径向网格计算梯形积分权重。

    .. math::
        \int_{r_0}^{r_{N-1}} f(r)\,\mathrm{d}r \approx \sum_{i=0}^{N-1} w_i f(r_i),

    端点权重为半步长，内部点为左右间距的平均值。

    Parameters
    ----------
    r : numpy.ndarray
        严格单调递增的一维网格。

    Returns
    -------
    w : numpy.ndarray
        梯形积分权重。
    """
    if r.ndim != 1:
        raise ValueError("r 必须是一维数组")
    if np.any(np.diff(r) <= 0):
        raise ValueError("r 必须严格单调递增")
    w = np.zeros_like(r, dtype=float)
    if r.size == 1:
        return w
    dr = np.diff(r)
    w[0] = 0.5 * dr[0]
    w[1:-1] = 0.5 * (dr[1:] + dr[:-1])
    w[-1] = 0.5 * dr[-1]
    return w


def radial_grid_uniform(npoints: int, rmax: float) -> tuple[np.ndarray, np.ndarray, float]:
    r"""生成 :math:`[0, r_\max]` 上的等间距网格的内部点及其积分权重。

    网格为 :math:`r_i = i h,\ i=1,\dots,N`，其中 :math:`h = r_\max/(N+1)`。
    两端点 :math:`r=0` 与 :math:`r=r_\max` 上施加 Dirichlet 边界 :math:`u=0`，
    因而不作为自由度出现；内部点上的梯形权重恰为 :math:`h`。

    Parameters
    ----------
    npoints : int
        内部点个数 :math:`N`。
    rmax : float
        截断半径（Bohr）。

    Returns
    -------
    r : numpy.ndarray
        内部网格点，形状 ``(N,)``。
    w : numpy.ndarray
        对应的梯形权重。
    h : float
        网格步长。
    """
    if npoints < 5:
        raise UnsupportedParameterError(f"径向网格至少需要 5 个内部点，收到 {npoints}")
    if not rmax > 0.0:
        raise UnsupportedParameterError(f"rmax 必须为正，收到 {rmax}")
    r_full = np.linspace(0.0, rmax, npoints + 2)
    w_full = trapezoid_weights(r_full)
    h = float(r_full[1] - r_full[0])
    return r_full[1:-1].copy(), w_full[1:-1].copy(), h
