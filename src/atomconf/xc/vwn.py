from __future__ import annotations

import numpy as np

from .constants import VWN5_PARAMS
from .lda import spin_interpolated_potential

__all__ = [
    "vwn5_correlation",
]


def _vwn_channel(rs: np.ndarray, key: str) -> tuple[np.ndarray, np.ndarray]:
    r"""VWN5 关联能及其对 :math:`r_s` 的解析导数。

    以 :math:`x=\sqrt{r_s}`、:math:`X(x)=x^2+bx+c`、:math:`Q=\sqrt{4c-b^2}` 表示：

    .. math::
        \varepsilon_c = A\left[\ln\frac{x^2}{X} + \frac{2b}{Q}\arctan\frac{Q}{2x+b}
        - \frac{b x_0}{X(x_0)}\left(\ln\frac{(x-x_0)^2}{X}
        + \frac{2(b+2x_0)}{Q}\arctan\frac{Q}{2x+b}\right)\right].
    """
    A, x0, b, c = VWN5_PARAMS[key]
    x = np.sqrt(rs)
    X = x * x + b * x + c
    X0 = x0 * x0 + b * x0 + c
    Q = np.sqrt(4.0 * c - b * b)
    atan = np.arctan(Q / (2.0 * x + b))
    pref = b * x0 / X0

    eps = A * (
        np.log(x * x / X)
        + (2.0 * b / Q) * atan
        - pref * (np.log((x - x0) ** 2 / X) + (2.0 * (b + 2.0 * x0) / Q) * atan)
    )

    dX = 2.0 * x + b
    datan = -2.0 * Q / (dX * dX + Q * Q)
    deps_dx = A * (
        2.0 / x
        - dX / X
        + (2.0 * b / Q) * datan
        - pref * (2.0 / (x - x0) - dX / X + (2.0 * (b + 2.0 * x0) / Q) * datan)
    )
    return eps, deps_dx / (2.0 * x)


def vwn5_correlation(n_up: np.ndarray, n_dn: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """VWN5 关联：返回 ``(vc_up, vc_dn, e_c)``。"""
    return spin_interpolated_potential(n_up, n_dn, _vwn_channel)
