from __future__ import annotations

import numpy as np

from .constants import DIRAC_ALPHA, PZ81_PARAMS

__all__ = [
    "slater_exchange",
    "pz81_correlation",
    "spin_interpolated_potential",
]

_TINY = 1e-30


def slater_exchange(
    n_up: np.ndarray, n_dn: np.ndarray, alpha: float = DIRAC_ALPHA
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r"""Slater X-alpha 交换（自旋分辨），:math:`\alpha=2/3` 即 Dirac 交换。

    .. math::
        v_x^\sigma = -\frac{3\alpha}{2}\left(\frac{6}{\pi}\right)^{1/3} n_\sigma^{1/3},\qquad
        e_x = -\frac{9\alpha}{8}\left(\frac{6}{\pi}\right)^{1/3}
        \left(n_\uparrow^{4/3} + n_\downarrow^{4/3}\right).

    Parameters
    ----------
    n_up, n_dn : numpy.ndarray
        自旋分辨数密度；负值按 0 处理。
    alpha : float, optional
        X-alpha 参数。

    Returns
    -------
    vx_up, vx_dn : numpy.ndarray
        交换势。
    e_x : numpy.ndarray
        交换能量体密度（Hartree/a0^3）。
    """
    c = 1.5 * alpha * (6.0 / np.pi) ** (1.0 / 3.0)
    up = np.clip(n_up, 0.0, None)
    dn = np.clip(n_dn, 0.0, None)
    vx_up = -c * np.cbrt(up)
    vx_dn = -c * np.cbrt(dn)
    e_x = -0.75 * c * (up ** (4.0 / 3.0) + dn ** (4.0 / 3.0))
    return vx_up, vx_dn, e_x


def _pz81_channel(rs: np.ndarray, key: str) -> tuple[np.ndarray, np.ndarray]:
    """单个极化极限下的 :math:`\\varepsilon_c(r_s)` 及 :math:`d\\varepsilon_c/dr_s`。"""
    A, B, C, D, gamma, beta1, beta2 = PZ81_PARAMS[key]
    eps = np.empty_like(rs)
    deps = np.empty_like(rs)

    high = rs < 1.0
    rh = rs[high]
    lnr = np.log(rh)
    eps[high] = A * lnr + B + C * rh * lnr + D * rh
    deps[high] = A / rh + C * (lnr + 1.0) + D

    rl = rs[~high]
    sq = np.sqrt(rl)
    den = 1.0 + beta1 * sq + beta2 * rl
    eps[~high] = gamma / den
    deps[~high] = -gamma * (0.5 * beta1 / sq + beta2) / den**2
    return eps, deps


def spin_interpolated_potential(n_up, n_dn, channel):
    r"""对给定的 :math:`\varepsilon_c^{0,1}(r_s)` 作 von Barth–Hedin 自旋插值并求势。

    .. math::
        \varepsilon_c = \varepsilon_c^0 + (\varepsilon_c^1 - \varepsilon_c^0) f(\zeta),\quad
        f(\zeta)=\frac{(1+\zeta)^{4/3}+(1-\zeta)^{4/3}-2}{2^{4/3}-2}.

    ``channel(rs, key)`` 返回 ``(eps, deps/drs)``，``key`` 为 ``"unpolarized"`` 或 ``"polarized"``。
    返回 ``(vc_up, vc_dn, e_c)``；零密度处势与能量均为 0。
    """
    up = np.clip(n_up, 0.0, None)
    dn = np.clip(n_dn, 0.0, None)
    n = up + dn
    vcu = np.zeros_like(n)
    vcd = np.zeros_like(n)
    e_c = np.zeros_like(n)
    mask = n > _TINY
    if not np.any(mask):
        return vcu, vcd, e_c

    nm = n[mask]
    rs = (3.0 / (4.0 * np.pi * nm)) ** (1.0 / 3.0)
    zeta = np.clip((up[mask] - dn[mask]) / nm, -1.0, 1.0)

    eps0, deps0 = channel(rs, "unpolarized")
    eps1, deps1 = channel(rs, "polarized")

    denom = 2.0 ** (4.0 / 3.0) - 2.0
    f = ((1.0 + zeta) ** (4.0 / 3.0) + (1.0 - zeta) ** (4.0 / 3.0) - 2.0) / denom
    fp = (4.0 / 3.0) * (np.cbrt(1.0 + zeta) - np.cbrt(1.0 - zeta)) / denom

    eps = eps0 + (eps1 - eps0) * f
    # n d(eps)/dn = -(rs/3) d(eps)/drs
    ndeps_dn = -(rs / 3.0) * (deps0 + (deps1 - deps0) * f)
    deps_dz = (eps1 - eps0) * fp

    vcu[mask] = eps + ndeps_dn + deps_dz * (1.0 - zeta)
    vcd[mask] = eps + ndeps_dn - deps_dz * (1.0 + zeta)
    e_c[mask] = nm * eps
    return vcu, vcd, e_c


def pz81_correlation(n_up: np.ndarray, n_dn: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Perdew–Zunger 1981 关联：返回 ``(vc_up, vc_dn, e_c)``。"""
    return spin_interpolated_potential(n_up, n_dn, _pz81_channel)
