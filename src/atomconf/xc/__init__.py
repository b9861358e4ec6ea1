"""交换关联泛函
==============

按标识符选择泛函：

交换（``x_func``）

- ``"none"``：无交换（Hartree 近似）。
- ``"slater"``：Slater X-alpha 局域交换，参数 ``(alpha,)``，缺省 ``alpha=2/3``（Dirac）。
- ``"hf"``：精确（Hartree–Fock）交换，参数 ``(fraction,)``，缺省为 1；
  ``fraction < 1`` 时其余部分由 Dirac 交换补足（全局杂化）。

关联（``c_func``）

- ``"none"``、``"pz81"``、``"vwn"``；均不接受参数。
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..exceptions import UnsupportedParameterError
from .constants import DIRAC_ALPHA
from .lda import pz81_correlation, slater_exchange
from .vwn import vwn5_correlation

__all__ = [
    "EXCHANGE_FUNCTIONALS",
    "CORRELATION_FUNCTIONALS",
    "validate_functional",
    "exact_exchange_fraction",
    "has_local_part",
    "eval_xc_density",
]

EXCHANGE_FUNCTIONALS = ("none", "slater", "hf")
CORRELATION_FUNCTIONALS = {
    "none": None,
    "pz81": pz81_correlation,
    "vwn": vwn5_correlation,
}


def validate_functional(
    x_func: str, x_params: Sequence[float], c_func: str, c_params: Sequence[float]
) -> None:
    """检查泛函标识与参数；不合法时抛出 :class:`UnsupportedParameterError`。"""
    if x_func not in EXCHANGE_FUNCTIONALS:
        raise UnsupportedParameterError(f"未知交换泛函 {x_func!r}，可选 {EXCHANGE_FUNCTIONALS}")
    if c_func not in CORRELATION_FUNCTIONALS:
        raise UnsupportedParameterError(
            f"未知关联泛函 {c_func!r}，可选 {tuple(CORRELATION_FUNCTIONALS)}"
        )
    if x_func == "none" and len(x_params):
        raise UnsupportedParameterError("交换泛函 'none' 不接受参数")
    if len(x_params) > 1:
        raise UnsupportedParameterError(f"交换泛函 {x_func!r} 至多接受 1 个参数，收到 {len(x_params)}")
    if x_func == "slater" and len(x_params) and not x_params[0] > 0.0:
        raise UnsupportedParameterError(f"X-alpha 参数必须为正，收到 {x_params[0]}")
    if x_func == "hf" and len(x_params) and not 0.0 <= x_params[0] <= 1.0:
        raise UnsupportedParameterError(f"精确交换比例必须位于 [0, 1]，收到 {x_params[0]}")
    if len(c_params):
        raise UnsupportedParameterError(f"关联泛函 {c_func!r} 不接受参数")


def exact_exchange_fraction(x_func: str, x_params: Sequence[float]) -> float:
    if x_func != "hf":
        return 0.0
    return float(x_params[0]) if len(x_params) else 1.0


def _local_exchange(x_func: str, x_params: Sequence[float]) -> tuple[float, float]:
    """返回局域交换的 ``(alpha, 比例)``。"""
    if x_func == "slater":
        return (float(x_params[0]) if len(x_params) else DIRAC_ALPHA), 1.0
    if x_func == "hf":
        return DIRAC_ALPHA, 1.0 - exact_exchange_fraction(x_func, x_params)
    return DIRAC_ALPHA, 0.0


def has_local_part(x_func: str, x_params: Sequence[float], c_func: str) -> bool:
    """是否需要在网格上求局域 XC。"""
    return _local_exchange(x_func, x_params)[1] != 0.0 or c_func != "none"


def eval_xc_density(
    x_func: str,
    x_params: Sequence[float],
    c_func: str,
    c_params: Sequence[float],
    n_up: np.ndarray,
    n_dn: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """在网格点上求局域 XC：返回 ``(v_up, v_dn, e_xc)``（精确交换部分不在此处）。"""
    validate_functional(x_func, x_params, c_func, c_params)
    v_up = np.zeros_like(n_up, dtype=float)
    v_dn = np.zeros_like(n_dn, dtype=float)
    e_xc = np.zeros_like(n_up, dtype=float)

    alpha, scale = _local_exchange(x_func, x_params)
    if scale != 0.0:
        vx_up, vx_dn, e_x = slater_exchange(n_up, n_dn, alpha)
        v_up += scale * vx_up
        v_dn += scale * vx_dn
        e_xc += scale * e_x

    corr = CORRELATION_FUNCTIONALS[c_func]
    if corr is not None:
        vc_up, vc_dn, e_c = corr(n_up, n_dn)
        v_up += vc_up
        v_dn += vc_dn
        e_xc += e_c

    return v_up, v_dn, e_xc
