r"""角动量耦合系数

球对称平均下的非局域交换通过多极展开表示：

.. math::

    \frac{1}{|\mathbf{r} - \mathbf{r}'|} = \sum_{k=0}^\infty \frac{4\pi}{2k+1}
    \frac{r_<^k}{r_>^{k+1}} \sum_{q=-k}^k Y_{kq}(\hat{r}) Y_{kq}^*(\hat{r}')

对 :math:`\ell'` 壳层内 m 平均占据的同自旋电子，作用在 :math:`\ell` 通道上的交换算子为

.. math::

    K_\ell[u](r) = -\sum_{\ell'} N_{\ell'} \sum_k
    \begin{pmatrix} \ell & k & \ell' \\ 0 & 0 & 0 \end{pmatrix}^2
    \int \frac{r_<^k}{r_>^{k+1}} u_{\ell'}(r') u(r')\,dr'\; u_{\ell'}(r),

其中 :math:`N_{\ell'}` 为该壳层的电子数。k 的取值满足三角条件与奇偶性。

References
----------
.. [Cowan] Cowan, R. D. (1981) "The Theory of Atomic Structure and Spectra",
   University of California Press, Chapter 6.
"""

from __future__ import annotations

from functools import lru_cache

from sympy.physics.wigner import wigner_3j as _sympy_wigner_3j

__all__ = [
    "allowed_k_values",
    "wigner_3j_squared",
    "exchange_couplings",
]


def allowed_k_values(l: int, l_prime: int) -> list[int]:
    r"""满足 :math:`|\ell-\ell'| \le k \le \ell+\ell'` 且 :math:`\ell+\ell'+k` 为偶数的 k。"""
    if l < 0 or l_prime < 0:
        raise ValueError("角动量必须为非负整数")
    return [k for k in range(abs(l - l_prime), l + l_prime + 1) if (l + l_prime + k) % 2 == 0]


@lru_cache(maxsize=None)
def wigner_3j_squared(l: int, k: int, l_prime: int) -> float:
    """Wigner-3j 系数 (l k l'; 0 0 0) 的平方（sympy 标准相位，转为浮点）。"""
    return float(_sympy_wigner_3j(l, k, l_prime, 0, 0, 0)) ** 2


def exchange_couplings(l: int, l_prime: int) -> list[tuple[int, float]]:
    """返回 ``(k, (l k l'; 0 0 0)^2)`` 列表，仅含非零项。

    Examples
    --------
    >>> exchange_couplings(0, 0)
    [(0, 1.0)]
    >>> exchange_couplings(1, 1)   # 1/3 与 2/15
    [(0, 0.333...), (2, 0.1333...)]
    """
    return [(k, wigner_3j_squared(l, k, l_prime)) for k in allowed_k_values(l, l_prime)]
