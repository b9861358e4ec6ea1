"""XC 常量
========

LSDA 关联泛函参数集中维护。

- PZ81：Perdew & Zunger, Phys. Rev. B 23, 5048 (1981)
- VWN5：Vosko, Wilk, Nusair, Can. J. Phys. 58, 1200 (1980)
"""

from __future__ import annotations

# (A, B, C, D, gamma, beta1, beta2)
PZ81_PARAMS = {
    "unpolarized": (0.0311, -0.048, 0.0020, -0.0116, -0.1423, 1.0529, 0.3334),
    "polarized": (0.01555, -0.0269, 0.0007, -0.0048, -0.0843, 1.3981, 0.2611),
}

# (A, x0, b, c)
VWN5_PARAMS = {
    "unpolarized": (0.0310907, -0.10498, 3.72744, 12.9352),
    "polarized": (0.01554535, -0.32500, 7.06042, 18.0578),
}

# Dirac 交换对应的 Slater X-alpha 参数
DIRAC_ALPHA = 2.0 / 3.0
