"""
异常与警告
==========

配置搜索与 SCF 过程中使用的错误类型。

- :class:`InvalidStateError`：前置条件不满足（轨道未初始化、占据向量长度不符、
  限制性/非限制性不匹配等），对单个组态是致命的。
- :class:`UnsupportedParameterError`：参数超出支持范围（有限差分阶数、泛函标识、阈值等），
  在任何迭代开始之前抛出。
- :class:`SCFConvergenceWarning`：迭代次数耗尽但未收敛，仅作警告，结果仍可用。
"""

from __future__ import annotations

__all__ = [
    "AtomConfError",
    "InvalidStateError",
    "UnsupportedParameterError",
    "SCFConvergenceWarning",
]


class AtomConfError(Exception):
    """本包所有致命错误的基类（搜索驱动据此捕获并剔除单个候选组态）。"""


class InvalidStateError(AtomConfError, ValueError):
    def __init__(self, msg: str) -> None:
        self.message = msg
        super().__init__(self.message)


class UnsupportedParameterError(AtomConfError, ValueError):
    def __init__(self, msg: str) -> None:
        self.message = msg
        super().__init__(self.message)


class SCFConvergenceWarning(RuntimeWarning):
    """
    SCF 未在最大迭代数内收敛时发出的警告。
    """
