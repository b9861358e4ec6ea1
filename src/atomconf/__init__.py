"""atomconf 包
=================

单中心（原子）自洽场参考解与角动量占据方案的贪心搜索。

- 有限差分径向基与积分（:mod:`atomconf.basis`）
- 占据模型：壳层容量、Aufbau 填充、密度与相邻占据（:mod:`atomconf.occupations`）
- Fock/能量求值与 DIIS/ADIIS 加速的 SCF（:mod:`atomconf.scf`）
- 组态搜索（:mod:`atomconf.search`）

注：本项目所有文档与注释均使用中文，Docstring 采用 Sphinx + NumPy 风格，公式使用 ``:math:`` 标记。
"""

from atomconf.basis import RadialBasis
from atomconf.configuration import (
    CandidateOutcome,
    Configuration,
    ConfigurationResult,
    EnergyComponents,
    rank_results,
)
from atomconf.exceptions import (
    AtomConfError,
    InvalidStateError,
    SCFConvergenceWarning,
    UnsupportedParameterError,
)
from atomconf.occupations import OrbitalChannel, shell_capacity
from atomconf.scf import SCFConfig, SCFSolver
from atomconf.search import ConfigurationSearch, SearchConfig, SearchResult

__all__ = [
    "RadialBasis",
    "OrbitalChannel",
    "shell_capacity",
    "Configuration",
    "ConfigurationResult",
    "CandidateOutcome",
    "EnergyComponents",
    "rank_results",
    "SCFConfig",
    "SCFSolver",
    "ConfigurationSearch",
    "SearchConfig",
    "SearchResult",
    "AtomConfError",
    "InvalidStateError",
    "UnsupportedParameterError",
    "SCFConvergenceWarning",
]

__version__ = "0.1.0"
