r"""组态与结果
==========

:class:`Configuration` 持有一个（自旋限制）或两个（alpha, beta，自旋非限制）
:class:`~atomconf.occupations.OrbitalChannel`，以及当前迭代的 Fock 立方体、密度立方体与能量分量。
限制/非限制只由通道个数决定，Fock 构造与 SCF 循环共用同一条路径。

求解结束后 :meth:`Configuration.freeze` 生成不可变快照 :class:`ConfigurationResult`；
搜索驱动只在结果之间排序。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

import numpy as np

from .exceptions import AtomConfError, InvalidStateError
from .occupations import OrbitalChannel

__all__ = [
    "EnergyComponents",
    "Configuration",
    "ConfigurationResult",
    "CandidateOutcome",
    "ranking_key",
    "rank_results",
]

OccupationKey = tuple[tuple[int, ...], ...]


@dataclass(frozen=True)
class EnergyComponents:
    """能量分量（Hartree）。``xc`` 包含精确交换与局域交换关联。"""

    kinetic: float
    nuclear: float
    coulomb: float
    xc: float

    @property
    def total(self) -> float:
        return self.kinetic + self.nuclear + self.coulomb + self.xc

    def as_dict(self) -> dict:
        return {
            "E_kin": self.kinetic,
            "E_nuc": self.nuclear,
            "E_coul": self.coulomb,
            "E_xc": self.xc,
            "E_total": self.total,
        }


class Configuration:
    """一个候选占据方案及其 SCF 迭代状态。

    Parameters
    ----------
    channels : Sequence[OrbitalChannel]
        一个自旋限制通道，或 alpha 与 beta 两个自旋非限制通道。
    """

    def __init__(self, channels: Sequence[OrbitalChannel]):
        channels = tuple(channels)
        if len(channels) not in (1, 2):
            raise InvalidStateError(f"组态须包含 1 或 2 个自旋通道，收到 {len(channels)}")
        self.channels = channels
        self.fock: tuple[np.ndarray, ...] | None = None
        self.densities: tuple[np.ndarray, ...] | None = None
        self.energies: EnergyComponents | None = None
        self.converged = False
        self.iterations = 0
        self.diis_error = float("inf")
        self.energy_history: list[float] = []

    @classmethod
    def restricted(cls, occs, lmax: int) -> "Configuration":
        return cls([OrbitalChannel(True, lmax, occs)])

    @classmethod
    def unrestricted(cls, occa, occb, lmax: int) -> "Configuration":
        return cls([OrbitalChannel(False, lmax, occa), OrbitalChannel(False, lmax, occb)])

    @property
    def is_restricted(self) -> bool:
        return len(self.channels) == 1

    @property
    def lmax(self) -> int:
        return self.channels[0].lmax

    @property
    def n_electrons(self) -> int:
        return sum(ch.n_electrons for ch in self.channels)

    def key(self) -> OccupationKey:
        return tuple(ch.key() for ch in self.channels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Configuration):
            return NotImplemented
        return self.key() == other.key()

    __hash__ = None

    def __repr__(self) -> str:
        return f"Configuration({list(map(list, self.key()))}, converged={self.converged})"

    def describe(self) -> str:
        """人类可读的占据描述，如 ``[2 1] [2 0]``。"""
        return " ".join("[" + " ".join(str(n) for n in k) + "]" for k in self.key())

    def copy(self) -> "Configuration":
        """只复制通道（迭代状态不复制）。"""
        return Configuration([ch.copy() for ch in self.channels])

    def freeze(self) -> "ConfigurationResult":
        if self.energies is None:
            raise InvalidStateError("组态尚未求解，无法生成结果")
        return ConfigurationResult(
            occupations=self.key(),
            restricted=self.is_restricted,
            energies=self.energies,
            orbital_energies=tuple(ch.E.copy() for ch in self.channels),
            iterations=self.iterations,
            diis_error=self.diis_error,
            energy_history=tuple(self.energy_history),
            converged=self.converged,
            _channels=tuple(ch.copy() for ch in self.channels),
        )


@dataclass(frozen=True)
class ConfigurationResult:
    """一次组态求解的不可变快照。

    ``energy_history[0]`` 为初猜（核哈密顿量轨道）对应的能量。
    """

    occupations: OccupationKey
    restricted: bool
    energies: EnergyComponents
    orbital_energies: tuple[np.ndarray, ...] = field(compare=False)
    iterations: int
    diis_error: float
    energy_history: tuple[float, ...]
    converged: bool
    _channels: tuple[OrbitalChannel, ...] = field(default=(), repr=False, compare=False)

    @property
    def total_energy(self) -> float:
        return self.energies.total

    @property
    def n_electrons(self) -> int:
        return sum(sum(k) for k in self.occupations)

    @property
    def has_orbitals(self) -> bool:
        return bool(self._channels)

    def channels(self) -> tuple[OrbitalChannel, ...]:
        """最终轨道的独立副本（用于派生相邻组态或输出）。"""
        if not self._channels:
            raise InvalidStateError(f"组态 {self.occupations} 的轨道已释放")
        return tuple(ch.copy() for ch in self._channels)

    def without_orbitals(self) -> "ConfigurationResult":
        """丢弃轨道后的快照；能量与占据信息保持不变。"""
        return replace(self, _channels=())

    def to_configuration(self) -> Configuration:
        return Configuration(self.channels())

    def characterize(self) -> list[str]:
        return [ch.characterize() for ch in self._channels]


@dataclass(frozen=True)
class CandidateOutcome:
    """单个候选组态的求解结局：成功时 ``result`` 非空，失败时 ``error`` 非空。"""

    key: OccupationKey
    result: ConfigurationResult | None = None
    error: AtomConfError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


def ranking_key(result: ConfigurationResult) -> tuple[bool, float]:
    """已收敛者在前；收敛状态相同时总能量低者在前。"""
    return (not result.converged, result.total_energy)


def rank_results(results: Iterable[ConfigurationResult]) -> list[ConfigurationResult]:
    return sorted(results, key=ranking_key)
