r"""组态搜索
========

在占据方案的邻接图上做贪心局部搜索：

1. 取显式给定或 Aufbau 得到的初始占据，求解；
2. 生成当前最优组态的所有相邻占据（:meth:`OrbitalChannel.neighbors`；自旋非限制时取 alpha 与 beta
   相邻方案的笛卡尔积），去掉整个搜索中已经尝试过的方案；
3. 每个候选从当前组态轨道的独立副本出发，由线程池并行求解；
4. 按（是否收敛，总能量）排序，除最优者外的结果释放轨道副本；若最优者不是当前组态则以其为新起点回到第 2 步，否则停止。

单个候选的前置条件或参数错误只会使该候选失败（记录在 :class:`CandidateOutcome` 中），不会中断其余候选。
"""

from __future__ import annotations

import itertools
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Sequence

from .configuration import (
    CandidateOutcome,
    Configuration,
    ConfigurationResult,
    rank_results,
)
from .exceptions import AtomConfError, InvalidStateError, UnsupportedParameterError
from .occupations import OrbitalChannel
from .scf import SCFSolver

__all__ = [
    "SearchConfig",
    "SearchResult",
    "ConfigurationSearch",
]


@dataclass
class SearchConfig:
    """搜索参数。

    Attributes
    ----------
    max_workers : int
        并行求解候选组态的线程数；1 表示在当前线程中依次求解。
    max_steps : int
        最多扩展的步数。
    keep_unconverged : bool
        为 ``False`` 时未收敛的候选不会被采纳为新的起点（仍记录在结果中）。
    """

    max_workers: int = 4
    max_steps: int = 50
    keep_unconverged: bool = True

    def __post_init__(self):
        if self.max_workers < 1:
            raise UnsupportedParameterError(f"max_workers 必须为正，收到 {self.max_workers}")
        if self.max_steps < 1:
            raise UnsupportedParameterError(f"max_steps 必须为正，收到 {self.max_steps}")


@dataclass
class SearchResult:
    """搜索结果：最优组态与全部尝试过的候选。"""

    best: ConfigurationResult
    explored: list[CandidateOutcome] = field(default_factory=list)
    steps: int = 0

    @property
    def failures(self) -> list[CandidateOutcome]:
        return [o for o in self.explored if not o.ok]

    @property
    def results(self) -> list[ConfigurationResult]:
        return [o.result for o in self.explored if o.ok]


class ConfigurationSearch:
    """贪心组态搜索驱动。

    Parameters
    ----------
    solver : SCFSolver
        单组态求解器（线程间共享，只读）。
    config : SearchConfig, optional
        搜索参数。
    logger : logging.Logger, optional
        输出日志的对象。
    """

    def __init__(self, solver: SCFSolver, config: SearchConfig | None = None, logger: logging.Logger | None = None):
        self.solver = solver
        self.config = config if config is not None else SearchConfig()
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def seed(
        self,
        nel: int,
        lmax: int,
        restricted: bool = True,
        occs: Sequence[Sequence[int]] | None = None,
        nalpha: int | None = None,
    ) -> Configuration:
        """构造初始组态：轨道取核哈密顿量本征态，占据为显式给定或 Aufbau。

        自旋非限制时 ``occs`` 为 ``(alpha, beta)`` 两个占据向量；
        若未给出，alpha 电子数缺省为 :math:`\\lceil N/2 \\rceil`。
        """
        if nel < 1:
            raise InvalidStateError(f"电子数必须为正，收到 {nel}")
        if restricted:
            counts = [nel]
        else:
            na = math.ceil(nel / 2) if nalpha is None else int(nalpha)
            if not 0 <= na <= nel:
                raise InvalidStateError(f"alpha 电子数 {na} 超出范围 [0, {nel}]")
            counts = [na, nel - na]

        if occs is not None and len(occs) != len(counts):
            raise InvalidStateError(f"需要 {len(counts)} 个占据向量，收到 {len(occs)}")

        channels = []
        for i, n in enumerate(counts):
            ch = OrbitalChannel(restricted, lmax)
            self.solver.initialize(ch)
            if occs is None:
                ch.aufbau(n)
            else:
                ch.set_occs(occs[i])
            channels.append(ch)

        conf = Configuration(channels)
        if occs is not None and conf.n_electrons != nel:
            raise InvalidStateError(f"占据向量之和 {conf.n_electrons} 与电子数 {nel} 不符")
        return conf

    def neighbors(self, result: ConfigurationResult) -> list[Configuration]:
        """由求解结果派生的所有相邻组态（各自持有独立的轨道副本）。"""
        channels = result.channels()
        if len(channels) == 1:
            return [Configuration([ch]) for ch in channels[0].neighbors()]
        alpha, beta = channels
        return [
            Configuration([a.copy(), b.copy()])
            for a, b in itertools.product(alpha.neighbors(), beta.neighbors())
        ]

    def _solve_one(self, conf: Configuration) -> CandidateOutcome:
        key = conf.key()
        try:
            result = self.solver.solve(conf)
        except AtomConfError as exc:
            self.logger.warning("Configuration %s failed: %s", conf.describe(), exc)
            return CandidateOutcome(key=key, error=exc)
        return CandidateOutcome(key=key, result=result)

    def solve_all(self, candidates: Sequence[Configuration]) -> list[CandidateOutcome]:
        """并行求解一组候选，结果顺序与输入一致。"""
        if self.config.max_workers == 1 or len(candidates) <= 1:
            return [self._solve_one(conf) for conf in candidates]
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            return list(pool.map(self._solve_one, candidates))

    def run(
        self,
        nel: int,
        lmax: int,
        restricted: bool = True,
        occs: Sequence[Sequence[int]] | None = None,
        nalpha: int | None = None,
    ) -> SearchResult:
        """从初始组态出发做贪心搜索，返回局部最优组态。

        初始组态自身的求解错误直接抛出；相邻候选的错误只记录。
        """
        conf = self.seed(nel, lmax, restricted, occs, nalpha)
        self.logger.info("Seed configuration %s", conf.describe())
        current = self.solver.solve(conf)

        visited = {current.occupations}
        explored = [CandidateOutcome(key=current.occupations, result=current)]
        steps = 0
        while steps < self.config.max_steps:
            steps += 1
            candidates = []
            for cand in self.neighbors(current):
                key = cand.key()
                if key in visited:
                    continue
                visited.add(key)
                candidates.append(cand)
            self.logger.info("Step %d: %d new candidate configurations", steps, len(candidates))

            outcomes = self.solve_all(candidates)
            explored.extend(outcomes)
            pool = [current] + [
                o.result for o in outcomes if o.ok and (self.config.keep_unconverged or o.result.converged)
            ]
            best = rank_results(pool)[0]
            explored = [_release_orbitals(o, best) for o in explored]
            if best is current:
                break
            self.logger.info(
                "Step %d: adopting configuration %s with energy % .10f",
                steps,
                best.occupations,
                best.total_energy,
            )
            current = best
        else:
            self.logger.warning("Configuration search stopped after %d steps", steps)

        self.logger.info(
            "Best configuration %s, energy % .10f", current.occupations, current.total_energy
        )
        return SearchResult(best=current, explored=explored, steps=steps)


def _release_orbitals(outcome: CandidateOutcome, keep: ConfigurationResult) -> CandidateOutcome:
    """除 ``keep`` 外的结果只保留能量与占据，释放轨道副本。"""
    if outcome.result is None or outcome.result is keep or not outcome.result.has_orbitals:
        return outcome
    return replace(outcome, result=outcome.result.without_orbitals())
