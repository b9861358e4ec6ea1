r"""自洽场求解
==========

单个组态的 SCF 状态机（每次迭代严格顺序执行）：

1. 由当前轨道与占据构造 Fock 矩阵与能量（:class:`~atomconf.fock.FockBuilder`）；
2. 送入 DIIS/ADIIS 历史，得到误差度量与外推后的 Fock 矩阵；
3. 收敛判据：误差 < ``convthr`` 且 :math:`|\Delta E|` < ``energythr``（缺省等于 ``convthr``），二者须同时满足
   （首次迭代 :math:`\Delta E` 未定义，视为不收敛）；
4. 轨道更新：误差 > ``diisthr`` 时对外推 Fock 矩阵施加虚轨道能级移动（或在 ``damping`` 设置时
   缩放占据-虚轨道耦合）后对角化，否则直接对角化。

超过 ``maxit`` 仍未收敛时发出 :class:`~atomconf.exceptions.SCFConvergenceWarning`，
保留最后一次迭代并标记 ``converged=False``。前置条件在第一次 Fock 构造之前检查。
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .basis import RadialBasis
from .configuration import Configuration, ConfigurationResult
from .diis import DIIS
from .exceptions import InvalidStateError, SCFConvergenceWarning, UnsupportedParameterError
from .fock import FockBuilder
from .linalg import total_density
from .occupations import OrbitalChannel
from .xc import validate_functional

__all__ = [
    "POTENTIAL_COLUMNS",
    "SCFConfig",
    "SCFSolver",
]

# 屏蔽势表的列顺序
POTENTIAL_COLUMNS = ("r", "rho", "drho", "lrho", "vcoul", "vxc", "weight", "Zeff")


@dataclass
class SCFConfig:
    r"""SCF 配置参数。

    Attributes
    ----------
    maxit : int
        最大迭代次数。
    shift : float
        虚轨道能级移动量（Hartree）。
    convthr : float
        DIIS 误差的收敛阈值。
    energythr : float | None
        能量变化的收敛阈值；缺省与 ``convthr`` 相同。
    dftthr : float
        局域 XC 的密度截断阈值。
    diiseps : float
        误差高于此值时只用 ADIIS。
    diisthr : float
        误差低于此值时只用 DIIS；同时是能级移动（或阻尼）更新的启用阈值。
    diisorder : int
        DIIS 历史容量。
    usediis, useadiis : bool
        是否启用 DIIS / ADIIS。
    damping : float | None
        若给定，远离收敛时用阻尼更新代替能级移动，数值为占据-虚轨道耦合的缩放因子 :math:`(0, 1]`。
    x_func, x_params, c_func, c_params
        交换与关联泛函，见 :mod:`atomconf.xc`。
    """

    maxit: int = 100
    shift: float = 1.0
    convthr: float = 1e-7
    energythr: float | None = None
    dftthr: float = 1e-12
    diiseps: float = 1e-2
    diisthr: float = 1e-3
    diisorder: int = 10
    usediis: bool = True
    useadiis: bool = True
    damping: float | None = None
    x_func: str = "hf"
    x_params: Tuple[float, ...] = ()
    c_func: str = "none"
    c_params: Tuple[float, ...] = ()

    def __post_init__(self):
        self.x_params = tuple(self.x_params)
        self.c_params = tuple(self.c_params)
        if self.maxit < 1:
            raise UnsupportedParameterError(f"maxit 必须为正，收到 {self.maxit}")
        if self.shift < 0.0:
            raise UnsupportedParameterError(f"能级移动不能为负，收到 {self.shift}")
        if not self.convthr > 0.0:
            raise UnsupportedParameterError(f"convthr 必须为正，收到 {self.convthr}")
        if self.energythr is None:
            self.energythr = self.convthr
        if not self.energythr > 0.0:
            raise UnsupportedParameterError(f"energythr 必须为正，收到 {self.energythr}")
        if self.dftthr < 0.0:
            raise UnsupportedParameterError(f"dftthr 不能为负，收到 {self.dftthr}")
        if not 0.0 < self.diisthr <= self.diiseps:
            raise UnsupportedParameterError(
                f"要求 0 < diisthr <= diiseps，收到 diisthr={self.diisthr}, diiseps={self.diiseps}"
            )
        if self.diisorder < 1:
            raise UnsupportedParameterError(f"diisorder 必须为正，收到 {self.diisorder}")
        if self.damping is not None and not 0.0 < self.damping <= 1.0:
            raise UnsupportedParameterError(f"阻尼因子必须位于 (0, 1]，收到 {self.damping}")
        validate_functional(self.x_func, self.x_params, self.c_func, self.c_params)


class SCFSolver:
    """组态 SCF 求解器。

    同一个求解器可以被多个线程同时用于不同的组态：它只持有只读的积分与配置，
    每次 :meth:`solve` 都新建自己的 DIIS 历史。

    Parameters
    ----------
    basis : RadialBasis
        径向基与积分服务。
    config : SCFConfig, optional
        迭代参数；缺省使用 :class:`SCFConfig` 的默认值。
    logger : logging.Logger, optional
        输出日志的对象；缺省为本模块的 logger。
    """

    def __init__(self, basis: RadialBasis, config: SCFConfig | None = None, logger: logging.Logger | None = None):
        self.basis = basis
        self.config = config if config is not None else SCFConfig()
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        cfg = self.config
        self.fock_builder = FockBuilder(basis, cfg.x_func, cfg.x_params, cfg.c_func, cfg.c_params, cfg.dftthr)
        self.S = basis.overlap()
        self.Sinvh = basis.Sinvh()

    def initialize(self, channel: OrbitalChannel) -> None:
        """用核哈密顿量 :math:`H_0 + \\ell(\\ell+1)T_\\ell` 的本征态初始化轨道。"""
        if channel.lmax < 0:
            raise InvalidStateError("通道的 lmax 尚未设置")
        if channel.lmax > self.basis.lmax:
            raise InvalidStateError(f"通道 lmax={channel.lmax} 超过基组的 lmax={self.basis.lmax}")
        channel.update_orbitals(self.fock_builder.core_hamiltonian(channel.lmax), self.Sinvh)

    def check_preconditions(self, conf: Configuration) -> None:
        """检查组态能否求解；不满足时抛出 :class:`InvalidStateError`。"""
        nspin = len(conf.channels)
        for ch in conf.channels:
            if nspin == 1 and not ch.restricted:
                raise InvalidStateError("自旋限制组态不能使用非限制轨道")
            if nspin == 2 and ch.restricted:
                raise InvalidStateError("自旋非限制组态不能使用限制轨道")
            if ch.lmax != conf.lmax:
                raise InvalidStateError("各自旋通道的 lmax 不一致")
            if not ch.orbitals_initialized:
                raise InvalidStateError("轨道尚未初始化")
            if ch.occs.size != ch.lmax + 1:
                raise InvalidStateError(f"占据向量长度 {ch.occs.size} 与 lmax+1={ch.lmax + 1} 不符")
            if ch.C.shape[:2] != (ch.lmax + 1, self.basis.Nbf()):
                raise InvalidStateError(f"轨道系数形状 {ch.C.shape} 与基组不符")
        if conf.lmax > self.basis.lmax:
            raise InvalidStateError(f"组态 lmax={conf.lmax} 超过基组的 lmax={self.basis.lmax}")
        if not any(ch.occupations_initialized for ch in conf.channels):
            raise InvalidStateError("占据尚未初始化（电子数为零）")

    def solve(self, conf: Configuration) -> ConfigurationResult:
        """对组态迭代至自洽；原地更新 ``conf`` 并返回其快照。"""
        self.check_preconditions(conf)
        cfg = self.config
        diis = DIIS(
            self.S,
            self.Sinvh,
            conf.lmax + 1,
            diiseps=cfg.diiseps,
            diisthr=cfg.diisthr,
            order=cfg.diisorder,
            usediis=cfg.usediis,
            useadiis=cfg.useadiis,
            logger=self.logger,
        )

        conf.converged = False
        conf.energy_history = []
        Eold = None
        for it in range(1, cfg.maxit + 1):
            energies, fock, dens = self.fock_builder.build(conf)
            conf.energies, conf.fock, conf.densities = energies, fock, dens
            E = energies.total
            conf.energy_history.append(E)

            err = diis.update(fock, dens, E)
            dE = float("inf") if Eold is None else E - Eold
            conf.iterations = it
            conf.diis_error = err
            self.logger.debug(
                "iter %3d  E = % .10f  dE = % .3e  DIIS error = %.3e", it, E, dE, err
            )

            if err < cfg.convthr and abs(dE) < cfg.energythr:
                conf.converged = True
                break

            Fext = diis.solve()
            for ch, F in zip(conf.channels, Fext):
                if err > cfg.diisthr:
                    if cfg.damping is not None:
                        ch.update_orbitals_damped(F, self.Sinvh, self.S, cfg.damping)
                    else:
                        ch.update_orbitals_shifted(F, self.Sinvh, self.S, cfg.shift)
                else:
                    ch.update_orbitals(F, self.Sinvh)
            Eold = E

        if not conf.converged:
            msg = (
                f"SCF for configuration {conf.describe()} did not converge in {cfg.maxit} iterations "
                f"(DIIS error {conf.diis_error:.3e})"
            )
            self.logger.warning(msg)
            warnings.warn(msg, SCFConvergenceWarning, stacklevel=2)

        self.logger.info(
            "Evaluated energy % .10f for configuration %s (%s)",
            conf.energies.total,
            conf.describe(),
            "converged" if conf.converged else "not converged",
        )
        return conf.freeze()

    # ------------------------------------------------------------------
    # 屏蔽势
    # ------------------------------------------------------------------
    def _screening_functional(self) -> tuple[str, tuple[float, ...]]:
        # 精确交换没有局域势，屏蔽势中以 Dirac 交换代替
        if self.config.x_func == "hf":
            return "slater", ()
        return self.config.x_func, self.config.x_params

    def _local_vxc(self, Pa: np.ndarray, Pb: np.ndarray | None = None) -> tuple[np.ndarray, np.ndarray]:
        x_func, x_params = self._screening_functional()
        v_a, v_b, _, _ = self.fock_builder.grid.eval_vxc(
            x_func, x_params, self.config.c_func, self.config.c_params, Pa, Pb, self.config.dftthr
        )
        return v_a, v_b

    def _potential_table(self, P, rho, grho, lrho, vxc) -> np.ndarray:
        r = self.basis.radii()
        vcoul = r * self.basis.coulomb_potential(P)
        vxc = r * vxc
        zeff = self.basis.charge() - (vcoul + vxc)
        return np.column_stack([r, rho, grho, lrho, vcoul, vxc, self.basis.quadrature_weights(), zeff])

    def _spin_densities(self, conf: Configuration) -> tuple[np.ndarray, ...]:
        for ch in conf.channels:
            if not ch.orbitals_initialized:
                raise InvalidStateError("轨道尚未初始化")
        return tuple(total_density(ch.density()) for ch in conf.channels)

    def _require_unrestricted(self, conf: Configuration) -> tuple[np.ndarray, np.ndarray]:
        if conf.is_restricted:
            raise InvalidStateError("需要自旋非限制组态")
        Pa, Pb = self._spin_densities(conf)
        return Pa, Pb

    def restricted_potential(self, conf: Configuration) -> np.ndarray:
        r"""自旋限制组态的屏蔽势表。

        返回形状 ``(nbf, 8)`` 的数组，各列依次为 :math:`r`、:math:`n`、:math:`n'`、:math:`\nabla^2 n`、
        :math:`r v_H`、:math:`r v_{xc}`、积分权重与 :math:`Z_{\rm eff} = Z - r(v_H + v_{xc})`。
        """
        if not conf.is_restricted:
            raise InvalidStateError("需要自旋限制组态")
        (P,) = self._spin_densities(conf)
        vxc, _ = self._local_vxc(P)
        b = self.basis
        return self._potential_table(
            P, b.electron_density(P), b.electron_density_gradient(P), b.electron_density_laplacian(P), vxc
        )

    def unrestricted_potential(self, conf: Configuration) -> np.ndarray:
        """自旋非限制组态：XC 势取两自旋势的算术平均。"""
        Pa, Pb = self._require_unrestricted(conf)
        P = Pa + Pb
        v_a, v_b = self._local_vxc(Pa, Pb)
        b = self.basis
        self.logger.debug("Electron count by quadrature: %.10f", float(np.sum(b.radial_density(P) * b.w)))
        return self._potential_table(
            P, b.electron_density(P), b.electron_density_gradient(P), b.electron_density_laplacian(P),
            0.5 * (v_a + v_b),
        )

    def average_potential(self, conf: Configuration) -> np.ndarray:
        """自旋非限制组态：XC 势按总密度的自旋限制泛函计算。"""
        Pa, Pb = self._require_unrestricted(conf)
        P = Pa + Pb
        vxc, _ = self._local_vxc(P)
        b = self.basis
        return self._potential_table(
            P, b.electron_density(P), b.electron_density_gradient(P), b.electron_density_laplacian(P), vxc
        )

    def weighted_potential(self, conf: Configuration) -> np.ndarray:
        """自旋非限制组态：XC 势按自旋密度加权平均，低密度区置零。"""
        Pa, Pb = self._require_unrestricted(conf)
        P = Pa + Pb
        v_a, v_b = self._local_vxc(Pa, Pb)
        b = self.basis
        na = b.electron_density(Pa)
        nb = b.electron_density(Pb)
        n = na + nb
        vxc = np.zeros_like(n)
        big = n >= self.config.dftthr
        vxc[big] = (v_a[big] * na[big] + v_b[big] * nb[big]) / n[big]
        return self._potential_table(
            P, n, b.electron_density_gradient(P), b.electron_density_laplacian(P), vxc
        )

    def nuclear_density(self, conf: Configuration | ConfigurationResult) -> float:
        """原子核处的电子数密度 :math:`n(0)`。"""
        if isinstance(conf, ConfigurationResult):
            conf = conf.to_configuration()
        return self.basis.nuclear_density(sum(self._spin_densities(conf)))
