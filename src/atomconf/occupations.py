r"""轨道通道与占据模型
====================

:class:`OrbitalChannel` 按角动量通道 :math:`\ell = 0,\dots,\ell_{\max}` 保存

- 轨道系数立方体 ``C``，形状 ``(lmax+1, nbf, nmo)``；
- 轨道能量表 ``E``，形状 ``(lmax+1, nmo)``；
- 整数占据向量 ``occs``，长度 ``lmax+1``（通道内电子总数）。

同一通道内的径向壳层按能量表顺序（即径向量子数）依次填充，每个壳层最多容纳
:func:`shell_capacity` 个电子；最后一个壳层可以部分填充，此时其分数占据为
剩余电子数与壳层容量之比。

``C`` 与 ``E`` 总是最近一次对角化的结果；占据改变后它们即视为过期，直到下一次求解。
派生组态（:meth:`OrbitalChannel.neighbors`）均为深拷贝，任何两个通道都不共享系数数组。
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .exceptions import InvalidStateError
from .linalg import eig_gsym

__all__ = [
    "SHELL_TYPES",
    "shell_capacity",
    "ShellOccupation",
    "OrbitalChannel",
]

SHELL_TYPES = "spdfghik"


def shell_capacity(l: int, restricted: bool) -> int:
    r"""单个径向壳层的容量：自旋限制 :math:`4\ell+2`，非限制（单自旋）:math:`2\ell+1`。"""
    if l < 0:
        raise ValueError(f"角动量必须非负，收到 l={l}")
    return 4 * l + 2 if restricted else 2 * l + 1


@dataclass(frozen=True, order=True)
class ShellOccupation:
    """一个被占据的径向壳层（按能量排序）。"""

    energy: float
    n: int
    l: int
    nocc: int

    @property
    def label(self) -> str:
        return f"{self.n}{SHELL_TYPES[self.l]}"


class OrbitalChannel:
    """单一自旋通道（或自旋限制下的全部电子）的轨道与占据。

    Parameters
    ----------
    restricted : bool
        ``True`` 表示每个空间轨道容纳两个自旋相反的电子。
    lmax : int, optional
        最大角动量；``-1`` 表示尚未设置。
    occs : array_like, optional
        初始占据向量。
    """

    def __init__(self, restricted: bool, lmax: int = -1, occs=None):
        self.restricted = bool(restricted)
        self.lmax = int(lmax)
        self.C: np.ndarray | None = None
        self.E: np.ndarray | None = None
        self.occs = np.zeros(max(self.lmax + 1, 0), dtype=int)
        if occs is not None:
            self.set_occs(occs)

    # ------------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------------
    @property
    def orbitals_initialized(self) -> bool:
        return self.C is not None and self.C.size > 0

    @property
    def occupations_initialized(self) -> bool:
        return self.n_electrons != 0

    @property
    def n_electrons(self) -> int:
        return int(np.sum(self.occs))

    def set_occs(self, occs) -> None:
        occs = np.array(occs, dtype=int).ravel()
        if np.any(occs < 0):
            raise InvalidStateError(f"占据数不能为负: {occs.tolist()}")
        self.occs = occs

    def shell_capacity(self, l: int) -> int:
        return shell_capacity(l, self.restricted)

    def key(self) -> tuple[int, ...]:
        """占据向量的可哈希表示。"""
        return tuple(int(x) for x in self.occs)

    def copy(self) -> "OrbitalChannel":
        """深拷贝（系数、能量与占据各自独立）。"""
        new = OrbitalChannel(self.restricted, self.lmax)
        new.occs = self.occs.copy()
        new.C = None if self.C is None else self.C.copy()
        new.E = None if self.E is None else self.E.copy()
        return new

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrbitalChannel):
            return NotImplemented
        return self.key() == other.key()

    __hash__ = None

    def __repr__(self) -> str:
        kind = "restricted" if self.restricted else "unrestricted"
        return f"OrbitalChannel({kind}, lmax={self.lmax}, occs={list(self.key())})"

    # ------------------------------------------------------------------
    # 壳层填充
    # ------------------------------------------------------------------
    def _nmo(self) -> int:
        if self.C is not None:
            return self.C.shape[2]
        if self.E is not None:
            return self.E.shape[1]
        return 0

    def _shell_fill(self, l: int) -> list[int]:
        """通道 ``l`` 中按径向序依次填充的各壳层电子数（仅含非零项）。"""
        numl = int(self.occs[l])
        cap = self.shell_capacity(l)
        fill = []
        for _ in range(self._nmo()):
            nocc = min(cap, numl)
            if nocc == 0:
                break
            fill.append(nocc)
            numl -= nocc
        if numl > 0:
            raise InvalidStateError(
                f"通道 l={l} 的 {self.occs[l]} 个电子无法放入 {self._nmo()} 个径向轨道"
            )
        return fill

    def count_occupied(self, l: int) -> int:
        """通道 ``l`` 中（完全或部分）占据的壳层个数。"""
        return len(self._shell_fill(l))

    def density(self) -> np.ndarray:
        r"""按电子数加权的密度立方体 :math:`P_\ell = \sum_{i} n_{\ell i} c_{\ell i} c_{\ell i}^T`。

        满壳层 :math:`n_{\ell i}` 等于壳层容量，最后一个部分占据壳层为剩余电子数，
        即容量乘以分数占据。于是 :math:`\sum_\ell \mathrm{tr}(P_\ell S)` 等于通道电子数。
        """
        if not self.orbitals_initialized:
            raise InvalidStateError("轨道尚未初始化，无法构造密度")
        nl, nbf, _ = self.C.shape
        P = np.zeros((nl, nbf, nbf))
        for l in range(nl):
            for io, nocc in enumerate(self._shell_fill(l)):
                c = self.C[l][:, io]
                P[l] += nocc * np.outer(c, c)
        return P

    def angular_density(self) -> np.ndarray:
        r"""按分数占据 :math:`f = n_{\ell i}/\mathrm{cap}(\ell)` 加权的密度立方体（每个 m 分量的平均密度）。"""
        if not self.orbitals_initialized:
            raise InvalidStateError("轨道尚未初始化，无法构造密度")
        nl, nbf, _ = self.C.shape
        P = np.zeros((nl, nbf, nbf))
        for l in range(nl):
            cap = self.shell_capacity(l)
            for io, nocc in enumerate(self._shell_fill(l)):
                c = self.C[l][:, io]
                P[l] += (nocc / cap) * np.outer(c, c)
        return P

    def aufbau(self, nel: int) -> None:
        """按轨道能量从低到高贪心填充 ``nel`` 个电子，重写占据向量。

        能量相同时保持能量表顺序（先 l 后径向序号）。
        """
        if self.E is None or self.E.size == 0:
            raise InvalidStateError("轨道能量表为空，无法进行 Aufbau 填充")
        if nel < 0:
            raise InvalidStateError(f"电子数不能为负: {nel}")

        nl, nmo = self.E.shape
        energies = self.E.ravel()
        lval = np.repeat(np.arange(nl), nmo)
        order = np.argsort(energies, kind="stable")

        occs = np.zeros(max(self.lmax + 1, nl), dtype=int)
        remaining = int(nel)
        for idx in order:
            if remaining == 0:
                break
            l = int(lval[idx])
            nocc = min(self.shell_capacity(l), remaining)
            occs[l] += nocc
            remaining -= nocc
        if remaining > 0:
            raise InvalidStateError(f"轨道不足，尚有 {remaining} 个电子无法填充")
        self.occs = occs

    def neighbors(self) -> list["OrbitalChannel"]:
        """把 ``nmove`` 个电子从一个通道移到另一个通道得到的所有试探组态。

        对每对 ``(l_from, l_to)``（允许相同，即包含恒等移动）与
        ``1 <= nmove <= min(cap(l_from), cap(l_to))``，若 ``occs[l_from] >= nmove`` 则生成一个副本。
        恒等移动保证了完全自旋极化时 beta 通道仍有候选。
        若无电子可移动，则返回唯一一个占据全为零的副本。
        """
        ret = []
        for lf in range(self.lmax + 1):
            for lt in range(self.lmax + 1):
                nmax = min(self.shell_capacity(lf), self.shell_capacity(lt))
                for nmove in range(1, nmax + 1):
                    if self.occs[lf] < nmove:
                        continue
                    new = self.copy()
                    new.occs[lf] -= nmove
                    new.occs[lt] += nmove
                    ret.append(new)

        if not ret:
            new = self.copy()
            new.occs = np.zeros(self.lmax + 1, dtype=int)
            ret.append(new)
        return ret

    # ------------------------------------------------------------------
    # 轨道更新
    # ------------------------------------------------------------------
    def _check_fock(self, F: np.ndarray) -> None:
        if F.ndim != 3 or F.shape[0] != self.lmax + 1:
            raise InvalidStateError(f"Fock 立方体形状 {F.shape} 与 lmax={self.lmax} 不符")

    def update_orbitals(self, F: np.ndarray, Sinvh: np.ndarray) -> None:
        """对每个 l 通道的 Fock 矩阵直接对角化。"""
        self._check_fock(F)
        E, C = zip(*(eig_gsym(F[l], Sinvh) for l in range(self.lmax + 1)))
        self.E = np.stack(E)
        self.C = np.stack(C)

    def update_orbitals_shifted(self, F: np.ndarray, Sinvh: np.ndarray, S: np.ndarray, shift: float) -> None:
        r"""对虚轨道施加能级移动后再对角化。

        移动算子 :math:`\Delta\, S C_v C_v^T S` 只作用于当前虚轨道子空间，
        占据轨道的能量与形状不受影响。
        """
        self._check_fock(F)
        if not self.orbitals_initialized:
            raise InvalidStateError("能级移动需要已有的轨道")
        E, C = [], []
        for l in range(self.lmax + 1):
            Fl = F[l]
            nsh = self.count_occupied(l)
            if nsh:
                Cv = self.C[l][:, nsh:]
                Fl = Fl + shift * (S @ Cv @ Cv.T @ S)
            El, Cl = eig_gsym(Fl, Sinvh)
            E.append(El)
            C.append(Cl)
        self.E = np.stack(E)
        self.C = np.stack(C)

    def update_orbitals_damped(self, F: np.ndarray, Sinvh: np.ndarray, S: np.ndarray, dampov: float) -> None:
        r"""在当前分子轨道基下缩放占据-虚轨道耦合块后再对角化。

        .. math::
            F^{MO} = C^T F C,\quad F^{MO}_{ov} \leftarrow \lambda F^{MO}_{ov},\quad
            F \leftarrow S C F^{MO} C^T S.
        """
        self._check_fock(F)
        if not self.orbitals_initialized:
            raise InvalidStateError("阻尼更新需要已有的轨道")
        E, C = [], []
        for l in range(self.lmax + 1):
            Fl = F[l]
            nsh = self.count_occupied(l)
            Cl = self.C[l]
            if nsh:
                Fmo = Cl.T @ Fl @ Cl
                Fmo[:nsh, nsh:] *= dampov
                Fmo[nsh:, :nsh] *= dampov
                SC = S @ Cl
                Fl = SC @ Fmo @ SC.T
            El, Cnew = eig_gsym(Fl, Sinvh)
            E.append(El)
            C.append(Cnew)
        self.E = np.stack(E)
        self.C = np.stack(C)

    # ------------------------------------------------------------------
    # 描述
    # ------------------------------------------------------------------
    def occupied_shells(self) -> list[ShellOccupation]:
        """所有被占据的壳层，按轨道能量升序。"""
        if self.E is None:
            raise InvalidStateError("轨道能量表为空")
        shells = []
        for l in range(self.lmax + 1):
            for io, nocc in enumerate(self._shell_fill(l)):
                shells.append(ShellOccupation(energy=float(self.E[l][io]), n=l + io + 1, l=l, nocc=nocc))
        return sorted(shells)

    def characterize(self) -> str:
        """形如 ``"1s^{2} 2s^{2} 2p^{1}"`` 的组态描述。"""
        return " ".join(f"{sh.label}^{{{sh.nocc}}}" for sh in self.occupied_shells())

    def gap(self) -> np.ndarray:
        """每个通道第一个空壳层与最后一个占据壳层的能量差；通道全空时为最低轨道能。"""
        if self.E is None:
            raise InvalidStateError("轨道能量表为空")
        gaps = np.full(self.lmax + 1, np.nan)
        for l in range(self.lmax + 1):
            nsh = self.count_occupied(l)
            if nsh >= self.E.shape[1]:
                continue
            gaps[l] = self.E[l][nsh] if nsh == 0 else self.E[l][nsh] - self.E[l][nsh - 1]
        return gaps
