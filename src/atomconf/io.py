from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from .basis import RadialBasis
from .configuration import ConfigurationResult
from .exceptions import InvalidStateError
from .occupations import OrbitalChannel
from .scf import POTENTIAL_COLUMNS

__all__ = [
    "save_orbitals",
    "export_levels_csv",
    "export_energies_json",
    "save_potential",
]


def save_orbitals(out_path: str | Path, channel: OrbitalChannel, basis: RadialBasis) -> None:
    """把占据轨道写成文本记录。

    格式：

    - 第 1 行：径向点数与轨道数；
    - 第 2 行：各轨道的角动量 l；
    - 第 3 行：各轨道的电子数；
    - 第 4 行：各轨道能量；
    - 其后每行一个径向点：坐标 r 与各轨道在该点的值 u(r)。

    轨道按 l 升序、同一 l 内按径向序排列。
    """
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)

    shells = sorted(channel.occupied_shells(), key=lambda sh: (sh.l, sh.n))
    r = basis.radii()
    cols = [basis.orbitals(channel.C[sh.l][:, [sh.n - sh.l - 1]])[:, 0] for sh in shells]
    values = np.column_stack(cols) if cols else np.zeros((r.size, 0))

    with p.open("w", encoding="utf-8") as f:
        f.write(f"{r.size} {len(shells)}\n")
        f.write("".join(f" {sh.l}" for sh in shells) + "\n")
        f.write("".join(f" {sh.nocc}" for sh in shells) + "\n")
        f.write("".join(f" {sh.energy:e}" for sh in shells) + "\n")
        for ir in range(r.size):
            f.write(f"{r[ir]:e}" + "".join(f" {v: e}" for v in values[ir]) + "\n")


def export_levels_csv(out_path: str | Path, result: ConfigurationResult) -> None:
    """导出能级表为 CSV：列为 `l,spin,n_index,occ,eps(Ha)`。

    自旋限制结果的 spin 列记为 ``both``。
    """
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    spins = ("both",) if result.restricted else ("up", "down")

    with p.open("w", encoding="utf-8") as f:
        f.write("l,spin,n_index,occ,eps(Ha)\n")
        for spin, ch in zip(spins, result.channels()):
            occ_map = {(sh.l, sh.n - sh.l - 1): sh.nocc for sh in ch.occupied_shells()}
            for l, eps in enumerate(ch.E):
                for n_index, e in enumerate(eps):
                    occ_val = occ_map.get((l, n_index), 0)
                    f.write(f"{l},{spin},{n_index},{occ_val},{float(e):.12f}\n")


def export_energies_json(out_path: str | Path, result: ConfigurationResult) -> None:
    """导出总能、分能与收敛信息为 JSON。"""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = dict(result.energies.as_dict())
    data.update(
        occupations=[list(k) for k in result.occupations],
        configuration=result.characterize(),
        converged=result.converged,
        iterations=result.iterations,
        diis_error=result.diis_error,
    )
    with p.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def save_potential(out_path: str | Path, table: np.ndarray) -> None:
    """把屏蔽势表写成带列名表头的文本文件（列见 :data:`atomconf.scf.POTENTIAL_COLUMNS`）。"""
    table = np.asarray(table, dtype=float)
    if table.ndim != 2 or table.shape[1] != len(POTENTIAL_COLUMNS):
        raise InvalidStateError(f"屏蔽势表应有 {len(POTENTIAL_COLUMNS)} 列，收到形状 {table.shape}")
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(p, table, fmt="% .12e", header=" ".join(POTENTIAL_COLUMNS))
