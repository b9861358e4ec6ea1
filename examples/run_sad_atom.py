#!/usr/bin/env python
"""原子组态搜索入口。

给定原子序数与电子数，在有限差分径向基上搜索能量最低的角动量占据方案，
并导出能量、能级与占据轨道。
"""

import argparse
import logging
from pathlib import Path

from atomconf import ConfigurationSearch, RadialBasis, SCFConfig, SCFSolver, SearchConfig
from atomconf.io import export_energies_json, export_levels_csv, save_orbitals, save_potential


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="原子 SCF 组态搜索")
    p.add_argument("--Z", type=int, required=True, help="原子序数")
    p.add_argument("--nel", type=int, default=None, help="电子数（缺省为 Z，即中性原子）")
    p.add_argument("--lmax", type=int, default=2, help="最大角动量")
    p.add_argument("--mode", choices=["restricted", "unrestricted"], default="unrestricted")
    p.add_argument("--n", type=int, default=400, help="径向网格内部点数")
    p.add_argument("--rmax", type=float, default=30.0, help="截断半径（Bohr）")
    p.add_argument("--order", type=int, default=4, choices=[2, 4], help="有限差分阶数")
    p.add_argument("--x", dest="x_func", default="hf", help="交换泛函：none/slater/hf")
    p.add_argument("--x-param", type=float, action="append", default=[], help="交换泛函参数")
    p.add_argument("--c", dest="c_func", default="none", help="关联泛函：none/pz81/vwn")
    p.add_argument("--maxit", type=int, default=100)
    p.add_argument("--shift", type=float, default=1.0)
    p.add_argument("--convthr", type=float, default=1e-7)
    p.add_argument("--energythr", type=float, default=None, help="能量收敛阈值（缺省同 --convthr）")
    p.add_argument("--damping", type=float, default=None)
    p.add_argument("--workers", type=int, default=4)
    p.add_argument("--export", type=str, default=None, help="导出目录")
    p.add_argument("--plot", action="store_true", help="绘制占据轨道")
    p.add_argument("--verbose", "-v", action="count", default=0)
    return p


def plot_orbitals(result, basis, out_path: Path) -> None:
    import matplotlib.pyplot as plt

    r = basis.radii()
    fig, axes = plt.subplots(1, len(result.occupations), figsize=(6 * len(result.occupations), 4), squeeze=False)
    for ax, ch, title in zip(axes[0], result.channels(), ("alpha", "beta") if not result.restricted else ("",)):
        for sh in ch.occupied_shells():
            ax.plot(r, ch.C[sh.l][:, sh.n - sh.l - 1], label=f"{sh.label} ({sh.energy:.4f} Ha)")
        ax.set_xlabel("r (Bohr)")
        ax.set_ylabel("u(r)")
        ax.set_title(title)
        ax.legend()
    plt.tight_layout()
    plt.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    logger = logging.getLogger("atomconf.run")

    nel = args.Z if args.nel is None else args.nel
    basis = RadialBasis(args.Z, args.lmax, args.n, args.rmax, order=args.order)
    cfg = SCFConfig(
        maxit=args.maxit,
        shift=args.shift,
        convthr=args.convthr,
        energythr=args.energythr,
        damping=args.damping,
        x_func=args.x_func,
        x_params=tuple(args.x_param),
        c_func=args.c_func,
    )
    solver = SCFSolver(basis, cfg, logger=logger)
    search = ConfigurationSearch(solver, SearchConfig(max_workers=args.workers), logger=logger)
    res = search.run(nel, args.lmax, restricted=args.mode == "restricted")

    best = res.best
    print(f"Z={args.Z}  N={nel}  mode={args.mode}")
    print(f"Best occupations: {best.occupations}  converged={best.converged}  iterations={best.iterations}")
    for desc in best.characterize():
        print(f"  {desc}")
    for k, v in best.energies.as_dict().items():
        print(f"  {k:8s} = {v: .10f}")
    print(f"Explored {len(res.explored)} configurations in {res.steps} steps, {len(res.failures)} failures")

    if args.export:
        out = Path(args.export)
        export_energies_json(out / "energies.json", best)
        export_levels_csv(out / "levels.csv", best)
        for spin, ch in zip(("a", "b") if not best.restricted else ("",), best.channels()):
            save_orbitals(out / f"Z{args.Z}{spin}_orbs.dat", ch, basis)
        conf = best.to_configuration()
        table = solver.restricted_potential(conf) if best.restricted else solver.unrestricted_potential(conf)
        save_potential(out / "potential.dat", table)
        if args.plot:
            plot_orbitals(best, basis, out / "orbitals.png")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
