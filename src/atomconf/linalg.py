r"""线性代数辅助函数

按角动量分块的矩阵（"立方体"，形状 ``(lmax+1, nbf, nbf)``）与块对角超矩阵之间的转换，
广义对称本征问题的求解，以及正交化基下的 SCF 残差。
"""

from __future__ import annotations

import numpy as np
from scipy.linalg import block_diag, eigh

__all__ = [
    "eig_gsym",
    "block_diag_cube",
    "split_blocks",
    "replicate_cube",
    "orthonormal_commutator",
    "total_density",
]


def eig_gsym(F: np.ndarray, Sinvh: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    r"""求解广义对称本征问题 :math:`F C = S C \varepsilon`。

    借助半逆重叠矩阵 :math:`X = S^{-1/2}` 变换到正交基：

    .. math::
        F' = X^T F X,\quad F' C' = C' \varepsilon,\quad C = X C'.

    Parameters
    ----------
    F : numpy.ndarray
        对称算子矩阵。
    Sinvh : numpy.ndarray
        半逆重叠矩阵 :math:`X`。

    Returns
    -------
    eps : numpy.ndarray
        升序本征值。
    C : numpy.ndarray
        本征向量（按列），满足 :math:`C^T S C = I`。
    """
    Fo = Sinvh.T @ F @ Sinvh
    Fo = 0.5 * (Fo + Fo.T)
    eps, Co = eigh(Fo)
    return eps, Sinvh @ Co


def block_diag_cube(cube: np.ndarray) -> np.ndarray:
    """把各 l 通道的矩阵排成块对角超矩阵。"""
    return block_diag(*cube)


def split_blocks(M: np.ndarray, nblocks: int) -> np.ndarray:
    """:func:`block_diag_cube` 的逆操作：取出对角块。"""
    n = M.shape[0] // nblocks
    return np.stack([M[i * n:(i + 1) * n, i * n:(i + 1) * n] for i in range(nblocks)])


def replicate_cube(M: np.ndarray, nblocks: int) -> np.ndarray:
    """对所有 l 通道复制同一矩阵。"""
    return np.repeat(M[np.newaxis, :, :], nblocks, axis=0)


def total_density(Pl: np.ndarray) -> np.ndarray:
    """各 l 通道密度矩阵之和。"""
    return np.sum(Pl, axis=0)


def orthonormal_commutator(F: np.ndarray, P: np.ndarray, S: np.ndarray, Sinvh: np.ndarray) -> np.ndarray:
    r"""正交基下的 SCF 残差 :math:`X^T (F P S - S P F) X`。

    收敛时 Fock 矩阵与密度矩阵在 :math:`S` 度量下对易，残差为零。
    """
    FPS = F @ P @ S
    return Sinvh.T @ (FPS - FPS.T) @ Sinvh
