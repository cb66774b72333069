"""Constant tensors, block layout helpers and the typed grand tensor containers.

The grand mobility (and resistance) tensor is stored as three dense blocks:

    uf: (6N, 6N)  force/torque      <-> velocity/angular velocity
    us: (6N, 5N)  force/torque      <-> rate of strain/stresslet
    ss: (5N, 5N)  rate of strain    <-> stresslet

Particle p owns rows/columns [6p, 6p+6) of the force/velocity space (3 translational,
3 rotational entries) and [5p, 5p+5) of the strain/stresslet space.
"""

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike

# Kronecker delta
DELTA = np.eye(3)

# Levi-Civita symbol
LEVI_CIVITA = np.array(
    [
        [[0, 0, 0], [0, 0, 1], [0, -1, 0]],
        [[0, 0, -1], [0, 0, 0], [1, 0, 0]],
        [[0, 1, 0], [-1, 0, 0], [0, 0, 0]],
    ],
    dtype=float,
)

# Linearization of a symmetric traceless 3x3 tensor E into the vector
#   EV = (E11 - E33, 2 E12, 2 E13, 2 E23, E22 - E33)
# column p pairs the indices (STRAIN_INDEX_MAP[0][p], STRAIN_INDEX_MAP[1][p])
STRAIN_INDEX_MAP = ((0, 0, 0, 1, 1), (2, 1, 2, 2, 2))


def _strain_projector() -> np.ndarray:
    projector = np.zeros((5, 3, 3))
    for p, (a, b) in enumerate(zip(*STRAIN_INDEX_MAP)):
        if p in (0, 4):
            # diagonal differences
            projector[p, a, a] += 1.0
            projector[p, b, b] -= 1.0
        else:
            projector[p, a, b] = 2.0
    return projector


STRAIN_PROJECTOR = _strain_projector()

# Isotropic single sphere mobility templates, scaled by 1/(6 pi eta a^n)
SELF_TRANSLATION = np.eye(3)
SELF_ROTATION = 0.75 * np.eye(3)
SELF_STRAIN = np.array(
    [
        [9.0 / 5.0, 0.0, 0.0, 0.0, 9.0 / 10.0],
        [0.0, 9.0 / 5.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 9.0 / 5.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 9.0 / 5.0, 0.0],
        [9.0 / 10.0, 0.0, 0.0, 0.0, 9.0 / 5.0],
    ]
)


for _constant in (DELTA, LEVI_CIVITA, STRAIN_PROJECTOR, SELF_TRANSLATION, SELF_ROTATION, SELF_STRAIN):
    _constant.setflags(write=False)


class MobilityTensor(NamedTuple):
    """Assembled grand mobility tensor (far-field, before any inversion)."""

    uf: Array
    us: Array
    ss: Array

    @property
    def num_particles(self) -> int:
        return self.uf.shape[0] // 6

    @property
    def fts(self) -> bool:
        return self.ss.shape[0] > 0


class ResistanceTensor(NamedTuple):
    """Grand resistance tensor, i.e. the inverted mobility tensor, optionally with lubrication."""

    uf: Array
    us: Array
    ss: Array

    @property
    def num_particles(self) -> int:
        return self.uf.shape[0] // 6

    @property
    def fts(self) -> bool:
        return self.ss.shape[0] > 0


def empty_mobility(num_particles: int, fts: bool) -> MobilityTensor:
    """Allocate a zero mobility tensor. Without FTS the strain blocks have zero size."""
    strain_dofs = 5 * num_particles if fts else 0
    return MobilityTensor(
        jnp.zeros((6 * num_particles, 6 * num_particles)),
        jnp.zeros((6 * num_particles, strain_dofs)),
        jnp.zeros((strain_dofs, strain_dofs)),
    )


def block_indices(particle_ids: ArrayLike, size: int) -> Array:
    """Flat row/column indices of the blocks owned by the given particles.

    Parameters
    ----------
    particle_ids: (int)
        Array (n,) of particle indices
    size: (int)
        Block size per particle (6 for force/velocity, 5 for strain/stresslet)

    Returns
    -------
    indices (n, size)

    """
    return size * jnp.asarray(particle_ids)[:, None] + jnp.arange(size)[None, :]


def scatter_blocks(matrix: ArrayLike, rows: ArrayLike, cols: ArrayLike, blocks: ArrayLike) -> Array:
    """Write a stack of (r, c) blocks at disjoint row/column index sets."""
    return matrix.at[rows[:, :, None], cols[:, None, :]].set(blocks)


def to_strain_vector(tensor: ArrayLike) -> Array:
    """Contract the last two (symmetric) indices of a tensor into the 5-vector representation."""
    return jnp.einsum("pij,...ij->...p", STRAIN_PROJECTOR, tensor)


def symmetrize_from_upper(matrix: ArrayLike) -> Array:
    """Copy the upper triangle onto the lower triangle."""
    return jnp.triu(matrix) + jnp.triu(matrix, 1).T


def strain_strain_tensor(ee: ArrayLike, x: float, y: float, z: float) -> Array:
    """Fourth order strain-strain coupling tensor m_ijkl for scalar functions x, y, z.

    Durlofsky, Brady & Bossis (1987), equation (A 2), sixth line; the same combination is used
    for the lubrication M functions.
    """
    d = DELTA
    traceless = ee - d / 3.0
    return (
        1.5 * x * jnp.einsum("ij,kl->ijkl", traceless, traceless)
        + 0.5
        * y
        * (
            jnp.einsum("ik,jl->ijkl", ee, d)
            + jnp.einsum("jk,il->ijkl", ee, d)
            + jnp.einsum("il,jk->ijkl", ee, d)
            + jnp.einsum("jl,ik->ijkl", ee, d)
            - 4.0 * jnp.einsum("ij,kl->ijkl", ee, ee)
        )
        + 0.5
        * z
        * (
            jnp.einsum("ik,jl->ijkl", d, d)
            + jnp.einsum("jk,il->ijkl", d, d)
            - jnp.einsum("ij,kl->ijkl", d, d)
            + jnp.einsum("ij,kl->ijkl", ee, d)
            + jnp.einsum("ij,kl->ijkl", d, ee)
            - jnp.einsum("ik,jl->ijkl", ee, d)
            - jnp.einsum("jk,il->ijkl", ee, d)
            - jnp.einsum("il,jk->ijkl", ee, d)
            - jnp.einsum("jl,ik->ijkl", ee, d)
            + jnp.einsum("ij,kl->ijkl", ee, ee)
        )
    )


def to_strain_matrix(tensor: ArrayLike) -> Array:
    """Contract both index pairs of a fourth order tensor into a 5x5 matrix."""
    return jnp.einsum("pij,qkl,ijkl->pq", STRAIN_PROJECTOR, STRAIN_PROJECTOR, tensor)
