"""Far-field grand mobility tensor.

The expressions are those of Appendix A of

    Durlofsky, L., Brady, J.F. and Bossis, G., J. Fluid Mech. 180, 21-49 (1987)

(equivalently Kim, S. and Mifflin, R.T., Physics of Fluids 28, 2033 (1985)).
The self terms use x_11 and y_11 of equation (A 3), the pair terms x_12 and y_12.
Lengths entering the pair functions are made dimensionless with the mean radius of the pair.
"""

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike
from loguru import logger

from jdsd.enums import Flags
from jdsd.execution import ExecutionContext
from jdsd.tensors import (
    DELTA,
    LEVI_CIVITA,
    SELF_ROTATION,
    SELF_STRAIN,
    SELF_TRANSLATION,
    MobilityTensor,
    block_indices,
    empty_mobility,
    scatter_blocks,
    strain_strain_tensor,
    to_strain_matrix,
    to_strain_vector,
)
from jdsd.utils import PairGeometry


def viscous_scales(radius: ArrayLike, viscosity: float) -> tuple[Array, Array, Array]:
    """Return 1/(6 pi eta a), 1/(6 pi eta a^2), 1/(6 pi eta a^3)."""
    visc1 = 1.0 / (6.0 * jnp.pi * viscosity * radius)
    visc2 = visc1 / radius
    visc3 = visc2 / radius
    return visc1, visc2, visc3


def _self_blocks(particle_id: int, radii: Array, viscosity: Array) -> tuple[Array, Array]:
    visc1, _, visc3 = viscous_scales(radii[particle_id], viscosity)
    uf = jnp.zeros((6, 6))
    uf = uf.at[:3, :3].set(visc1 * SELF_TRANSLATION)
    uf = uf.at[3:, 3:].set(visc3 * SELF_ROTATION)
    return uf, visc3 * SELF_STRAIN


def pair_mobility_functions(dr_inv: ArrayLike) -> dict:
    """Scalar pair mobility functions, equation (A 3), of the dimensionless inverse distance."""
    dr_inv2 = dr_inv * dr_inv
    dr_inv3 = dr_inv2 * dr_inv
    dr_inv4 = dr_inv3 * dr_inv
    dr_inv5 = dr_inv4 * dr_inv
    return {
        "x12a": 1.5 * dr_inv - dr_inv3,
        "y12a": 0.75 * dr_inv + 0.5 * dr_inv3,
        "y12b": -0.75 * dr_inv2,
        "x12c": 0.75 * dr_inv3,
        "y12c": -0.375 * dr_inv3,
        "x12g": 2.25 * dr_inv2 - 3.6 * dr_inv4,
        "y12g": 1.2 * dr_inv4,
        "y12h": -1.125 * dr_inv3,
        "x12m": -4.5 * dr_inv3 + 10.8 * dr_inv5,
        "y12m": 2.25 * dr_inv3 - 7.2 * dr_inv5,
        "z12m": 1.8 * dr_inv5,
    }


def _pair_setup(pair_id, unit, distance, radii, pairs, viscosity):
    a12 = 0.5 * (radii[pairs[0, pair_id]] + radii[pairs[1, pair_id]])
    e = unit[pair_id]
    dr_inv = a12 / distance[pair_id]
    return e, jnp.outer(e, e), pair_mobility_functions(dr_inv), viscous_scales(a12, viscosity)


def _pair_uf_blocks(
    pair_id: int, unit: Array, distance: Array, radii: Array, pairs: Array, viscosity: Array
) -> tuple[Array, Array]:
    e, ee, f, (visc1, visc2, visc3) = _pair_setup(pair_id, unit, distance, radii, pairs, viscosity)

    mob_a = f["x12a"] * ee + f["y12a"] * (DELTA - ee)
    mob_b = f["y12b"] * jnp.einsum("ijk,k->ij", LEVI_CIVITA, e)
    mob_c = f["x12c"] * ee + f["y12c"] * (DELTA - ee)

    # rows of the first particle, columns of the second one, and the mirrored block
    uf_ij = jnp.block([[visc1 * mob_a, -visc2 * mob_b.T], [visc2 * mob_b, visc3 * mob_c]])
    uf_ji = jnp.block([[visc1 * mob_a.T, -visc2 * mob_b], [visc2 * mob_b.T, visc3 * mob_c.T]])
    return uf_ij, uf_ji


def _pair_strain_blocks(
    pair_id: int, unit: Array, distance: Array, radii: Array, pairs: Array, viscosity: Array
) -> tuple[Array, Array, Array, Array]:
    e, ee, f, (_, visc2, visc3) = _pair_setup(pair_id, unit, distance, radii, pairs, viscosity)

    gt = -(
        f["x12g"] * jnp.einsum("ij,k->kij", ee - DELTA / 3.0, e)
        + f["y12g"]
        * (
            jnp.einsum("i,jk->kij", e, DELTA)
            + jnp.einsum("j,ik->kij", e, DELTA)
            - 2.0 * jnp.einsum("ij,k->kij", ee, e)
        )
    )
    ht = f["y12h"] * (
        jnp.einsum("il,jkl->kij", ee, LEVI_CIVITA) + jnp.einsum("jm,ikm->kij", ee, LEVI_CIVITA)
    )
    mob_gt = to_strain_vector(gt)
    mob_ht = to_strain_vector(ht)
    mob_m = to_strain_matrix(strain_strain_tensor(ee, f["x12m"], f["y12m"], f["z12m"]))

    # The paragraph under (A 1) suggests a^3 for the force-strain coupling but a^2 reproduces
    # known results. The torque-strain and strain-strain exponents are unverified.
    us_ij = jnp.concatenate([visc2 * mob_gt, visc3 * mob_ht])
    us_ji = jnp.concatenate([-visc2 * mob_gt, visc3 * mob_ht])
    return us_ij, us_ji, visc3 * mob_m, visc3 * mob_m.T


def add_self_mobility(
    mobility: MobilityTensor, radii: ArrayLike, viscosity: float, context: ExecutionContext
) -> MobilityTensor:
    """Fill the diagonal (single particle) blocks of the grand mobility tensor."""
    num_particles = mobility.num_particles
    uf_blocks, ss_blocks = context.for_each(_self_blocks, num_particles, radii, viscosity)
    particles = jnp.arange(num_particles)
    rows6 = block_indices(particles, 6)
    uf = scatter_blocks(mobility.uf, rows6, rows6, uf_blocks)
    ss = mobility.ss
    if mobility.fts:
        rows5 = block_indices(particles, 5)
        ss = scatter_blocks(ss, rows5, rows5, ss_blocks)
    return MobilityTensor(uf, mobility.us, ss)


def add_pair_mobility(
    mobility: MobilityTensor,
    geometry: PairGeometry,
    radii: ArrayLike,
    viscosity: float,
    context: ExecutionContext,
) -> MobilityTensor:
    """Fill the off-diagonal (two particle) blocks of the grand mobility tensor."""
    if geometry.num_pairs == 0:
        return mobility
    operands = (geometry.unit, geometry.distance, radii, geometry.pairs, viscosity)
    rows_i = block_indices(geometry.pairs[0], 6)
    rows_j = block_indices(geometry.pairs[1], 6)

    uf_ij, uf_ji = context.for_each(_pair_uf_blocks, geometry.num_pairs, *operands)
    uf = scatter_blocks(mobility.uf, rows_i, rows_j, uf_ij)
    uf = scatter_blocks(uf, rows_j, rows_i, uf_ji)
    if not mobility.fts:
        return MobilityTensor(uf, mobility.us, mobility.ss)

    us_ij, us_ji, ss_ij, ss_ji = context.for_each(_pair_strain_blocks, geometry.num_pairs, *operands)
    cols_i = block_indices(geometry.pairs[0], 5)
    cols_j = block_indices(geometry.pairs[1], 5)
    us = scatter_blocks(mobility.us, rows_i, cols_j, us_ij)
    us = scatter_blocks(us, rows_j, cols_i, us_ji)
    ss = scatter_blocks(mobility.ss, cols_i, cols_j, ss_ij)
    ss = scatter_blocks(ss, cols_j, cols_i, ss_ji)
    return MobilityTensor(uf, us, ss)


def assemble_mobility(
    geometry: PairGeometry,
    radii: ArrayLike,
    viscosity: float,
    flags: Flags,
    context: ExecutionContext,
) -> MobilityTensor:
    """Assemble the far-field grand mobility tensor.

    Parameters
    ----------
    geometry: (PairGeometry)
        Pair list, unit vectors and distances (no overlapping pairs)
    radii: (float)
        Array (num_particles,) of particle radii
    viscosity: (float)
        Fluid viscosity
    flags: (Flags)
        Selects self mobility, pair mobility and the stresslet (FTS) blocks
    context: (ExecutionContext)
        Where the kernels run

    Returns
    -------
    MobilityTensor

    """
    num_particles = len(radii)
    mobility = context.to_device(empty_mobility(num_particles, Flags.FTS in flags))
    if Flags.SELF_MOBILITY in flags:
        mobility = add_self_mobility(mobility, radii, viscosity, context)
    if Flags.PAIR_MOBILITY in flags:
        mobility = add_pair_mobility(mobility, geometry, radii, viscosity, context)
    logger.debug(
        f"Assembled mobility for {num_particles} particles and {geometry.num_pairs} pairs "
        f"(uf {mobility.uf.shape}, us {mobility.us.shape}, ss {mobility.ss.shape})"
    )
    return mobility
