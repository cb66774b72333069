from functools import partial
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax import Array, jit
from jax.typing import ArrayLike
from loguru import logger

from jdsd.execution import ExecutionContext


class OverlapError(ValueError):
    """Raised when particle surfaces touch or overlap, so that no far-field expansion applies."""

    def __init__(self, pairs):
        self.pairs = pairs
        shown = ", ".join(f"({i}, {j})" for i, j in pairs[:10])
        more = f" and {len(pairs) - 10} more" if len(pairs) > 10 else ""
        super().__init__(f"{len(pairs)} overlapping particle pair(s): {shown}{more}")


class PairGeometry(NamedTuple):
    """Per pair quantities shared by the far-field and lubrication stages.

    pairs: (int) Array (2, n_pairs) of particle indices, canonical order
    unit: (float) Array (n_pairs, 3) of unit vectors pointing from the first to the second particle
    distance: (float) Array (n_pairs,) of center-to-center distances, NaN for overlapping pairs
    """

    pairs: Array
    unit: Array
    distance: Array

    @property
    def num_pairs(self) -> int:
        return self.pairs.shape[1]


def validate_inputs(
    positions: ArrayLike, forces: ArrayLike, radii: ArrayLike, viscosity: float, sqrt_kt_dt: float = 0.0
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Check array sizes and physical parameters before any computation.

    Parameters
    ----------
    positions: (float)
        Array of 6*num_particles (position + orientation placeholder per particle) or
        3*num_particles values, flat or 2-D
    forces: (float)
        Array of 6*num_particles forces and torques
    radii: (float)
        Array (num_particles,) of particle radii
    viscosity: (float)
        Fluid viscosity
    sqrt_kt_dt: (float)
        Thermal scale sqrt(kT/dt)

    Returns
    -------
    positions (num_particles, 3), forces (6*num_particles,), radii (num_particles,)

    """
    radii = np.asarray(radii, dtype=float)
    if radii.ndim != 1 or radii.size < 1:
        raise ValueError(f"Radii must be a non-empty 1-D array, got shape {radii.shape}")
    num_particles = radii.size

    positions = np.asarray(positions, dtype=float)
    if positions.size == 6 * num_particles:
        positions = positions.reshape(num_particles, 6)[:, :3]
    elif positions.size == 3 * num_particles:
        positions = positions.reshape(num_particles, 3)
    else:
        raise ValueError(
            f"Expected 6*{num_particles} (or 3*{num_particles}) position values, got {positions.size}"
        )

    forces = np.asarray(forces, dtype=float).reshape(-1)
    if forces.size != 6 * num_particles:
        raise ValueError(f"Expected 6*{num_particles} force/torque values, got {forces.size}")

    if not (np.all(np.isfinite(positions)) and np.all(np.isfinite(forces))):
        raise ValueError("Positions and forces must be finite")
    if not np.all(np.isfinite(radii) & (radii > 0)):
        raise ValueError("Particle radii must be positive and finite")
    if not viscosity > 0:
        raise ValueError(f"Viscosity must be positive, got {viscosity}")
    if not sqrt_kt_dt >= 0:
        raise ValueError(f"Thermal scale sqrt(kT/dt) must be non-negative, got {sqrt_kt_dt}")
    return positions, forces, radii


@partial(jit, static_argnums=[0])
def compute_distinct_pairs(num_particles: int) -> Array:
    """Generate the list of distinct pairs of particles.

    Pairs are ordered by first index, then second index. Later stages address per pair
    data by position in this list.

    Parameters
    ----------
    num_particles: (int)
        Number of particles in the system

    Returns
    -------
    pairs (2, num_particles*(num_particles-1)/2)

    """
    return jnp.stack(jnp.triu_indices(num_particles, 1))


def _pair_distance(pair_id: int, positions: Array, radii: Array, pairs: Array) -> tuple[Array, Array]:
    i = pairs[0, pair_id]
    j = pairs[1, pair_id]
    dr_vec = positions[j] - positions[i]
    dr = jnp.sqrt(jnp.sum(dr_vec * dr_vec))
    unit = dr_vec / dr
    # surfaces touching or overlapping: flag the pair as invalid
    dr = jnp.where(dr <= radii[i] + radii[j], jnp.nan, dr)
    return unit, dr


def check_distances(
    positions: ArrayLike, radii: ArrayLike, pairs: ArrayLike, context: ExecutionContext
) -> PairGeometry:
    """Compute unit separation vectors and distances for all pairs.

    Parameters
    ----------
    positions: (float)
        Array (num_particles, 3) of particle positions
    radii: (float)
        Array (num_particles,) of particle radii
    pairs: (int)
        Array (2, n_pairs) of pair indices
    context: (ExecutionContext)
        Where the per pair kernel runs

    Returns
    -------
    PairGeometry

    """
    pairs = context.to_device(pairs)
    num_pairs = pairs.shape[1]
    if num_pairs == 0:
        return PairGeometry(pairs, jnp.zeros((0, 3)), jnp.zeros((0,)))
    unit, distance = context.for_each(_pair_distance, num_pairs, positions, radii, pairs)
    return PairGeometry(pairs, unit, distance)


def find_overlaps(geometry: PairGeometry) -> list[tuple[int, int]]:
    """Return the (i, j) index pairs flagged as overlapping."""
    distance = np.asarray(geometry.distance)
    bad = np.flatnonzero(~np.isfinite(distance))
    pairs = np.asarray(geometry.pairs)
    return [(int(pairs[0, k]), int(pairs[1, k])) for k in bad]


def check_overlap(geometry: PairGeometry) -> None:
    """Raise OverlapError if any pair in the geometry is flagged as overlapping."""
    overlaps = find_overlaps(geometry)
    if overlaps:
        error = OverlapError(overlaps)
        logger.error(str(error))
        raise error
