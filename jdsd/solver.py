from contextlib import nullcontext
from typing import NamedTuple, Optional

import jax.numpy as jnp
import jax.scipy as jscipy
from jax import Array, jit
from jax.typing import ArrayLike
from loguru import logger

from jdsd import mobility, resistance, thermal, utils
from jdsd.enums import DEFAULT_FLAGS, Flags
from jdsd.execution import ExecutionContext, get_context
from jdsd.lubrication_tables import DEFAULT_TABLE, LubricationTable
from jdsd.tensors import MobilityTensor, ResistanceTensor
from jdsd.timing_utils import SimulationTimer


class SingularTensorError(RuntimeError):
    """Raised when an inversion or factorization of a grand tensor yields non-finite entries."""


class SolveResult(NamedTuple):
    """Outcome of one velocity solve.

    velocities: (float) Array (6*num_particles,) of linear and angular velocities
    mobility_operator: (float) Array (6N, 6N) applied to the total force
    resistance: (ResistanceTensor) resistance tensor after lubrication and symmetrization, or None
    sqrt_resistance: (float) lower Cholesky factor of the resistance R_FU, or None
    thermal_force: (float) Array (6*num_particles,) of random forces (zero at zero temperature)
    """

    velocities: Array
    mobility_operator: Array
    resistance: Optional[ResistanceTensor]
    sqrt_resistance: Optional[Array]
    thermal_force: Array


@jit
def _invert_fu(uf: ArrayLike) -> Array:
    return jnp.linalg.inv(uf)


@jit
def _invert_fts(uf: ArrayLike, us: ArrayLike, ss: ArrayLike) -> tuple[Array, Array, Array]:
    r1 = jnp.linalg.inv(uf)
    r2 = us.T @ r1
    r3 = ss - r2 @ us
    r4 = jnp.linalg.inv(r3)
    r5 = -(r2.T @ r4)
    r6 = r1 - r5 @ r2
    return r6, r5, r4


def _check_finite(name: str, *arrays: Array):
    if not all(bool(jnp.all(jnp.isfinite(array))) for array in arrays):
        logger.error(f"{name} produced non-finite entries")
        raise SingularTensorError(f"{name} produced non-finite entries; the tensor is singular")


def invert_mobility(grand_mobility: MobilityTensor) -> ResistanceTensor:
    """Invert the grand mobility tensor blockwise through the Schur complement.

    With R1 = UF^-1, R2 = US^T R1, R3 = SS - R2 US, R4 = R3^-1, R5 = -(R2^T R4)
    and R6 = R1 - R5 R2 the resistance tensor is (uf=R6, us=R5, ss=R4). Without the
    stresslet blocks it is (uf=R1) with empty strain blocks.

    Raises
    ------
    SingularTensorError
        If an inversion produces non-finite entries

    """
    if not grand_mobility.fts:
        r1 = _invert_fu(grand_mobility.uf)
        _check_finite("Inversion of the mobility tensor", r1)
        return ResistanceTensor(r1, grand_mobility.us, grand_mobility.ss)
    r6, r5, r4 = _invert_fts(*grand_mobility)
    _check_finite("Inversion of the mobility tensor", r6, r5, r4)
    return ResistanceTensor(r6, r5, r4)


@jit
def _inverse_and_cholesky(rfu: ArrayLike) -> tuple[Array, Array]:
    lower = jnp.linalg.cholesky(rfu)
    identity = jnp.eye(rfu.shape[0])
    return jscipy.linalg.cho_solve((lower, True), identity), lower


def inverse_and_cholesky(rfu: ArrayLike) -> tuple[Array, Array]:
    """Factor R_FU = L L^T once and return (R_FU^-1, L).

    Raises
    ------
    SingularTensorError
        If R_FU is not positive definite (non-finite factor)

    """
    inverse, lower = _inverse_and_cholesky(rfu)
    _check_finite("Cholesky factorization of the resistance tensor", lower, inverse)
    return inverse, lower


@jit
def _velocities(
    mobility_operator: ArrayLike,
    forces: ArrayLike,
    resistance_us: ArrayLike,
    strain_rate: ArrayLike,
    random_force: ArrayLike,
    ambient_velocity: ArrayLike,
) -> Array:
    return mobility_operator @ (forces + resistance_us @ strain_rate + random_force) + ambient_velocity


def solve(
    positions: ArrayLike,
    forces: ArrayLike,
    radii: ArrayLike,
    viscosity: float,
    sqrt_kt_dt: float = 0.0,
    offset: int = 0,
    seed: int = 0,
    flags: Flags = DEFAULT_FLAGS,
    context: Optional[ExecutionContext] = None,
    table: LubricationTable = DEFAULT_TABLE,
    timer: Optional[SimulationTimer] = None,
) -> SolveResult:
    """Compute particle velocities from applied forces and torques.

    Pipeline: pairs -> distances (overlap check) -> far-field mobility -> inversion ->
    lubrication and symmetrization -> Cholesky factorization and inversion of R_FU ->
    thermal forces -> velocities u = M (F + R_US E_inf + F_rnd) + u_inf. The imposed strain
    E_inf and ambient flow u_inf are zero.

    Parameters
    ----------
    positions: (float)
        Array of 6*num_particles (or 3*num_particles) position values
    forces: (float)
        Array (6*num_particles,) of forces and torques, particle by particle
    radii: (float)
        Array (num_particles,) of particle radii
    viscosity: (float)
        Fluid viscosity
    sqrt_kt_dt: (float)
        Thermal scale sqrt(kT/dt), no thermal forces when zero
    offset: (int)
        Unsigned 64-bit random stream offset
    seed: (int)
        Unsigned 64-bit random seed
    flags: (Flags)
        Enabled physics
    context: (ExecutionContext)
        Where the kernels run, selected automatically if None
    table: (LubricationTable)
        Tabulated lubrication functions
    timer: (SimulationTimer)
        Optional timer receiving one section per pipeline stage

    Returns
    -------
    SolveResult

    Raises
    ------
    ValueError
        On inconsistent or unphysical input
    OverlapError
        If two particle surfaces touch or overlap
    SingularTensorError
        If a grand tensor cannot be inverted or factored

    """
    positions, forces, radii = utils.validate_inputs(positions, forces, radii, viscosity, sqrt_kt_dt)
    flags = Flags(flags)
    num_particles = len(radii)
    context = context if context is not None else get_context()

    def stage(name):
        return timer.section(name) if timer is not None else nullcontext()

    positions, forces, radii = context.to_device((positions, forces, radii))
    ambient_velocity = jnp.zeros(6 * num_particles)

    if not flags & (Flags.SELF_MOBILITY | Flags.PAIR_MOBILITY):
        logger.warning("Self and pair mobility are both disabled: the velocities equal the ambient flow")
        zero_operator = jnp.zeros((6 * num_particles, 6 * num_particles))
        return SolveResult(ambient_velocity, zero_operator, None, None, jnp.zeros(6 * num_particles))

    with stage("pairs"):
        pairs = utils.compute_distinct_pairs(num_particles)
        geometry = utils.check_distances(positions, radii, pairs, context)
        utils.check_overlap(geometry)

    with stage("mobility"):
        grand_mobility = mobility.assemble_mobility(geometry, radii, viscosity, flags, context)

    with stage("inversion"):
        grand_resistance = invert_mobility(grand_mobility)

    if Flags.LUBRICATION in flags:
        with stage("lubrication"):
            grand_resistance = resistance.add_lubrication(
                grand_resistance, geometry, radii, viscosity, context, table
            )

    with stage("factorization"):
        mobility_operator, sqrt_resistance = inverse_and_cholesky(grand_resistance.uf)

    with stage("thermal"):
        if sqrt_kt_dt > 0:
            noise = thermal.thermal_noise(sqrt_kt_dt, offset, seed, 6 * num_particles, context)
            random_force = thermal.thermal_force(sqrt_resistance, noise)
        else:
            random_force = jnp.zeros(6 * num_particles)

    with stage("velocities"):
        strain_rate = jnp.zeros(grand_resistance.us.shape[1])
        velocities = _velocities(
            mobility_operator, forces, grand_resistance.us, strain_rate, random_force, ambient_velocity
        )

    logger.debug(
        f"Solved {num_particles} particles ({geometry.num_pairs} pairs, flags {flags!r}) "
        f"on {context.name}, max |u| = {float(jnp.max(jnp.abs(velocities))):.6g}"
    )
    return SolveResult(velocities, mobility_operator, grand_resistance, sqrt_resistance, random_force)
