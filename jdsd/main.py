import os
from pathlib import Path
from typing import Optional

import numpy as np
from jax.typing import ArrayLike
from loguru import logger
from tqdm import tqdm

from jdsd import io_utils, solver
from jdsd.enums import DEFAULT_FLAGS, Flags
from jdsd.execution import get_context
from jdsd.lubrication_tables import DEFAULT_TABLE, load_lubrication_table
from jdsd.timing_utils import SimulationTimer

os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")  # Avoid JAX preallocating most GPU memory


def compute_velocities(
    positions: ArrayLike, forces: ArrayLike, radii: ArrayLike, viscosity: float
) -> np.ndarray:
    """Velocities of force and torque free-floating spheres, far-field hydrodynamics only.

    Parameters
    ----------
    positions: (float)
        Array of 6*num_particles values (x, y, z and three unused orientation entries per particle)
    forces: (float)
        Array (6*num_particles,) of forces and torques
    radii: (float)
        Array (num_particles,) of particle radii
    viscosity: (float)
        Fluid viscosity

    Returns
    -------
    velocities (6*num_particles,): linear then angular velocity per particle

    """
    return compute_velocities_thermal(positions, forces, radii, viscosity, 0.0, 0, 0, DEFAULT_FLAGS)


def compute_velocities_thermal(
    positions: ArrayLike,
    forces: ArrayLike,
    radii: ArrayLike,
    viscosity: float,
    sqrt_kt_dt: float,
    offset: int,
    seed: int,
    flags: Flags = DEFAULT_FLAGS,
) -> np.ndarray:
    """Velocities including thermal forces and optional lubrication.

    The random stream is fixed by (seed, offset): repeated calls with the same values give
    bit-identical thermal forces.

    Parameters
    ----------
    positions, forces, radii, viscosity:
        As in compute_velocities
    sqrt_kt_dt: (float)
        Thermal scale sqrt(kT/dt), zero disables thermal forces
    offset: (int)
        Unsigned 64-bit random stream offset (typically the time step number)
    seed: (int)
        Unsigned 64-bit random seed
    flags: (Flags)
        Bitmask of SELF_MOBILITY, PAIR_MOBILITY, LUBRICATION and FTS

    Returns
    -------
    velocities (6*num_particles,)

    """
    result = solver.solve(positions, forces, radii, viscosity, sqrt_kt_dt, offset, seed, flags)
    return np.asarray(result.velocities)


def main(
    frames: ArrayLike,
    viscosity: float,
    temperature: float,
    time_step: float,
    flags: Flags,
    seed_thermal: int,
    offset: int,
    backend: str,
    lubrication_table: Optional[str],
    output: Optional[Path],
    store_operators: bool,
) -> np.ndarray:
    """Solve every frame of a particle file and write the velocities.

    Parameters
    ----------
    frames: (float)
        Array (n_frames, num_particles, 10) of rows x y z radius fx fy fz tx ty tz
    viscosity: (float)
        Fluid viscosity
    temperature: (float)
        Thermal energy kT, no thermal forces when zero
    time_step: (float)
        Time step dt entering the thermal scale sqrt(kT/dt)
    flags: (Flags)
        Enabled physics
    seed_thermal: (int)
        Seed of the thermal forces
    offset: (int)
        Random stream offset of the first frame, frame k uses offset + k
    backend: (str)
        Execution backend: host, accelerator or auto
    lubrication_table: (str)
        Path of a .npz lubrication table, None for the built-in one
    output: (Path)
        Output directory, ./output if None
    store_operators: (bool)
        Also write the mobility operator and Cholesky factor of every frame

    Returns
    -------
    velocities (n_frames, num_particles, 6)

    """
    frames = np.asarray(frames, dtype=float)
    if temperature < 0 or time_step <= 0:
        raise ValueError(f"Need kT >= 0 and dt > 0, got kT={temperature}, dt={time_step}")
    sqrt_kt_dt = float(np.sqrt(temperature / time_step))
    output = Path(output) if output is not None else Path("output")
    context = get_context(backend)
    table = load_lubrication_table(lubrication_table) if lubrication_table else DEFAULT_TABLE
    timer = SimulationTimer()

    n_frames, num_particles = frames.shape[:2]
    logger.info(
        f"Solving {n_frames} frame(s) of {num_particles} particles on {context.name} "
        f"(viscosity {viscosity}, kT {temperature}, dt {time_step}, flags {Flags(flags)!r})"
    )

    velocities = np.zeros((n_frames, num_particles, 6))
    for frame in tqdm(range(n_frames), mininterval=0.5):
        positions, radii, forces = io_utils.split_frame(frames[frame])
        with timer.section("frame"):
            result = solver.solve(
                positions,
                forces,
                radii,
                viscosity,
                sqrt_kt_dt,
                offset + frame,
                seed_thermal,
                flags,
                context=context,
                table=table,
                timer=timer,
            )
        velocities[frame] = np.asarray(result.velocities).reshape(num_particles, 6)
        if store_operators:
            io_utils.save_operators(
                output,
                frame,
                mobility_operator=result.mobility_operator,
                sqrt_resistance=np.zeros(0) if result.sqrt_resistance is None else result.sqrt_resistance,
                thermal_force=result.thermal_force,
            )

    io_utils.save_velocities(output, velocities)
    timer.log_summary()
    return velocities
