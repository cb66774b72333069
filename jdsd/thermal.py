import jax.numpy as jnp
import numpy as np
from jax import Array, jit, random
from jax.typing import ArrayLike

from jdsd.execution import ExecutionContext

_WORD = 2**32


def _split_words(value: int, name: str) -> tuple[int, int]:
    value = int(value)
    if not 0 <= value < _WORD * _WORD:
        raise ValueError(f"{name} must be an unsigned 64-bit integer, got {value}")
    return value // _WORD, value % _WORD


def noise_key(seed: int, offset: int) -> Array:
    """Counter based key for one draw: the 64-bit seed folded with the 64-bit offset."""
    key = jnp.asarray(_split_words(seed, "seed"), dtype=jnp.uint32)
    for word in _split_words(offset, "offset"):
        key = random.fold_in(key, np.uint32(word))
    return key


def _noise_entry(index: int, key: Array, scale: Array) -> Array:
    uniform = random.uniform(random.fold_in(key, index), dtype=jnp.float64)
    return scale * (uniform - 0.5)


def thermal_noise(
    sqrt_kt_dt: float, offset: int, seed: int, count: int, context: ExecutionContext
) -> Array:
    """Draw the random vector psi used to build the thermal forces.

    Entry i is sqrt(2) * sqrt_kt_dt * sqrt(12) * (u_i - 1/2) with u_i uniform in [0, 1),
    so every entry has zero mean and variance 2 kT/dt. u_i depends only on
    (seed, offset, i), which makes the vector bit-identical for identical arguments,
    on any device.

    Parameters
    ----------
    sqrt_kt_dt: (float)
        Thermal scale sqrt(kT/dt)
    offset: (int)
        Unsigned 64-bit stream offset, e.g. the time step number
    seed: (int)
        Unsigned 64-bit seed
    count: (int)
        Number of entries (6*num_particles)
    context: (ExecutionContext)
        Where the per entry kernel runs

    Returns
    -------
    psi (count,)

    """
    scale = jnp.sqrt(2.0) * sqrt_kt_dt * jnp.sqrt(12.0)
    return context.tabulate(_noise_entry, count, noise_key(seed, offset), scale)


@jit
def thermal_force(sqrt_resistance: ArrayLike, noise: ArrayLike) -> Array:
    """Random force L psi, with L the lower Cholesky factor of the resistance tensor R_FU."""
    return sqrt_resistance @ noise
