"""Execution contexts for the data-parallel kernels of the solver.

A context owns one JAX device. Kernels are plain functions ``operation(index, *operands)``
that compute the contribution of a single particle or particle pair; the context evaluates
them for every index in ``[0, count)`` with ``vmap`` under ``jit`` on its device. Every index
returns its own output block, so writes into the grand tensors never collide.
"""

from functools import partial
from typing import Any, Callable

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array, jit, vmap
from loguru import logger

from jdsd.enums import Backend

jax.config.update("jax_enable_x64", True)  # tensor inversions need double precision


@partial(jit, static_argnums=[0])
def _apply(operation: Callable, indices: Array, *operands: Any) -> Any:
    return vmap(operation, in_axes=(0,) + (None,) * len(operands))(indices, *operands)


class ExecutionContext:
    """Device on which the per-particle and per-pair kernels are evaluated."""

    name = "generic"

    def __init__(self, device):
        self.device = device
        logger.debug(f"Created {self.name} execution context on {device}")

    def __repr__(self):
        return f"{type(self).__name__}(device={self.device})"

    def to_device(self, data: Any) -> Any:
        """Copy arrays (or a pytree of arrays) into the memory of this context."""

        def _put(leaf):
            if not isinstance(leaf, jax.Array):
                leaf = np.asarray(leaf)
            return jax.device_put(leaf, self.device)

        return jax.tree_util.tree_map(_put, data)

    @staticmethod
    def to_host(data: Any) -> Any:
        """Copy arrays (or a pytree of arrays) back to host numpy arrays."""
        return jax.tree_util.tree_map(np.asarray, jax.device_get(data))

    def for_each(self, operation: Callable, count: int, *operands: Any) -> Any:
        """Evaluate ``operation(i, *operands)`` for every i in [0, count).

        Parameters
        ----------
        operation: (callable)
            Module level kernel, taking an integer index followed by the operands
        count: (int)
            Size of the index range, an empty range gives outputs with a leading axis of length 0
        operands:
            Arrays (or pytrees of arrays) shared by all indices

        Returns
        -------
        Kernel outputs stacked along a new leading axis of length count

        """
        if count < 0:
            raise ValueError(f"Index range must not be negative, got count={count}")
        operands = self.to_device(operands)
        if count == 0:
            shapes = jax.eval_shape(operation, 0, *operands)
            return jax.tree_util.tree_map(
                lambda shape: self.to_device(np.zeros((0,) + shape.shape, dtype=shape.dtype)), shapes
            )
        indices = self.to_device(np.arange(count))
        return _apply(operation, indices, *operands)

    def tabulate(self, operation: Callable, count: int, *operands: Any) -> Array:
        """Build the 1-D array whose entry i is the scalar ``operation(i, *operands)``."""
        return jnp.reshape(self.for_each(operation, count, *operands), (count,))


class HostContext(ExecutionContext):
    """Multithreaded host execution (XLA CPU backend)."""

    name = "host"

    def __init__(self):
        super().__init__(jax.devices("cpu")[0])


class AcceleratorContext(ExecutionContext):
    """Execution on the first GPU/TPU device visible to JAX."""

    name = "accelerator"

    def __init__(self):
        devices = [device for device in jax.devices() if device.platform != "cpu"]
        if not devices:
            raise RuntimeError("No accelerator device is available to JAX.")
        super().__init__(devices[0])


def get_context(backend: str = Backend.AUTO) -> ExecutionContext:
    """Select an execution context: host, accelerator or auto (accelerator if present)."""
    try:
        backend = backend if isinstance(backend, Backend) else Backend(backend.lower())
    except ValueError:
        raise ValueError(
            f"Unknown execution backend: {backend}, choose from: host, accelerator or auto."
        ) from None
    if backend is Backend.HOST:
        return HostContext()
    if backend is Backend.ACCELERATOR:
        return AcceleratorContext()
    try:
        return AcceleratorContext()
    except RuntimeError:
        logger.info("No accelerator available, running on the host")
        return HostContext()
