"""Enums for the solver options"""

from enum import Enum, IntFlag


class Flags(IntFlag):
    """Feature bitmask of the solver.

    The terms compose independently; any combination is valid.
    """
    NONE = 0
    SELF_MOBILITY = 1 << 0  # single particle (Stokes drag) mobility
    PAIR_MOBILITY = 1 << 1  # far-field two particle mobility
    LUBRICATION = 1 << 2    # near-field resistance corrections
    FTS = 1 << 3            # stresslet / rate of strain coupling


DEFAULT_FLAGS = Flags.SELF_MOBILITY | Flags.PAIR_MOBILITY | Flags.FTS


class Backend(str, Enum):
    """Execution backends.

    Determines where the per particle and per pair kernels run.
    """
    HOST = "host"                # multithreaded CPU
    ACCELERATOR = "accelerator"  # first GPU/TPU device
    AUTO = "auto"                # accelerator if available, host otherwise
