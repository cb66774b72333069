"""
I/O utilities for solver input / output.
"""

# Standard library imports
import glob
import os
import re
import sys
from pathlib import Path
from typing import Optional, Union

# Third-party imports
import numpy as np
from loguru import logger

# Columns of a particle file row
PARTICLE_COLUMNS = ("x", "y", "z", "radius", "fx", "fy", "fz", "tx", "ty", "tz")


# =============================================================================
# Logging Setup and Utilities
# =============================================================================

def get_next_log_file(base_path: str, max_backups: int = 10) -> str:
    """Return base_path, moving an existing file there to the next numbered backup."""
    dir_path = os.path.dirname(base_path)
    if dir_path:
        os.makedirs(dir_path, exist_ok=True)

    name, ext = os.path.splitext(os.path.basename(base_path))

    if os.path.exists(base_path):
        nums = [0]
        for backup in glob.glob(os.path.join(dir_path, f"{name}_*{ext}")):
            match = re.search(rf"{re.escape(name)}_([0-9]+){re.escape(ext)}$", backup)
            if match:
                nums.append(int(match.group(1)))
        new_path = os.path.join(dir_path, f"{name}_{max(nums) + 1}{ext}")

        try:
            os.rename(base_path, new_path)
        except OSError as e:
            logger.error(f"Failed to rotate log file: {e}")

        if max_backups is not None:
            _prune_old_backups(dir_path, name, ext, max_backups)

    return base_path


def _prune_old_backups(dir_path: str, name: str, ext: str, max_backups: int):
    """Remove old backup files beyond max_backups limit."""
    backups = []
    for backup in glob.glob(os.path.join(dir_path, f"{name}_*{ext}")):
        match = re.search(rf"{re.escape(name)}_([0-9]+){re.escape(ext)}$", backup)
        if match:
            backups.append((int(match.group(1)), backup))

    backups.sort(key=lambda x: x[0])
    if len(backups) > max_backups:
        for _, old_file in backups[:-max_backups]:
            try:
                os.remove(old_file)
            except OSError as e:
                logger.error(f"Failed to remove old log backup {old_file}: {e}")


def setup_logging(output_dir: Optional[str] = None,
                  debug_enabled: bool = False,
                  max_backups: int = 10):
    """Set up console and file logging.

    Writes simulation.log (INFO and above) and, if debug_enabled, debug.log into output_dir
    (default: ./logs). Existing files are kept as numbered backups.
    """
    log_dir = str(Path(output_dir)) if output_dir else "logs"
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "simulation.log")
    debug_file = os.path.join(log_dir, "debug.log")

    logger.remove()

    log_file = get_next_log_file(log_file, max_backups)
    if debug_enabled:
        debug_file = get_next_log_file(debug_file, max_backups)

    _setup_console_handlers()
    _setup_file_handlers(log_file, debug_file, debug_enabled)
    logger.info("Logging system initialized")


def _setup_console_handlers():
    """Setup console logging handlers."""
    # Clean format for info messages
    logger.add(
        sys.stdout,
        format="{message}",
        level="INFO",
        filter=lambda record: record["level"].name in ["INFO", "SUCCESS"]
    )

    # Detailed format for warnings and errors
    logger.add(
        sys.stderr,
        format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:{line} | {message}",
        level="WARNING",
    )


def _setup_file_handlers(log_file: str, debug_file: str, debug_enabled: bool):
    """Setup file logging handlers."""
    file_format = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"

    logger.add(log_file, format=file_format, level="INFO", catch=True)

    if debug_enabled:
        logger.add(debug_file, format=file_format, level="DEBUG", catch=True)
        logger.debug("Debug logging enabled")


def log_and_exit(message: str, code: int = 1):
    """Log an error message and exit the script with a status code."""
    logger.error(message)
    sys.exit(code)


# =============================================================================
# Particle input and velocity output
# =============================================================================

def load_particles(path: Union[str, Path]) -> np.ndarray:
    """Read particle frames from a .npy or whitespace separated text file.

    Every particle is one row ``x y z radius fx fy fz tx ty tz``. A .npy file may hold a
    single frame (N, 10) or a stack of frames (n_frames, N, 10); a text file holds one frame.

    Returns
    -------
    frames (n_frames, N, 10)

    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Particle file not found: {path}")

    if path.suffix == ".npy":
        data = np.load(path)
    else:
        data = np.loadtxt(path, ndmin=2, comments="#")
    data = np.asarray(data, dtype=float)

    if data.ndim == 2:
        data = data[None]
    if data.ndim != 3 or data.shape[2] != len(PARTICLE_COLUMNS) or data.shape[1] < 1:
        raise ValueError(
            f"Particle file {path} must hold rows of {len(PARTICLE_COLUMNS)} columns "
            f"({' '.join(PARTICLE_COLUMNS)}), got array of shape {data.shape}"
        )
    logger.info(f"Loaded {data.shape[0]} frame(s) of {data.shape[1]} particles from {path}")
    return data


def split_frame(frame: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split one (N, 10) frame into positions (N, 3), radii (N,) and forces (6N,)."""
    return frame[:, :3], frame[:, 3], frame[:, 4:].reshape(-1)


def save_velocities(output_dir: Union[str, Path], velocities: np.ndarray) -> Path:
    """Write the (n_frames, N, 6) velocities to output_dir/velocities.npy."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "velocities.npy"
    np.save(path, np.asarray(velocities))
    logger.info(f"Velocities written to {path}")
    return path


def save_operators(output_dir: Union[str, Path], frame: int, **operators: np.ndarray) -> Path:
    """Write the dense operators of one frame to output_dir/operators_<frame>.npz."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"operators_{frame}.npz"
    np.savez(path, **{name: np.asarray(value) for name, value in operators.items()})
    logger.debug(f"Operators of frame {frame} written to {path}")
    return path
