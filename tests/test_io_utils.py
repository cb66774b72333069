import os
import tempfile

import numpy as np
import pytest

from jdsd.io_utils import (
    PARTICLE_COLUMNS,
    get_next_log_file,
    load_particles,
    save_operators,
    save_velocities,
    setup_logging,
    split_frame,
)

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for file I/O tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield tmp_dir


@pytest.fixture
def sample_frame(make_frame):
    """Three particles with distinct radii and loads."""
    return make_frame(
        [[0.0, 0.0, 0.0], [3.0, 0.0, 0.0], [0.0, 4.0, 1.0]],
        [1.0, 0.5, 1.5],
        np.arange(18.0),
    )


# =============================================================================
# Particle file tests
# =============================================================================

class TestLoadParticles:

    def test_text_file(self, temp_dir, sample_frame):
        path = os.path.join(temp_dir, "particles.txt")
        np.savetxt(path, sample_frame, header=" ".join(PARTICLE_COLUMNS))
        frames = load_particles(path)
        assert frames.shape == (1, 3, 10)
        np.testing.assert_allclose(frames[0], sample_frame)

    def test_single_particle_text_file(self, temp_dir, sample_frame):
        path = os.path.join(temp_dir, "one.txt")
        np.savetxt(path, sample_frame[:1])
        assert load_particles(path).shape == (1, 1, 10)

    def test_npy_frames(self, temp_dir, sample_frame):
        path = os.path.join(temp_dir, "frames.npy")
        np.save(path, np.stack([sample_frame, sample_frame + 1.0]))
        frames = load_particles(path)
        assert frames.shape == (2, 3, 10)
        np.testing.assert_array_equal(frames[1], sample_frame + 1.0)

    def test_wrong_column_count(self, temp_dir, sample_frame):
        path = os.path.join(temp_dir, "bad.npy")
        np.save(path, sample_frame[:, :7])
        with pytest.raises(ValueError, match="10 columns"):
            load_particles(path)

    def test_file_not_found(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_particles(os.path.join(temp_dir, "missing.txt"))

    def test_split_frame(self, sample_frame):
        positions, radii, forces = split_frame(sample_frame)
        np.testing.assert_array_equal(positions[1], [3.0, 0.0, 0.0])
        np.testing.assert_array_equal(radii, [1.0, 0.5, 1.5])
        np.testing.assert_array_equal(forces, np.arange(18.0))


class TestOutput:

    def test_save_velocities(self, temp_dir):
        velocities = np.random.default_rng(0).normal(size=(2, 3, 6))
        path = save_velocities(os.path.join(temp_dir, "out"), velocities)
        assert path.name == "velocities.npy"
        np.testing.assert_array_equal(np.load(path), velocities)

    def test_save_operators(self, temp_dir):
        path = save_operators(temp_dir, 4, mobility_operator=np.eye(6), thermal_force=np.zeros(6))
        assert path.name == "operators_4.npz"
        with np.load(path) as data:
            np.testing.assert_array_equal(data["mobility_operator"], np.eye(6))


# =============================================================================
# Logging Tests
# =============================================================================

class TestLogging:

    def test_log_file_creation(self, temp_dir, reset_logger):
        """Test that log files are created properly."""
        log_dir = os.path.join(temp_dir, 'logs')
        setup_logging(output_dir=log_dir, debug_enabled=True)

        assert os.path.exists(os.path.join(log_dir, 'simulation.log'))
        assert os.path.exists(os.path.join(log_dir, 'debug.log'))

    def test_log_rotation(self, temp_dir):
        """Test log file rotation."""
        log_file = os.path.join(temp_dir, 'rotate.log')
        with open(log_file, 'w') as f:
            f.write("Original log content\n")

        next_file = get_next_log_file(log_file, max_backups=3)

        assert os.path.exists(os.path.join(temp_dir, 'rotate_1.log'))
        assert os.path.exists(log_file) is False
        assert next_file == log_file

    def test_backups_are_pruned(self, temp_dir):
        log_file = os.path.join(temp_dir, 'prune.log')
        for _ in range(5):
            with open(log_file, 'w') as f:
                f.write("content\n")
            get_next_log_file(log_file, max_backups=2)

        backups = sorted(name for name in os.listdir(temp_dir) if name.startswith('prune_'))
        assert backups == ['prune_4.log', 'prune_5.log']
