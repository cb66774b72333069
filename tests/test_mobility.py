import numpy as np
import pytest

from jdsd import mobility, utils
from jdsd.enums import DEFAULT_FLAGS, Flags
from jdsd.tensors import SELF_STRAIN


def assemble(positions, radii, flags, host, viscosity=1.0):
    positions = np.asarray(positions, dtype=float)
    radii = np.asarray(radii, dtype=float)
    geometry = utils.check_distances(positions, radii, utils.compute_distinct_pairs(len(radii)), host)
    return mobility.assemble_mobility(geometry, radii, viscosity, flags, host)


def grand_matrix(tensor):
    uf, us, ss = (np.asarray(block) for block in tensor)
    return np.block([[uf, us], [us.T, ss]])


def lattice(n_side, spacing):
    grid = np.arange(n_side) * spacing
    return np.array([[x, y, z] for x in grid for y in grid for z in grid])


class TestSelfMobility:

    @pytest.mark.parametrize("radius, viscosity", [(1.0, 1.0), (0.5, 2.0), (3.0, 0.1)])
    def test_single_sphere(self, host, radius, viscosity):
        tensor = assemble([[1.0, -2.0, 0.5]], [radius], DEFAULT_FLAGS, host, viscosity)
        uf = np.asarray(tensor.uf)
        np.testing.assert_allclose(np.diag(uf)[:3], 1.0 / (6 * np.pi * viscosity * radius))
        np.testing.assert_allclose(np.diag(uf)[3:], 1.0 / (8 * np.pi * viscosity * radius**3))
        np.testing.assert_allclose(uf - np.diag(np.diag(uf)), 0.0)
        np.testing.assert_allclose(np.asarray(tensor.us), 0.0)
        np.testing.assert_allclose(
            np.asarray(tensor.ss), SELF_STRAIN / (6 * np.pi * viscosity * radius**3)
        )

    def test_self_only_has_no_pair_blocks(self, host):
        tensor = assemble([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]], [1.0, 1.0], Flags.SELF_MOBILITY | Flags.FTS, host)
        np.testing.assert_array_equal(np.asarray(tensor.uf)[:6, 6:], 0.0)
        np.testing.assert_array_equal(np.asarray(tensor.ss)[:5, 5:], 0.0)

    def test_without_stresslet_strain_blocks_are_empty(self, host):
        tensor = assemble([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]], [1.0, 1.0], Flags.SELF_MOBILITY | Flags.PAIR_MOBILITY, host)
        assert tensor.uf.shape == (12, 12)
        assert tensor.us.shape == (12, 0)
        assert tensor.ss.shape == (0, 0)
        assert not tensor.fts


class TestPairMobility:

    def test_scalar_functions_far_apart(self):
        functions = mobility.pair_mobility_functions(0.01)
        assert float(functions["x12a"]) == pytest.approx(1.5e-2 - 1e-6)
        assert float(functions["y12a"]) == pytest.approx(0.75e-2 + 0.5e-6)
        assert float(functions["z12m"]) == pytest.approx(1.8e-10)

    def test_two_spheres_on_x_axis(self, host):
        tensor = assemble([[0.0, 0.0, 0.0], [4.0, 0.0, 0.0]], [1.0, 1.0], DEFAULT_FLAGS, host)
        block = np.asarray(tensor.uf)[:6, 6:]
        scale = 1.0 / (6 * np.pi)
        assert block[0, 0] == pytest.approx(scale * (1.5 / 4 - 1 / 64))
        assert block[1, 1] == pytest.approx(scale * (0.75 / 4 + 0.5 / 64))
        assert block[2, 2] == pytest.approx(block[1, 1])
        # a force along the line of centers does not rotate the other sphere
        np.testing.assert_allclose(block[3:, 0], 0.0, atol=1e-15)

    def test_particle_order_does_not_matter(self, host):
        positions = np.array([[0.0, 0.0, 0.0], [2.5, 1.0, -0.5]])
        radii = np.array([1.0, 0.8])
        forward = grand_matrix(assemble(positions, radii, DEFAULT_FLAGS, host))
        backward = grand_matrix(assemble(positions[::-1], radii[::-1], DEFAULT_FLAGS, host))
        order = np.r_[6:12, 0:6, 17:22, 12:17]
        np.testing.assert_allclose(backward, forward[np.ix_(order, order)], atol=1e-14)

    @pytest.mark.parametrize("flags", [DEFAULT_FLAGS, Flags.SELF_MOBILITY | Flags.PAIR_MOBILITY])
    def test_symmetric(self, host, flags):
        rng = np.random.default_rng(7)
        positions = lattice(2, 3.0) + rng.uniform(-0.3, 0.3, size=(8, 3))
        matrix = grand_matrix(assemble(positions, np.ones(8), flags, host))
        np.testing.assert_allclose(matrix, matrix.T, atol=1e-14)

    def test_force_velocity_block_positive_definite(self, host):
        tensor = assemble(lattice(2, 5.0), np.ones(8), Flags.SELF_MOBILITY | Flags.PAIR_MOBILITY, host)
        eigenvalues = np.linalg.eigvalsh(np.asarray(tensor.uf))
        assert eigenvalues.min() > 0

    def test_grand_tensor_positive_semi_definite_far_apart(self, host):
        tensor = assemble([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]], [1.0, 1.0], DEFAULT_FLAGS, host)
        eigenvalues = np.linalg.eigvalsh(grand_matrix(tensor))
        assert eigenvalues.min() > -1e-12
