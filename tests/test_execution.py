import jax
import jax.numpy as jnp
import numpy as np
import pytest

from jdsd.enums import Backend
from jdsd.execution import AcceleratorContext, HostContext, get_context


def _square_plus(index, offset):
    return index * index + offset


def _pair_of_blocks(index, values):
    return jnp.full((2, 2), values[index]), jnp.full((3,), -values[index])


def has_accelerator():
    return any(device.platform != "cpu" for device in jax.devices())


class TestExecutionContext:

    def test_double_precision(self):
        assert jnp.zeros(1).dtype == jnp.float64

    def test_tabulate(self, host):
        result = host.tabulate(_square_plus, 5, 1.5)
        np.testing.assert_array_equal(np.asarray(result), [1.5, 2.5, 5.5, 10.5, 17.5])

    def test_for_each_stacks_tuples(self, host):
        values = np.array([1.0, 2.0, 3.0])
        blocks, vectors = host.for_each(_pair_of_blocks, 3, values)
        assert blocks.shape == (3, 2, 2)
        assert vectors.shape == (3, 3)
        np.testing.assert_array_equal(np.asarray(vectors[:, 0]), -values)

    def test_empty_range(self, host):
        blocks, vectors = host.for_each(_pair_of_blocks, 0, np.array([1.0, 2.0]))
        assert blocks.shape == (0, 2, 2)
        assert vectors.shape == (0, 3)
        assert host.tabulate(_square_plus, 0, 1.5).shape == (0,)

    def test_negative_range(self, host):
        with pytest.raises(ValueError, match="must not be negative"):
            host.for_each(_square_plus, -1, 1.0)

    def test_device_round_trip(self, host):
        data = {"a": np.arange(4.0), "b": (np.eye(2), 3.0)}
        on_device = host.to_device(data)
        assert on_device["a"].devices() == {host.device}
        back = host.to_host(on_device)
        np.testing.assert_array_equal(back["a"], data["a"])
        np.testing.assert_array_equal(back["b"][0], data["b"][0])
        assert isinstance(back["b"][0], np.ndarray)


class TestGetContext:

    @pytest.mark.parametrize("backend", ["host", "HOST", Backend.HOST])
    def test_host(self, backend):
        assert isinstance(get_context(backend), HostContext)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown execution backend"):
            get_context("quantum")

    def test_auto(self):
        context = get_context("auto")
        expected = AcceleratorContext if has_accelerator() else HostContext
        assert isinstance(context, expected)

    @pytest.mark.skipif(has_accelerator(), reason="an accelerator is available")
    def test_accelerator_missing(self):
        with pytest.raises(RuntimeError):
            get_context(Backend.ACCELERATOR)
