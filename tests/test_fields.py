"""
Unit tests of the modules tkemix.fields and tkemix.memory.

"""

import ctypes

import numpy as np
import pytest
import jax.numpy as jnp

from tkemix import HostMemoryPolicy, IndexRange, ScratchFields, SCRATCH_SHAPES, TkeConstants
from tkemix.memory import check_same_address

DIMS = (2, 3, 4)


def test_wrap_is_zero_copy():
    """
    The writes through a view are seen by the owner of the buffer.
    """
    policy = HostMemoryPolicy()
    arr = np.zeros(DIMS)
    view = policy.wrap(arr, 'tke', DIMS, 'float64')
    assert np.shares_memory(view.data, arr)
    policy.write(view, jnp.full((3, 4), 2.), 1)
    np.testing.assert_array_equal(arr[1], 2.)
    np.testing.assert_array_equal(arr[0], 0.)
    assert view.ndim == 3
    assert view.address == arr.ctypes.data


def test_wrap_flat_buffer():
    """
    A flat buffer with the right number of elements is viewed with the dimensions of the field.
    """
    policy = HostMemoryPolicy()
    arr = np.zeros(np.prod(DIMS))
    view = policy.wrap(arr, 'tke', DIMS, 'float64')
    assert view.data.shape == DIMS
    view.data[1, 2, 3] = 7.
    assert arr[-1] == 7.


def test_wrap_raw_address():
    policy = HostMemoryPolicy()
    arr = np.zeros(DIMS, dtype='int32')
    view = policy.wrap(arr.ctypes.data, 'dolic_c', DIMS, 'int32')
    policy.write(view, jnp.ones(DIMS, dtype='int32'))
    np.testing.assert_array_equal(arr, 1)


def test_wrap_buffer_protocol():
    policy = HostMemoryPolicy()
    buffer = (ctypes.c_double * 24)()
    view = policy.wrap(buffer, 'tke', DIMS, 'float64')
    view.data[0, 0, 1] = 3.
    assert buffer[1] == 3.
    np.testing.assert_array_equal(np.asarray(policy.read(view, (0, 0))), [0., 3., 0., 0.])


@pytest.mark.parametrize('buffer', [
    None,
    np.zeros((2, 3, 5)),
    np.zeros(DIMS, dtype='float32'),
    np.asfortranarray(np.zeros(DIMS)),
])
def test_wrap_invalid(buffer):
    with pytest.raises(ValueError):
        HostMemoryPolicy().wrap(buffer, 'tke', DIMS, 'float64')


def test_check_same_address():
    policy = HostMemoryPolicy()
    arr = np.zeros(DIMS)
    view = policy.wrap(arr, 'tke', DIMS, 'float64')
    check_same_address(view, arr, policy)
    with pytest.raises(ValueError, match='moved'):
        check_same_address(view, arr.copy(), policy)


def test_scratch_fields(constants):
    policy = HostMemoryPolicy()
    scratch = ScratchFields(constants, policy)
    assert set(scratch.views) == set(SCRATCH_SHAPES)
    assert scratch['nsqr'].dims == (constants.nblocks, constants.nlevs, constants.nproma)
    assert scratch['forc_tke_surf_2d'].dims == (constants.nblocks, constants.nproma)
    assert 'tke' not in scratch
    assert scratch.get('tke') is None
    scratch.free()
    assert not scratch.views
    assert not policy._allocations


def test_index_range():
    """
    The bounds of the first and last blocks are inclusive and the blocks between are full.
    """
    rng = IndexRange(4, 1, 3, 2, 1)
    assert list(rng.blocks()) == [1, 2, 3]
    assert rng.index_range(1) == (2, 3)
    assert rng.index_range(2) == (0, 3)
    assert rng.index_range(3) == (0, 1)
    jb, jc = rng.columns()
    np.testing.assert_array_equal(jb, [1, 1, 2, 2, 2, 2, 3, 3])
    np.testing.assert_array_equal(jc, [2, 3, 0, 1, 2, 3, 0, 1])
    assert rng.n_columns == 8
    single = IndexRange.from_tuple((4, 2, 2, 1, 1))
    assert single.index_range(2) == (1, 1)
    assert single.n_columns == 1


def test_index_range_bounds_beyond_block_size():
    """
    The bounds of a single block range are column indices, they are not limited by the block
    size.
    """
    nproma, nblocks = 25, 1
    rng = IndexRange.from_tuple((nblocks, 0, nblocks-1, 0, nproma-1))
    assert rng.index_range(0) == (0, nproma-1)
    assert rng.n_columns == nproma
    jb, jc = rng.columns()
    np.testing.assert_array_equal(jb, np.zeros(nproma))
    np.testing.assert_array_equal(jc, np.arange(nproma))
    constants = TkeConstants(nproma, 4, nblocks, dtime=600.)
    rng.check_fits(constants)
    with pytest.raises(ValueError):
        IndexRange.from_tuple((nblocks, 0, nblocks-1, 0, nproma)).check_fits(constants)


@pytest.mark.parametrize('range_tuple', [
    (0, 0, 0, 0, 0),
    (4, -1, 0, 0, 0),
    (4, 2, 1, 0, 0),
    (4, 0, 0, 4, 3),
    (4, 1, 1, 3, 2),
])
def test_index_range_invalid(range_tuple):
    with pytest.raises(ValueError):
        IndexRange.from_tuple(range_tuple)


def test_index_range_fits(constants):
    IndexRange(constants.nproma, 0, constants.nblocks-1, 0, 0).check_fits(constants)
    IndexRange(1, 0, 1, constants.nproma-1, constants.nproma-1).check_fits(constants)
    with pytest.raises(ValueError):
        IndexRange(constants.nproma+1, 0, 0, 0, 0).check_fits(constants)
    with pytest.raises(ValueError):
        IndexRange(constants.nproma, 0, constants.nblocks, 0, 0).check_fits(constants)
    with pytest.raises(ValueError):
        IndexRange(2, 0, 0, 0, constants.nproma).check_fits(constants)
    with pytest.raises(ValueError):
        IndexRange(2, 0, 1, constants.nproma, 0).check_fits(constants)
