"""
Unit tests of the backends and of the facade tkemix.Tke.

"""

import numpy as np
import pytest
import xarray as xr

from tkemix import (
    CpuBackend, GpuBackend, HostMemoryPolicy, IndexRange, Tke, ViewState, GroupMapLaunch,
    TkeConstants, TkeParameters, BACKENDS_REGISTRY
)
from tkemix.backends.gpu import launch_geometry
from tkemix.diagnostics import budget_residual, budget_to_nc, BUDGET_TERMS
from tests.conftest import make_buffers, make_bundles

OUTPUTS = (
    'tke', 'a_temp_v', 'a_salt_v', 'a_veloc_v', 'tke_plc', 'wlc', 'hlc', 'u_stokes', 'tke_tbpr',
    'tke_tspr', 'tke_tdif', 'tke_tdis', 'tke_twin', 'tke_tiwf', 'tke_tbck', 'tke_ttot',
    'tke_lmix', 'tke_pr'
)
SENTINEL = -999.


def full_ranges(constants):
    rng = IndexRange(constants.nproma, 0, constants.nblocks-1, 0, constants.nproma-1)
    return rng, rng


def run(backend, buffers, cells, edges):
    backend.calc(cells=cells, edges=edges, **make_bundles(buffers))


def test_registry():
    assert BACKENDS_REGISTRY['cpu'] is CpuBackend
    assert BACKENDS_REGISTRY['gpu'] is GpuBackend


def test_launch_geometry():
    assert launch_geometry(10, 4) == (4, 3)
    assert launch_geometry(8, 4) == (4, 2)
    assert launch_geometry(1, 128) == (128, 1)


def test_cpu_floor_and_coefficients(constants, buffers):
    with CpuBackend(constants) as backend:
        run(backend, buffers, *full_ranges(constants))
    lev = np.arange(constants.nlevs)[None, :, None]
    active = lev < buffers['dolic_c'][:, None, :]
    assert np.all(buffers['tke'][active] >= TkeParameters().tke_min)
    assert np.all(buffers['a_temp_v'] >= 0.)
    np.testing.assert_array_equal(buffers['a_temp_v'], buffers['a_salt_v'])
    np.testing.assert_array_equal(buffers['a_temp_v'][~active], 0.)


def assert_same_outputs(constants, cells, edges, launcher='vmap', group_size=4, seed=3):
    buffers_cpu = make_buffers(constants, seed=seed)
    buffers_gpu = make_buffers(constants, seed=seed)
    with CpuBackend(constants) as backend:
        run(backend, buffers_cpu, cells, edges)
    backend = GpuBackend(
        constants, policy=HostMemoryPolicy(), launcher=launcher, group_size=group_size,
        synchronous=True
    )
    run(backend, buffers_gpu, cells, edges)
    backend.close()
    for name in OUTPUTS:
        np.testing.assert_allclose(
            buffers_gpu[name], buffers_cpu[name], rtol=1e-9,
            atol=1e-10*np.max(np.abs(buffers_cpu[name])) + 1e-30, err_msg=name
        )
    return buffers_cpu


@pytest.mark.parametrize('launcher', ['vmap', GroupMapLaunch()])
def test_cpu_gpu_equivalence(constants, launcher):
    """
    The block loop and the flattened launch give the same outputs, with padding units.
    """
    cells = IndexRange(constants.nproma, 0, 2, 1, 2)
    edges = IndexRange(constants.nproma, 0, 1, 2, 4)
    assert_same_outputs(constants, cells, edges, launcher)


def test_cpu_gpu_equivalence_narrow_blocks(constants):
    """
    The middle blocks are cut at the block size while the bounds of the first and last blocks
    can go beyond it.
    """
    cells = IndexRange(3, 0, 2, 1, 4)
    edges = IndexRange(2, 0, 2, 1, 0)
    assert cells.n_columns == 2 + 3 + 5
    assert edges.n_columns == 1 + 2 + 1
    assert_same_outputs(constants, cells, edges, group_size=5)


def test_driver_ranges():
    """
    The single block ranges :code:`(nblocks, 0, nblocks-1, 0, nproma-1)` of a host driver with
    one block cover all the columns of the block.
    """
    constants = TkeConstants(25, 8, 2, dtime=600., coupling_variant=4, langmuir_enabled=True)
    rng = IndexRange.from_tuple((1, 0, 0, 0, 24))
    buffers = assert_same_outputs(constants, rng, rng, group_size=8)
    active = np.arange(constants.nlevs)[:, None] < buffers['dolic_c'][0][None, :]
    assert np.all(buffers['tke'][0][active] >= TkeParameters().tke_min)
    untouched = make_buffers(constants, seed=3)
    np.testing.assert_array_equal(buffers['tke'][1], untouched['tke'][1])
    assert np.all(buffers['tke_lmix'][0][active] > 0.)


def test_idempotence(constants, buffers):
    """
    Two calls on the same inputs give the same outputs.
    """
    tke = buffers['tke'].copy()
    backend = CpuBackend(constants)
    run(backend, buffers, *full_ranges(constants))
    first = {name: buffers[name].copy() for name in OUTPUTS}
    buffers['tke'][...] = tke
    run(backend, buffers, *full_ranges(constants))
    for name in OUTPUTS:
        np.testing.assert_array_equal(buffers[name], first[name], err_msg=name)
    backend.close()


@pytest.mark.parametrize('backend_class', [CpuBackend, GpuBackend])
def test_inactive_columns(constants, buffers, backend_class):
    """
    The columns out of the ranges are not modified and the garbage under the sea floor is
    overwritten on the active columns.
    """
    for name in OUTPUTS:
        if name != 'tke':
            buffers[name][...] = SENTINEL
    tke = buffers['tke'].copy()
    cells = IndexRange(constants.nproma, 0, 1, 2, 3)
    edges = IndexRange(constants.nproma, 1, 1, 1, 1)
    backend = backend_class(constants, policy=HostMemoryPolicy())
    run(backend, buffers, cells, edges)
    backend.close()

    done = np.zeros((constants.nblocks, constants.nproma), dtype=bool)
    done[0, 2:] = True
    done[1, :4] = True
    np.testing.assert_array_equal(
        buffers['tke'].transpose(0, 2, 1)[~done], tke.transpose(0, 2, 1)[~done]
    )
    for name in ('a_temp_v', 'tke_ttot', 'tke_lmix'):
        out = buffers[name].transpose(0, 2, 1)
        assert np.all(out[~done] == SENTINEL)
        assert np.all(out[done] != SENTINEL)
    assert np.all(buffers['hlc'][~done] == SENTINEL)

    edge_done = np.zeros((constants.nblocks, constants.nproma), dtype=bool)
    edge_done[1, 1] = True
    a_veloc_v = buffers['a_veloc_v'].transpose(0, 2, 1)
    assert np.all(a_veloc_v[~edge_done] == SENTINEL)
    assert np.all(a_veloc_v[edge_done] != SENTINEL)


def test_states_and_errors(constants, buffers):
    backend = CpuBackend(constants)
    assert backend.state is ViewState.UNINITIALIZED
    assert backend.views is None
    run(backend, buffers, *full_ranges(constants))
    assert backend.state is ViewState.READY
    assert backend.views['tke'].dims == (constants.nblocks, constants.nlevs, constants.nproma)

    moved = dict(buffers, tke=buffers['tke'].copy())
    with pytest.raises(ValueError, match='moved'):
        run(backend, moved, *full_ranges(constants))

    bundles = make_bundles(buffers)
    bundles['patch'], bundles['cvmix'] = bundles['cvmix'], bundles['patch']
    with pytest.raises(ValueError):
        cells, edges = full_ranges(constants)
        backend.calc(cells=cells, edges=edges, **bundles)

    with pytest.raises(ValueError):
        run(backend, buffers, IndexRange(constants.nproma, 0, constants.nblocks, 0, 0),
            full_ranges(constants)[1])

    backend.close()
    assert backend.state is ViewState.RELEASED
    with pytest.raises(RuntimeError):
        run(backend, buffers, *full_ranges(constants))


def test_wrong_buffer(constants, buffers):
    buffers['temp'] = buffers['temp'].astype('float32')
    with pytest.raises(ValueError, match='temp'):
        run(CpuBackend(constants), buffers, *full_ranges(constants))


def test_unknown_launcher(constants):
    with pytest.raises(ValueError):
        GpuBackend(constants, policy=HostMemoryPolicy(), launcher='foo')
    with pytest.raises(ValueError):
        GpuBackend(constants, policy=HostMemoryPolicy(), group_size=0)


def test_facade(constants, buffers, tmp_path):
    """
    The facade takes the buffers by keyword and exports the budget.
    """
    ranges = (constants.nproma, 0, constants.nblocks-1, 0, constants.nproma-1)
    with Tke(constants, 'gpu', policy=HostMemoryPolicy(), group_size=8) as tke:
        with pytest.raises(RuntimeError):
            tke.budget_ds()
        tke.calc(**buffers, cells_range=ranges, edges_range=ranges)
        ds = tke.budget_ds()
    assert ds['tke'].dims == ('block', 'level', 'column')
    scale = max(float(np.abs(ds[name]).max()) for name in BUDGET_TERMS) + 1e-30
    assert float(np.abs(budget_residual(ds)).max()) <= 1e-8*scale
    np.testing.assert_array_equal(ds['tke'].values, buffers['tke'])
    nc_path = str(tmp_path / 'budget.nc')
    budget_to_nc(ds, nc_path)
    with xr.open_dataset(nc_path) as ds_nc:
        np.testing.assert_array_equal(ds_nc['tke_ttot'].values, ds['tke_ttot'].values)
        assert ds_nc.attrs['max_abs_residual'] <= 1e-8*scale


def test_facade_errors(constants, buffers):
    ranges = (constants.nproma, 0, 0, 0, 0)
    with pytest.raises(ValueError):
        Tke(constants, 'tpu')
    tke = Tke(constants)
    missing = dict(buffers)
    del missing['fu10']
    with pytest.raises(ValueError, match='fu10'):
        tke.calc(**missing, cells_range=ranges, edges_range=ranges)
    with pytest.raises(ValueError, match='foo'):
        tke.calc(**buffers, foo=1., cells_range=ranges, edges_range=ranges)
    tke.close()
