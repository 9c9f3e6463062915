"""
Fixtures of the tests : a small blocked domain filled with a realistic ocean state.

"""

import numpy as np
import pytest

from tkemix import TkeConstants, BUFFER_SHAPES
from tkemix.fields import BUNDLES, field_dims, field_dtype

NPROMA = 5
NLEVS = 12
NBLOCKS = 3
DZ = 10.


def make_buffers(constants: TkeConstants, seed: int = 0) -> dict:
    """Every buffer of the closure, as numpy arrays, by name."""
    rng = np.random.default_rng(seed)
    buffers = {
        name: np.zeros(field_dims(kind, constants), dtype=field_dtype(type_kind, constants))
        for name, (kind, type_kind) in BUFFER_SHAPES.items()
    }
    nb, nl, npr = constants.nblocks, constants.nlevs, constants.nproma
    lev = np.arange(nl)[None, :, None]
    depth = np.broadcast_to(DZ*lev, (nb, nl, npr))

    dolic_c = rng.integers(0, nl+1, (nb, npr)).astype('int32')
    dolic_c[0, :] = nl
    dolic_c[1, 0] = 1
    dolic_c[1, 1] = 0
    buffers['dolic_c'][...] = dolic_c
    buffers['dolic_e'][...] = rng.integers(0, nl+1, (nb, npr))
    buffers['edges_cell_idx'][...] = rng.integers(-1, npr+1, (nb, 2, npr))
    buffers['edges_cell_blk'][...] = rng.integers(-1, nb+1, (nb, 2, npr))

    buffers['depth_cell_interface'][...] = depth
    buffers['prism_thick_c'][...] = DZ
    buffers['prism_center_dist_c'][...] = DZ
    buffers['inv_prism_center_dist_c'][...] = 1./DZ
    buffers['zlev_i'][...] = DZ*np.arange(nl)
    buffers['wet_c'][...] = lev < dolic_c[:, None, :]

    buffers['temp'][...] = 20. - 0.1*depth + 0.5*rng.standard_normal((nb, nl, npr))
    buffers['salt'][...] = 35. + 0.1*rng.standard_normal((nb, nl, npr))
    buffers['stretch_c'][...] = 1.
    for name in ('p_vn_x1', 'p_vn_x2', 'p_vn_x3'):
        buffers[name][...] = 0.2*rng.standard_normal((nb, nl, npr))

    buffers['stress_xw'][...] = 0.2*rng.standard_normal((nb, npr))
    buffers['stress_yw'][...] = 0.2*rng.standard_normal((nb, npr))
    buffers['fu10'][...] = rng.uniform(0., 15., (nb, npr))
    buffers['concsum'][...] = rng.uniform(0., 0.5, (nb, npr))

    buffers['tke'][...] = rng.uniform(1e-6, 1e-3, (nb, nl, npr))
    buffers['iwe_tdis'][...] = rng.uniform(0., 1e-8, (nb, nl, npr))
    return buffers


def make_bundles(buffers: dict) -> dict:
    """The bundles of :meth:`~tkemix.backend.TkeBackendAbstract.calc`, by argument name."""
    return {
        arg_name: bundle_class(**{name: buffers[name] for name in bundle_class.names()})
        for arg_name, bundle_class in BUNDLES.items()
    }


@pytest.fixture
def constants():
    return TkeConstants(
        NPROMA, NLEVS, NBLOCKS, dtime=600., coupling_variant=4, langmuir_enabled=True
    )


@pytest.fixture
def buffers(constants):
    return make_buffers(constants)
