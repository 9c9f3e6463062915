"""
Unit tests of the module tkemix.closures.edges.

"""

import numpy as np
import jax.numpy as jnp

from tkemix import edge_viscosity
from tkemix.backends.columns import map_edges


def expected_viscosity(tke_av, dolic_c, dolic_e, cell_idx, cell_blk):
    """Edge values computed level by level."""
    nblocks, nlevs, nproma = tke_av.shape
    out = np.zeros(nlevs)
    for k in range(dolic_e):
        values = []
        for idx, blk in zip(cell_idx, cell_blk):
            if 0 <= idx < nproma and 0 <= blk < nblocks and k < dolic_c[blk, idx]:
                values.append(tke_av[blk, k, idx])
        if values:
            out[k] = np.mean(values)
    return out


def test_uniform_field(constants, buffers):
    """
    A uniform viscosity is kept on the edges that have at least one wet neighbour.
    """
    nb, nl, npr = constants.nblocks, constants.nlevs, constants.nproma
    tke_av = np.ones((nb, nl, npr))
    dolic_c = buffers['dolic_c']
    for jb in range(nb):
        out = map_edges(
            jnp.asarray(buffers['dolic_e'][jb]), jnp.asarray(buffers['edges_cell_idx'][jb].T),
            jnp.asarray(buffers['edges_cell_blk'][jb].T), jnp.asarray(tke_av),
            jnp.asarray(dolic_c)
        )
        for jc in range(npr):
            expected = expected_viscosity(
                tke_av, dolic_c, buffers['dolic_e'][jb, jc], buffers['edges_cell_idx'][jb, :, jc],
                buffers['edges_cell_blk'][jb, :, jc]
            )
            assert set(np.unique(expected)) <= {0., 1.}
            np.testing.assert_array_equal(np.asarray(out[jc]), expected)


def test_two_neighbours():
    """
    Mean of two wet neighbours, value of the only wet one and 0 without wet neighbour.
    """
    tke_av = np.zeros((1, 4, 3))
    tke_av[0, :, 0] = 2.
    tke_av[0, :, 1] = 4.
    dolic_c = np.array([[4, 2, 0]], dtype='int32')
    out = edge_viscosity(
        jnp.asarray(3), jnp.array([0, 1]), jnp.array([0, 0]), jnp.asarray(tke_av),
        jnp.asarray(dolic_c)
    )
    np.testing.assert_allclose(np.asarray(out), [3., 3., 2., 0.])
    out = edge_viscosity(
        jnp.asarray(4), jnp.array([2, 5]), jnp.array([0, 0]), jnp.asarray(tke_av),
        jnp.asarray(dolic_c)
    )
    np.testing.assert_array_equal(np.asarray(out), 0.)
