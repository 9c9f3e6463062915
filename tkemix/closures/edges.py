r"""
Interpolation of the eddy-viscosity from the cells to the edges.

The closure computes the eddy-viscosity at the cell centers, the momentum equation of the host
model needs it on the edges. The function :func:`edge_viscosity` computes it for one edge column
from the two cells adjacent to the edge, it is mapped over the edges by the backends.

"""

import jax.numpy as jnp
from jaxtyping import Float, Int, Array

from tkemix.fields import ArrNl, ArrBlNlNp


def edge_viscosity(
        dolic_e: Int[Array, ''],
        cell_idx: Int[Array, '2'],
        cell_blk: Int[Array, '2'],
        tke_av: ArrBlNlNp,
        dolic_c: Int[Array, 'nblocks nproma']
    ) -> ArrNl:
    r"""
    Compute the eddy-viscosity of one edge column.

    A neighbour cell is valid at a level if its indices are inside the domain and if the level is
    above its number of wet levels. The edge value is the mean of the valid neighbours, the value
    of the only valid one, or 0 if none is valid. The levels under :code:`dolic_e` are 0.

    Parameters
    ----------
    dolic_e : int
        Number of wet levels of the edge.
    cell_idx : int :class:`~jax.Array` of shape (2)
        Column indices of the two adjacent cells.
    cell_blk : int :class:`~jax.Array` of shape (2)
        Block indices of the two adjacent cells.
    tke_av : float :class:`~jax.Array` of shape (nblocks, nlevs, nproma)
        Eddy-viscosity at the cell centers :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    dolic_c : int :class:`~jax.Array` of shape (nblocks, nproma)
        Number of wet levels of the cells.

    Returns
    -------
    a_veloc_v : float :class:`~jax.Array` of shape (nlevs)
        Eddy-viscosity on the edge :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    """
    nblocks, nlevs, nproma = tke_av.shape
    lev = jnp.arange(nlevs)
    in_domain = (cell_idx >= 0) & (cell_idx < nproma) & (cell_blk >= 0) & (cell_blk < nblocks)
    idx = jnp.clip(cell_idx, 0, nproma-1)
    blk = jnp.clip(cell_blk, 0, nblocks-1)

    values = tke_av[blk, :, idx]
    valid = in_domain[:, None] & (lev[None, :] < dolic_c[blk, idx][:, None])
    n_valid = jnp.sum(valid, axis=0)
    total = jnp.sum(jnp.where(valid, values, 0.), axis=0)
    a_veloc_v = jnp.where(n_valid > 0, total / jnp.maximum(n_valid, 1), 0.)
    return jnp.where(lev < dolic_e, a_veloc_v, 0.)
