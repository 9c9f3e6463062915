"""
Views and bundles of the buffers owned by the host model.

This module contains the objects that describe the memory handed to the closure : the
:class:`FieldView` descriptor that pairs a buffer with its shape, the bundles of raw buffers
(:class:`GridBuffers`, :class:`OceanStateBuffers`, :class:`AtmoFluxesBuffers`,
:class:`AtmosForOceanBuffers`, :class:`SeaIceBuffers` and :class:`TkeBuffers`) and the
:class:`IndexRange` of the active columns. These classes can be obtained by the prefix
:code:`tkemix.fields.` or directly by :code:`tkemix.`.

The 3D buffers are laid out :code:`(nblocks, nlevs, nproma)`, the 2D ones
:code:`(nblocks, nproma)`, the level ones :code:`(nlevs)` and the edge to cell maps
:code:`(nblocks, 2, nproma)`, all in C order.

"""

from __future__ import annotations
from typing import Any, Dict, Iterator, Tuple, TypeAlias
import dataclasses

import numpy as np
import equinox as eqx
from jaxtyping import Float, Int, Array

from tkemix.constants import TkeConstants
from tkemix.functions import _format_to_single_line

ArrNl: TypeAlias = Float[Array, 'nlevs']
"""Type that describes a float :class:`~jax.Array` of shape (nlevs), one column."""
ArrBlNlNp: TypeAlias = Float[Array, 'nblocks nlevs nproma']
"""Type that describes a float :class:`~jax.Array` of a 3D buffer."""
ArrBlNp: TypeAlias = Float[Array, 'nblocks nproma']
"""Type that describes a float :class:`~jax.Array` of a 2D buffer."""
IntBlNp: TypeAlias = Int[Array, 'nblocks nproma']
"""Type that describes an int :class:`~jax.Array` of a 2D buffer."""

BUFFER_SHAPES: Dict[str, Tuple[str, str]] = {
    # grid geometry
    'depth_cell_interface': ('3d', 'real'),
    'prism_center_dist_c': ('3d', 'real'),
    'inv_prism_center_dist_c': ('3d', 'real'),
    'prism_thick_c': ('3d', 'real'),
    'dolic_c': ('2d', 'int'),
    'dolic_e': ('2d', 'int'),
    'zlev_i': ('lev', 'real'),
    'wet_c': ('3d', 'real'),
    'edges_cell_idx': ('map', 'int'),
    'edges_cell_blk': ('map', 'int'),
    # ocean state
    'temp': ('3d', 'real'),
    'salt': ('3d', 'real'),
    'stretch_c': ('2d', 'real'),
    'eta_c': ('2d', 'real'),
    'p_vn_x1': ('3d', 'real'),
    'p_vn_x2': ('3d', 'real'),
    'p_vn_x3': ('3d', 'real'),
    # surface forcing
    'stress_xw': ('2d', 'real'),
    'stress_yw': ('2d', 'real'),
    'fu10': ('2d', 'real'),
    'concsum': ('2d', 'real'),
    # closure inputs and outputs
    'tke': ('3d', 'real'),
    'tke_plc': ('3d', 'real'),
    'hlc': ('2d', 'real'),
    'wlc': ('3d', 'real'),
    'u_stokes': ('2d', 'real'),
    'a_veloc_v': ('3d', 'real'),
    'a_temp_v': ('3d', 'real'),
    'a_salt_v': ('3d', 'real'),
    'iwe_tdis': ('3d', 'real'),
    'tke_tbpr': ('3d', 'real'),
    'tke_tspr': ('3d', 'real'),
    'tke_tdif': ('3d', 'real'),
    'tke_tdis': ('3d', 'real'),
    'tke_twin': ('3d', 'real'),
    'tke_tiwf': ('3d', 'real'),
    'tke_tbck': ('3d', 'real'),
    'tke_ttot': ('3d', 'real'),
    'tke_lmix': ('3d', 'real'),
    'tke_pr': ('3d', 'real'),
}
"""Layout kind and type of every external buffer, by name."""

SCRATCH_SHAPES: Dict[str, Tuple[str, str]] = {
    name: ('3d', 'real') for name in (
        'tke_old', 'dzw_stretched', 'dzt_stretched', 'nsqr', 'ssqr', 'a_dif', 'b_dif', 'c_dif',
        'a_tri', 'b_tri', 'c_tri', 'd_tri', 'sqrttke', 'forc', 'ke', 'cp', 'dp', 'tke_upd',
        'tke_unrest', 'tke_av', 'tke_kv'
    )
}
SCRATCH_SHAPES['forc_tke_surf_2d'] = ('2d', 'real')
"""Layout kind and type of every internal scratch field, by name."""


def field_dims(kind: str, constants: TkeConstants) -> Tuple[int, ...]:
    """
    Dimensions of a buffer from its layout kind.

    Parameters
    ----------
    kind : str
        One of :code:`'3d'`, :code:`'2d'`, :code:`'lev'` or :code:`'map'`.
    constants : TkeConstants
        Domain sizes.

    Returns
    -------
    dims : tuple of int
        Shape of the buffer.
    """
    dims = {
        '3d': (constants.nblocks, constants.nlevs, constants.nproma),
        '2d': (constants.nblocks, constants.nproma),
        'lev': (constants.nlevs,),
        'map': (constants.nblocks, 2, constants.nproma)
    }
    return dims[kind]


def field_dtype(type_kind: str, constants: TkeConstants) -> str:
    """Element type of a buffer from its type kind (:code:`'real'` or :code:`'int'`)."""
    return constants.real_dtype if type_kind == 'real' else 'int32'


class FieldView(eqx.Module):
    """
    Non-owning view over a buffer.

    The view pairs a zero-copy array :attr:`data` over the memory of the buffer with the metadata
    that was validated once when the view was built by a memory policy
    (cf. :class:`~memory.MemoryPolicyAbstract`). No bounds checking is done when the view is
    indexed. The view is invalid once the backend that built it is closed.

    Attributes
    ----------
    name : str
        Name of the field.
    dims : tuple of int
        Shape of the field.
    dtype : str
        Element type of the field.
    address : int
        Address of the first element of the buffer when the view was built.
    data : Any
        Array sharing the memory of the buffer (:class:`numpy.ndarray` on host,
        :class:`cupy.ndarray` on device).

    """

    name: str = eqx.field(static=True)
    dims: Tuple[int, ...] = eqx.field(static=True)
    dtype: str = eqx.field(static=True)
    address: int = eqx.field(static=True)
    data: Any

    @property
    def ndim(self) -> int:
        """Number of dimensions of the field."""
        return len(self.dims)

    def __getitem__(self, index: Any) -> Any:
        return self.data[index]


class _BufferBundle(eqx.Module):
    """Common behaviour of the bundles of raw buffers."""

    def items(self) -> Iterator[Tuple[str, Any]]:
        """Pairs of field name and buffer."""
        for field in dataclasses.fields(self):
            yield field.name, getattr(self, field.name)

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        """Names of the fields of the bundle."""
        return tuple(field.name for field in dataclasses.fields(cls))


class GridBuffers(_BufferBundle):
    r"""
    Geometry of the grid.

    Attributes
    ----------
    depth_cell_interface : 3D buffer
        Depth of the top interface of every cell :math:`[\text m]`.
    prism_center_dist_c : 3D buffer
        Distance between the center of a cell and the one of the cell above
        :math:`[\text m]`.
    inv_prism_center_dist_c : 3D buffer
        Inverse of :attr:`prism_center_dist_c` :math:`[\text m^{-1}]`.
    prism_thick_c : 3D buffer
        Thickness of the cells :math:`[\text m]`.
    dolic_c : 2D int buffer
        Number of wet levels of every cell column.
    dolic_e : 2D int buffer
        Number of wet levels of every edge column.
    zlev_i : level buffer
        Reference depth of the interfaces :math:`[\text m]`.
    wet_c : 3D buffer
        Wet mask of the cells (1 for water, 0 for land).
    edges_cell_idx : map int buffer
        Column index of the two cells adjacent to every edge.
    edges_cell_blk : map int buffer
        Block index of the two cells adjacent to every edge.

    """

    depth_cell_interface: Any
    prism_center_dist_c: Any
    inv_prism_center_dist_c: Any
    prism_thick_c: Any
    dolic_c: Any
    dolic_e: Any
    zlev_i: Any
    wet_c: Any
    edges_cell_idx: Any
    edges_cell_blk: Any


class OceanStateBuffers(_BufferBundle):
    r"""
    Ocean state.

    Attributes
    ----------
    temp : 3D buffer
        Temperature :math:`[° \text C]`.
    salt : 3D buffer
        Salinity :math:`[\text{psu}]`.
    stretch_c : 2D buffer
        Sea-level stretch factor of the layer thicknesses :math:`[\text{dimensionless}]`.
    eta_c : 2D buffer
        Sea surface height :math:`[\text m]`.
    p_vn_x1, p_vn_x2, p_vn_x3 : 3D buffers
        Cartesian components of the velocity at the cell centers
        :math:`\left[\text m \cdot \text s^{-1}\right]`.

    """

    temp: Any
    salt: Any
    stretch_c: Any
    eta_c: Any
    p_vn_x1: Any
    p_vn_x2: Any
    p_vn_x3: Any


class AtmoFluxesBuffers(_BufferBundle):
    r"""
    Wind stress at the ocean surface :math:`\left[\text N \cdot \text m^{-2}\right]`.

    Attributes
    ----------
    stress_xw : 2D buffer
        Zonal wind stress.
    stress_yw : 2D buffer
        Meridional wind stress.

    """

    stress_xw: Any
    stress_yw: Any


class AtmosForOceanBuffers(_BufferBundle):
    r"""
    Atmospheric state used by the ocean.

    Attributes
    ----------
    fu10 : 2D buffer
        Wind speed at 10 m :math:`\left[\text m \cdot \text s^{-1}\right]`.

    """

    fu10: Any


class SeaIceBuffers(_BufferBundle):
    """
    Sea-ice state.

    Attributes
    ----------
    concsum : 2D buffer
        Sea-ice concentration :math:`[\\text{dimensionless}]`.

    """

    concsum: Any


class TkeBuffers(_BufferBundle):
    r"""
    Inputs and outputs of the closure.

    :attr:`tke` is read and updated, :attr:`iwe_tdis` is only read, every other buffer is only
    written.

    Attributes
    ----------
    tke : 3D buffer
        Turbulent kinetic energy :math:`\left[\text m^2 \cdot \text s^{-2}\right]`.
    tke_plc : 3D buffer
        TKE source from Langmuir circulation :math:`\left[\text m^2 \cdot \text s^{-3}\right]`.
    hlc : 2D buffer
        Depth of the Langmuir cells :math:`[\text m]`.
    wlc : 3D buffer
        Vertical velocity of the Langmuir cells :math:`\left[\text m \cdot \text s^{-1}\right]`.
    u_stokes : 2D buffer
        Surface Stokes drift :math:`\left[\text m \cdot \text s^{-1}\right]`.
    a_veloc_v : 3D buffer
        Eddy-viscosity on the edges :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    a_temp_v, a_salt_v : 3D buffers
        Eddy-diffusivity for temperature and salinity
        :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    iwe_tdis : 3D buffer
        Dissipation of the internal wave energy :math:`\left[\text m^2 \cdot \text s^{-3}\right]`.
    tke_tbpr, tke_tspr, tke_tdif, tke_tdis, tke_twin, tke_tiwf, tke_tbck, tke_ttot : 3D buffers
        TKE budget : buoyancy production, shear production, vertical diffusion, dissipation, wind
        and wave input, internal wave input, background correction and total tendency
        :math:`\left[\text m^2 \cdot \text s^{-3}\right]`.
    tke_lmix : 3D buffer
        Mixing length :math:`[\text m]`.
    tke_pr : 3D buffer
        Turbulent Prandtl number :math:`[\text{dimensionless}]`.

    """

    tke: Any
    tke_plc: Any
    hlc: Any
    wlc: Any
    u_stokes: Any
    a_veloc_v: Any
    a_temp_v: Any
    a_salt_v: Any
    iwe_tdis: Any
    tke_tbpr: Any
    tke_tspr: Any
    tke_tdif: Any
    tke_tdis: Any
    tke_twin: Any
    tke_tiwf: Any
    tke_tbck: Any
    tke_ttot: Any
    tke_lmix: Any
    tke_pr: Any


BUNDLES: Dict[str, type] = {
    'patch': GridBuffers,
    'ocean_state': OceanStateBuffers,
    'atmo_fluxes': AtmoFluxesBuffers,
    'atmos_for_ocean': AtmosForOceanBuffers,
    'sea_ice': SeaIceBuffers,
    'cvmix': TkeBuffers
}
"""Bundle classes by the name of the argument of :meth:`~backend.TkeBackendAbstract.calc`."""


class IndexRange(eqx.Module):
    """
    Active sub-range of the columns of a blocked grid.

    All the indices are 0-based and inclusive. The columns of block :code:`jb` that are computed
    go from :attr:`start_index` if :code:`jb` is :attr:`start_block` (else 0) to
    :attr:`end_index` if :code:`jb` is :attr:`end_block` (else :code:`block_size-1`). The bounds
    of the first and last blocks are column indices of the buffers, they are only limited by
    :code:`nproma` (cf. :meth:`check_fits`) and not by :attr:`block_size`, which is the width of
    the other blocks. The constructor takes all the attributes as parameters.

    Attributes
    ----------
    block_size : int
        Number of active columns in the blocks between the first and the last ones.
    start_block : int
        First active block.
    end_block : int
        Last active block.
    start_index : int
        First active column of the first block.
    end_index : int
        Last active column of the last block.

    Raises
    ------
    ValueError
        If an index is negative or if the range is inverted.

    """

    block_size: int
    start_block: int
    end_block: int
    start_index: int
    end_index: int

    def __check_init__(self):
        if self.block_size <= 0:
            raise ValueError('`block_size` must be positive.')
        if min(self.start_block, self.start_index, self.end_index) < 0:
            raise ValueError('The block and column indices must be positive or null.')
        if self.end_block < self.start_block:
            raise ValueError('`end_block` must not be lower than `start_block`.')
        if self.start_block == self.end_block and self.end_index < self.start_index:
            raise ValueError(_format_to_single_line("""
                On a single block range `end_index` must not be lower than `start_index`.
            """))

    @classmethod
    def from_tuple(cls, range_tuple: Tuple[int, int, int, int, int]) -> IndexRange:
        """
        Creates a range from the tuple :code:`(block_size, start_block, end_block, start_index,
        end_index)`.
        """
        return cls(*(int(i) for i in range_tuple))

    def blocks(self) -> range:
        """Active blocks in increasing order."""
        return range(self.start_block, self.end_block + 1)

    def index_range(self, jb: int) -> Tuple[int, int]:
        """
        Active columns of a block.

        Parameters
        ----------
        jb : int
            Index of the block.

        Returns
        -------
        start_index : int
            First active column of the block.
        end_index : int
            Last active column of the block (inclusive), lower than :code:`start_index` if the
            block has no active column.
        """
        start_index = self.start_index if jb == self.start_block else 0
        end_index = self.end_index if jb == self.end_block else self.block_size - 1
        return start_index, end_index

    def columns(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Block and column indices of all the active columns, block after block.

        Returns
        -------
        jb : int :class:`numpy.ndarray` of shape (n_columns)
            Block of every active column.
        jc : int :class:`numpy.ndarray` of shape (n_columns)
            Index of every active column in its block.
        """
        jbs, jcs = [], []
        for jb in self.blocks():
            start_index, end_index = self.index_range(jb)
            jc = np.arange(start_index, end_index+1, dtype='int32')
            jbs.append(np.full(jc.shape, jb, dtype='int32'))
            jcs.append(jc)
        return np.concatenate(jbs), np.concatenate(jcs)

    @property
    def n_columns(self) -> int:
        """Number of active columns."""
        return sum(max(end - start + 1, 0) for start, end in map(self.index_range, self.blocks()))

    def check_fits(self, constants: TkeConstants) -> None:
        """
        Check that the range fits in the domain.

        Raises
        ------
        ValueError
            If :attr:`block_size`, :attr:`start_index` or :attr:`end_index` do not fit in
            :code:`nproma` columns or if :attr:`end_block` is not lower than :code:`nblocks`.
        """
        if self.block_size > constants.nproma:
            raise ValueError('`block_size` must not be greater than `nproma`.')
        if max(self.start_index, self.end_index) >= constants.nproma:
            raise ValueError('`start_index` and `end_index` must be lower than `nproma`.')
        if self.end_block >= constants.nblocks:
            raise ValueError('`end_block` must be lower than `nblocks`.')
