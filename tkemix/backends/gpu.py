"""
GPU backend.

The :class:`GpuBackend` flattens the active columns of a call in a single launch geometry, one
unit per column, gathers the inputs of every unit, maps the column kernel on the geometry with a
launch strategy (cf. :mod:`backends.launch`) and scatters the outputs of the active units back in
the fields. One launch is done for the cells and one for the edges. The buffers must already be
on the device : the backend never copies them between host and device. This class can be obtained
by the prefix :code:`tkemix.backends.gpu.` or directly by :code:`tkemix.`.

"""

from __future__ import annotations
from functools import partial
from typing import Any, Dict, Optional, Tuple

import numpy as np
import jax
import jax.numpy as jnp
from jax import jit
from jaxtyping import Int, Array

from tkemix.backend import TkeBackendAbstract, ViewBinder, _bundle_args
from tkemix.backends.columns import COLUMN_INPUT_NAMES, output_views
from tkemix.backends.launch import LaunchStrategyAbstract, LAUNCH_STRATEGIES
from tkemix.closures.tke import ColumnInput, ColumnOutput, tke_column
from tkemix.closures.edges import edge_viscosity
from tkemix.constants import TkeConstants, TkeParameters
from tkemix.fields import (
    FieldView, IndexRange, ArrNl, ArrBlNlNp, GridBuffers, OceanStateBuffers, AtmoFluxesBuffers,
    AtmosForOceanBuffers, SeaIceBuffers, TkeBuffers
)
from tkemix.memory import MemoryPolicyAbstract, DeviceMemoryPolicy, ScratchFields
from tkemix.functions import _format_to_single_line


def launch_geometry(n_columns: int, group_size: int) -> Tuple[int, int]:
    """
    Launch geometry of a number of columns.

    Parameters
    ----------
    n_columns : int
        Number of columns to compute.
    group_size : int
        Number of units in a group.

    Returns
    -------
    units_per_group : int
        Number of units in a group.
    group_count : int
        Number of groups, enough to have one unit per column.
    """
    return group_size, -(-n_columns // group_size)


def unit_columns(
        index_range: IndexRange,
        n_units: int,
        nblocks: int
    ) -> Tuple[np.ndarray, np.ndarray]:
    """
    Column computed by every unit of a launch geometry.

    The active columns of the range are given to the first units in order, the padding units
    get the block :code:`nblocks`, out of the domain, so that their outputs are dropped.

    Parameters
    ----------
    index_range : IndexRange
        Active columns.
    n_units : int
        Number of units of the geometry, not lower than the number of active columns.
    nblocks : int
        Number of blocks of the domain.

    Returns
    -------
    jb : int :class:`numpy.ndarray` of shape (n_units)
        Block of the column of every unit.
    jc : int :class:`numpy.ndarray` of shape (n_units)
        Index of the column of every unit in its block.
    """
    jb_active, jc_active = index_range.columns()
    jb = np.full(n_units, nblocks, dtype='int32')
    jc = np.zeros(n_units, dtype='int32')
    jb[:jb_active.size] = jb_active
    jc[:jc_active.size] = jc_active
    return jb, jc


def _gather(arr: jax.Array, jb: jax.Array, jc: jax.Array, geometry: Tuple[int, int]) -> jax.Array:
    if arr.ndim == 2:
        values = arr[jb, jc]
    else:
        values = arr[jb, :, jc]
    return values.reshape(geometry + values.shape[1:])


def _scatter(arr: jax.Array, values: jax.Array, jb: jax.Array, jc: jax.Array) -> jax.Array:
    values = values.reshape((-1,) + values.shape[2:])
    if arr.ndim == 2:
        return arr.at[jb, jc].set(values, mode='drop')
    return arr.at[jb, :, jc].set(values, mode='drop')


@partial(jit, static_argnames=(
    'constants', 'params', 'launcher', 'units_per_group', 'group_count'
))
def cells_dispatch(
        fields: ColumnInput,
        zlev_i: ArrNl,
        olds: ColumnOutput,
        unit_jb: Int[Array, 'n'],
        unit_jc: Int[Array, 'n'],
        constants: TkeConstants,
        params: TkeParameters,
        launcher: LaunchStrategyAbstract,
        units_per_group: int,
        group_count: int
    ) -> ColumnOutput:
    """
    Run the cell kernel on a range of columns with one launch.

    Parameters
    ----------
    fields : ColumnInput
        Input fields of the whole domain, of shapes (nblocks, nlevs, nproma) or (nblocks, nproma).
    zlev_i : float :class:`~jax.Array` of shape (nlevs)
        Reference depth of the interfaces :math:`[\\text m]`.
    olds : ColumnOutput
        Current values of the output fields of the whole domain.
    unit_jb : int :class:`~jax.Array` of shape (group_count*units_per_group)
        Block of the column of every unit, :code:`nblocks` for the padding units.
    unit_jc : int :class:`~jax.Array` of shape (group_count*units_per_group)
        Index of the column of every unit in its block.
    constants : TkeConstants
        Physical constants and scheme selectors.
    params : TkeParameters
        Coefficients of the closure.
    launcher : LaunchStrategyAbstract
        Launch strategy.
    units_per_group : int
        Number of units in a group.
    group_count : int
        Number of groups.

    Returns
    -------
    news : ColumnOutput
        Output fields of the whole domain, the active columns are replaced.
    """
    nblocks = olds.tke.shape[0]
    geometry = (group_count, units_per_group)
    jb_gather = jnp.minimum(unit_jb, nblocks-1)
    cols = jax.tree_util.tree_map(lambda a: _gather(a, jb_gather, unit_jc, geometry), fields)
    kernel = lambda col: tke_column(col, zlev_i, constants, params)
    out = launcher.launch(units_per_group, group_count, kernel, cols)
    return jax.tree_util.tree_map(lambda a, v: _scatter(a, v, unit_jb, unit_jc), olds, out)


@partial(jit, static_argnames=('launcher', 'units_per_group', 'group_count'))
def edges_dispatch(
        dolic_e: Int[Array, 'nblocks nproma'],
        edges_cell_idx: Int[Array, 'nblocks 2 nproma'],
        edges_cell_blk: Int[Array, 'nblocks 2 nproma'],
        tke_av: ArrBlNlNp,
        dolic_c: Int[Array, 'nblocks nproma'],
        a_veloc_v: ArrBlNlNp,
        unit_jb: Int[Array, 'n'],
        unit_jc: Int[Array, 'n'],
        launcher: LaunchStrategyAbstract,
        units_per_group: int,
        group_count: int
    ) -> ArrBlNlNp:
    """Run the edge kernel on a range of edge columns with one launch."""
    nblocks = a_veloc_v.shape[0]
    geometry = (group_count, units_per_group)
    jb_gather = jnp.minimum(unit_jb, nblocks-1)
    args = tuple(_gather(a, jb_gather, unit_jc, geometry)
                 for a in (dolic_e, edges_cell_idx, edges_cell_blk))
    kernel = lambda e: edge_viscosity(e[0], e[1], e[2], tke_av, dolic_c)
    out = launcher.launch(units_per_group, group_count, kernel, args)
    return _scatter(a_veloc_v, out, unit_jb, unit_jc)


class GpuBackend(TkeBackendAbstract):
    """
    Backend that runs the closure on all the columns of a call with one launch.

    Parameters
    ----------
    constants : TkeConstants
        Domain sizes, scheme selectors and physical constants.
    params : TkeParameters, optional, default=TkeParameters()
        Coefficients of the closure.
    policy : MemoryPolicyAbstract, optional, default=DeviceMemoryPolicy()
        Memory policy of the buffers, another policy can be given to run the dispatch on other
        memory.
    launcher : str or LaunchStrategyAbstract, default='vmap'
        Launch strategy or its name in :data:`~backends.launch.LAUNCH_STRATEGIES`.
    group_size : int, default=128
        Number of units in a group of the launch geometry.
    synchronous : bool, default=False
        Wait for the end of the writes before returning from :meth:`calc`. Else the caller must
        call :meth:`synchronize` before reading the outputs.

    Raises
    ------
    ValueError
        If the launch strategy is unknown or if :code:`group_size` is not positive.

    """

    def __init__(
            self,
            constants: TkeConstants,
            params: Optional[TkeParameters] = None,
            policy: Optional[MemoryPolicyAbstract] = None,
            launcher: Any = 'vmap',
            group_size: int = 128,
            synchronous: bool = False
        ) -> None:
        if isinstance(launcher, str):
            if launcher not in LAUNCH_STRATEGIES:
                raise ValueError(_format_to_single_line(f"""
                    `launcher` {launcher} not registered, the available ones are
                    {list(LAUNCH_STRATEGIES)}.
                """))
            launcher = LAUNCH_STRATEGIES[launcher]()
        if group_size <= 0:
            raise ValueError('`group_size` must be positive.')
        self.constants = constants
        self.params = TkeParameters() if params is None else params
        self.policy = DeviceMemoryPolicy() if policy is None else policy
        self.launcher = launcher
        self.group_size = group_size
        self.synchronous = synchronous
        self._binder = ViewBinder(constants, self.policy)
        self.scratch = ScratchFields(constants, self.policy)

    @property
    def state(self):
        """State of the views, cf. :class:`~backend.ViewState`."""
        return self._binder.state

    @property
    def views(self) -> Optional[Dict[str, FieldView]]:
        return self._binder.views or None

    def calc(
            self,
            patch: GridBuffers,
            cvmix: TkeBuffers,
            ocean_state: OceanStateBuffers,
            atmo_fluxes: AtmoFluxesBuffers,
            atmos_for_ocean: AtmosForOceanBuffers,
            sea_ice: SeaIceBuffers,
            cells: IndexRange,
            edges: IndexRange
        ) -> None:
        views = self._binder.bind(
            _bundle_args(patch, cvmix, ocean_state, atmo_fluxes, atmos_for_ocean, sea_ice)
        )
        cells.check_fits(self.constants)
        edges.check_fits(self.constants)
        self._calc_cells(views, cells)
        self._calc_edges(views, edges)
        if self.synchronous:
            self.synchronize()

    def _calc_cells(self, views: Dict[str, FieldView], cells: IndexRange) -> None:
        policy = self.policy
        targets = output_views(views, self.scratch)
        fields = ColumnInput(**{name: policy.read(views[name]) for name in COLUMN_INPUT_NAMES})
        olds = ColumnOutput(**{name: policy.read(view) for name, view in targets.items()})
        units_per_group, group_count = launch_geometry(cells.n_columns, self.group_size)
        unit_jb, unit_jc = unit_columns(cells, units_per_group*group_count, self.constants.nblocks)
        news = cells_dispatch(
            fields, policy.read(views['zlev_i']), olds, jnp.asarray(unit_jb), jnp.asarray(unit_jc),
            self.constants, self.params, self.launcher, units_per_group, group_count
        )
        for name, view in targets.items():
            policy.write(view, getattr(news, name))

    def _calc_edges(self, views: Dict[str, FieldView], edges: IndexRange) -> None:
        policy = self.policy
        units_per_group, group_count = launch_geometry(edges.n_columns, self.group_size)
        unit_jb, unit_jc = unit_columns(edges, units_per_group*group_count, self.constants.nblocks)
        a_veloc_v = edges_dispatch(
            policy.read(views['dolic_e']), policy.read(views['edges_cell_idx']),
            policy.read(views['edges_cell_blk']), policy.read(self.scratch['tke_av']),
            policy.read(views['dolic_c']), policy.read(views['a_veloc_v']),
            jnp.asarray(unit_jb), jnp.asarray(unit_jc), self.launcher, units_per_group, group_count
        )
        policy.write(views['a_veloc_v'], a_veloc_v)

    def synchronize(self) -> None:
        """Wait for the end of the work issued by the last calls."""
        self.policy.synchronize()

    def close(self) -> None:
        self._binder.release()
        self.scratch.free()
