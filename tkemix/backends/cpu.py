"""
CPU backend.

The :class:`CpuBackend` runs the closure block after block : for every block of the active range
it reads the fields of the block, runs the column kernel vectorized over all the columns of the
block with a single compiled function, and writes back only the active columns. The edges are
then done in the same way. This class can be obtained by the prefix :code:`tkemix.backends.cpu.`
or directly by :code:`tkemix.`.

"""

from __future__ import annotations
from functools import partial
from typing import Dict, Optional

from jax import jit

from tkemix.backend import TkeBackendAbstract, ViewBinder, _bundle_args
from tkemix.backends.columns import (
    COLUMN_INPUT_NAMES, output_views, to_rows, map_cells, map_edges
)
from tkemix.closures.tke import ColumnInput, ColumnOutput
from tkemix.constants import TkeConstants, TkeParameters
from tkemix.fields import (
    FieldView, IndexRange, ArrNl, GridBuffers, OceanStateBuffers, AtmoFluxesBuffers,
    AtmosForOceanBuffers, SeaIceBuffers, TkeBuffers
)
from tkemix.memory import MemoryPolicyAbstract, HostMemoryPolicy, ScratchFields


@partial(jit, static_argnames=('constants', 'params'))
def cells_block(
        cols: ColumnInput,
        zlev_i: ArrNl,
        constants: TkeConstants,
        params: TkeParameters
    ) -> ColumnOutput:
    """Compiled run of the cell kernel on the columns of one block."""
    return map_cells(cols, zlev_i, constants, params)


edges_block = jit(map_edges)


class CpuBackend(TkeBackendAbstract):
    """
    Backend that runs the closure block after block on the host.

    Parameters
    ----------
    constants : TkeConstants
        Domain sizes, scheme selectors and physical constants.
    params : TkeParameters, optional, default=TkeParameters()
        Coefficients of the closure.
    policy : MemoryPolicyAbstract, optional, default=HostMemoryPolicy()
        Memory policy of the buffers.

    Attributes
    ----------
    constants : TkeConstants
        cf. parameters.
    params : TkeParameters
        cf. parameters.
    policy : MemoryPolicyAbstract
        cf. parameters.
    scratch : ScratchFields
        Internal fields of the backend.

    """

    def __init__(
            self,
            constants: TkeConstants,
            params: Optional[TkeParameters] = None,
            policy: Optional[MemoryPolicyAbstract] = None
        ) -> None:
        self.constants = constants
        self.params = TkeParameters() if params is None else params
        self.policy = HostMemoryPolicy() if policy is None else policy
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

    def _calc_cells(self, views: Dict[str, FieldView], cells: IndexRange) -> None:
        policy = self.policy
        targets = output_views(views, self.scratch)
        zlev_i = policy.read(views['zlev_i'])
        for jb in cells.blocks():
            start_index, end_index = cells.index_range(jb)
            cols = ColumnInput(**{
                name: to_rows(policy.read(views[name], jb)) for name in COLUMN_INPUT_NAMES
            })
            out = cells_block(cols, zlev_i, self.constants, self.params)
            active = slice(start_index, end_index+1)
            for name, view in targets.items():
                values = to_rows(getattr(out, name))
                if view.ndim == 3:
                    policy.write(view, values[:, active], (jb, slice(None), active))
                else:
                    policy.write(view, values[active], (jb, active))

    def _calc_edges(self, views: Dict[str, FieldView], edges: IndexRange) -> None:
        policy = self.policy
        tke_av = policy.read(self.scratch['tke_av'])
        dolic_c = policy.read(views['dolic_c'])
        for jb in edges.blocks():
            start_index, end_index = edges.index_range(jb)
            a_veloc_v = edges_block(
                policy.read(views['dolic_e'], jb),
                policy.read(views['edges_cell_idx'], jb).T,
                policy.read(views['edges_cell_blk'], jb).T,
                tke_av,
                dolic_c
            )
            active = slice(start_index, end_index+1)
            policy.write(views['a_veloc_v'], a_veloc_v.T[:, active], (jb, slice(None), active))

    def close(self) -> None:
        self._binder.release()
        self.scratch.free()

