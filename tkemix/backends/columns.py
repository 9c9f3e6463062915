"""
Column helpers shared by the backends.

The backends read the fields of the closure in a :class:`~closures.tke.ColumnInput` with one
column per row, run the column kernels mapped over the rows, and route every field of the
:class:`~closures.tke.ColumnOutput` to the view of the buffer or of the scratch field with the
same name.

"""

import dataclasses
from typing import Dict, Tuple

import jax
from jaxtyping import Float, Int, Array

from tkemix.constants import TkeConstants, TkeParameters
from tkemix.fields import FieldView, ArrNl, ArrBlNlNp
from tkemix.memory import ScratchFields
from tkemix.closures.tke import ColumnInput, ColumnOutput, tke_column
from tkemix.closures.edges import edge_viscosity

COLUMN_INPUT_NAMES: Tuple[str, ...] = tuple(f.name for f in dataclasses.fields(ColumnInput))
"""Names of the buffers read by the cell kernel."""
COLUMN_OUTPUT_NAMES: Tuple[str, ...] = tuple(f.name for f in dataclasses.fields(ColumnOutput))
"""Names of the buffers and scratch fields written by the cell kernel."""


def output_views(
        views: Dict[str, FieldView],
        scratch: ScratchFields
    ) -> Dict[str, FieldView]:
    """
    Views where the outputs of the cell kernel are written.

    The outputs that are buffers of :class:`~fields.TkeBuffers` go to the buffer, the other ones
    go to the scratch field with the same name.

    Parameters
    ----------
    views : Dict[str, FieldView]
        Views over the buffers of the host model.
    scratch : ScratchFields
        Scratch fields of the backend.

    Returns
    -------
    targets : Dict[str, FieldView]
        View of every output of :class:`~closures.tke.ColumnOutput`, by name.
    """
    return {name: scratch[name] if name in scratch else views[name] for name in COLUMN_OUTPUT_NAMES}


def to_rows(arr: jax.Array) -> jax.Array:
    """Put the column axis of a block first : (nlevs, nproma) to (nproma, nlevs)."""
    return arr.T if arr.ndim == 2 else arr


def map_cells(
        cols: ColumnInput,
        zlev_i: ArrNl,
        constants: TkeConstants,
        params: TkeParameters
    ) -> ColumnOutput:
    """
    Run the cell kernel on every row of :code:`cols`.

    The constants and the parameters are closed over, they are static for the kernel.
    """
    return jax.vmap(lambda col: tke_column(col, zlev_i, constants, params))(cols)


def map_edges(
        dolic_e: Int[Array, 'n'],
        cell_idx: Int[Array, 'n 2'],
        cell_blk: Int[Array, 'n 2'],
        tke_av: ArrBlNlNp,
        dolic_c: Int[Array, 'nblocks nproma']
    ) -> Float[Array, 'n nlevs']:
    """Run the edge kernel on every row of the edge fields."""
    return jax.vmap(edge_viscosity, in_axes=(0, 0, 0, None, None))(
        dolic_e, cell_idx, cell_blk, tke_av, dolic_c
    )

