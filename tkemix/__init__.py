"""
Importation of tkemix classes and functions for shortcuts.
"""

import jax

jax.config.update('jax_enable_x64', True)

from .constants import (
    TkeConstants, TkeParameters, VMIX_TKE, IDEMIX_TKE_COUPLED, VCOR_ZLEVEL, VCOR_ZSTAR
)
from .fields import (
    FieldView, IndexRange, GridBuffers, OceanStateBuffers, AtmoFluxesBuffers,
    AtmosForOceanBuffers, SeaIceBuffers, TkeBuffers, BUFFER_SHAPES, SCRATCH_SHAPES
)
from .memory import MemoryPolicyAbstract, HostMemoryPolicy, DeviceMemoryPolicy, ScratchFields
from .functions import tridiag_solve
from .closures.tke import tke_column, density_eos80, ColumnInput, ColumnOutput
from .closures.edges import edge_viscosity
from .backend import TkeBackendAbstract, ViewBinder, ViewState
from .backends.cpu import CpuBackend
from .backends.gpu import GpuBackend
from .backends.launch import VmapLaunch, GroupMapLaunch
from .backends_registry import BACKENDS_REGISTRY
from .diagnostics import budget_to_ds, budget_residual, budget_to_nc
from .tke import Tke
