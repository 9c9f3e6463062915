"""
Export of the TKE budget.

The functions of this module copy the TKE and the terms of its budget from the views of a backend
in an :class:`xarray.Dataset`, check the closure of the budget and write it on a NetCDF file. They
can be obtained by the prefix :code:`tkemix.diagnostics.` or directly by :code:`tkemix.`.

"""

from typing import Dict

import numpy as np
import xarray as xr

from tkemix.fields import FieldView
from tkemix.memory import MemoryPolicyAbstract

BUDGET_TERMS = (
    'tke_tbpr', 'tke_tspr', 'tke_tdif', 'tke_tdis', 'tke_twin', 'tke_tiwf', 'tke_tbck'
)
"""Tendencies whose sum is the total tendency :code:`tke_ttot`."""
BUDGET_VARIABLES = ('tke', 'tke_ttot') + BUDGET_TERMS + ('tke_lmix', 'tke_pr')
"""Variables of the budget dataset."""


def budget_to_ds(views: Dict[str, FieldView], policy: MemoryPolicyAbstract) -> xr.Dataset:
    """
    Exports the TKE budget in an xarray.Dataset.

    The values are copied on the host. The dimensions of the dataset are :code:`block`,
    :code:`level` and :code:`column`, the variables are the ones of :data:`BUDGET_VARIABLES`.

    Parameters
    ----------
    views : Dict[str, FieldView]
        Views of the backend by buffer name.
    policy : MemoryPolicyAbstract
        Memory policy of the backend.

    Returns
    -------
    ds : xarray.Dataset
        Dataset of the budget.
    """
    variables = {
        name: (('block', 'level', 'column'), policy.to_host(views[name]))
        for name in BUDGET_VARIABLES
    }
    return xr.Dataset(variables)


def budget_residual(ds: xr.Dataset) -> xr.DataArray:
    r"""
    Residual of the budget.

    Returns
    -------
    residual : xarray.DataArray
        :code:`tke_ttot` minus the sum of the terms of :data:`BUDGET_TERMS`
        :math:`\left[\text m^2 \cdot \text s^{-3}\right]`, 0 up to rounding errors.
    """
    return ds['tke_ttot'] - sum(ds[name] for name in BUDGET_TERMS)


def budget_to_nc(ds: xr.Dataset, nc_path: str) -> None:
    """
    Write the budget on a NetCDF file.

    Parameters
    ----------
    ds : xarray.Dataset
        Dataset from :func:`budget_to_ds`.
    nc_path : str
        Path of the file.
    """
    ds = ds.assign_attrs(max_abs_residual=float(np.abs(budget_residual(ds)).max()))
    ds.to_netcdf(nc_path)
