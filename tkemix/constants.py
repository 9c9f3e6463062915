"""
Physical constants and closure parameters.

This module contains the :class:`TkeConstants` class which describes the domain sizes, the scheme
selectors and the physical constants given once at the construction of a backend, and the
:class:`TkeParameters` class which gathers the tunable coefficients of the TKE closure. These
classes can be obtained by the prefix :code:`tkemix.constants.` or directly by :code:`tkemix.`.

"""

from __future__ import annotations
import math
import warnings
from typing import Any, Dict

import yaml
import equinox as eqx

from tkemix.functions import _format_to_single_line


VMIX_TKE = 2
"""Value of :attr:`TkeConstants.mix_scheme` selecting the TKE vertical mixing."""
IDEMIX_TKE_COUPLED = 4
"""Value of :attr:`TkeConstants.coupling_variant` adding the internal wave dissipation to TKE."""
VCOR_ZLEVEL = 0
"""Value of :attr:`TkeConstants.correction_variant` for fixed z-levels."""
VCOR_ZSTAR = 1
"""Value of :attr:`TkeConstants.correction_variant` for the z* coordinate."""
REAL_DTYPES = ('float64', 'float32')
"""Floating types accepted for the real buffers."""


def _read_yaml(yaml_path: str) -> Dict[str, Any]:
    with open(yaml_path, 'r', encoding='utf-8') as f:
        metadatas = yaml.safe_load(f)
    if not isinstance(metadatas, dict):
        raise ValueError(_format_to_single_line(f"""
            The file `{yaml_path}` should contain a mapping of parameter names to values.
        """))
    return metadatas


class TkeConstants(eqx.Module):
    r"""
    Domain sizes, scheme selectors and physical constants of a TKE backend.

    The instance is given to a backend at its construction and never changes after. The
    constructor takes all the attributes as parameters, the domain sizes first.

    Attributes
    ----------
    nproma : int
        Number of columns in a block.
    nlevs : int
        Number of vertical levels of the 3D buffers.
    nblocks : int
        Number of blocks.
    mix_scheme : int, default=2
        Vertical mixing scheme, only :data:`VMIX_TKE` is implemented.
    coupling_variant : int, default=0
        Coupling with the internal wave model, :data:`IDEMIX_TKE_COUPLED` adds the internal wave
        dissipation :code:`iwe_tdis` as a TKE source, any other value ignores it.
    correction_variant : int, default=0
        Vertical coordinate, :data:`VCOR_ZLEVEL` or :data:`VCOR_ZSTAR` (layer thicknesses
        stretched by the sea-level stretch factor).
    dtime : float, default=0.
        Time-step of the closure :math:`[\text s]`.
    reference_density : float, default=1025.022
        Reference density of saltwater :math:`[\text{kg} \cdot \text{m}^{-3}]`.
    grav : float, default=9.80665
        Gravity acceleration :math:`[\text{m} \cdot \text{s}^{-2}]`.
    langmuir_enabled : bool, default=False
        Add the Langmuir circulation source term to the TKE equation.
    langmuir_coefficient : float, default=0.15
        Langmuir circulation coefficient :math:`[\text{dimensionless}]`.
    reference_pressure : float, default=1035*9.80665e-4
        Pressure increase per meter of depth :math:`[\text{dbar} \cdot \text{m}^{-1}]`.
    pi : float, default=math.pi
        The :math:`\pi` constant.
    real_dtype : str, default='float64'
        Floating type of the real buffers, one of :data:`REAL_DTYPES`.

    Raises
    ------
    ValueError
        If a size is not positive, if a scheme selector is unknown or if a physical constant is
        out of its range.

    Warns
    -----
    Null time-step
        If :attr:`dtime` is 0, the TKE is then only floored and the tendencies are 0.

    """

    nproma: int
    nlevs: int
    nblocks: int
    mix_scheme: int = VMIX_TKE
    coupling_variant: int = 0
    correction_variant: int = VCOR_ZLEVEL
    dtime: float = 0.
    reference_density: float = 1025.022
    grav: float = 9.80665
    langmuir_enabled: bool = False
    langmuir_coefficient: float = 0.15
    reference_pressure: float = 1035.*9.80665e-4
    pi: float = math.pi
    real_dtype: str = 'float64'

    def __check_init__(self):
        if min(self.nproma, self.nlevs, self.nblocks) <= 0:
            raise ValueError('`nproma`, `nlevs` and `nblocks` must be positive.')
        if self.mix_scheme != VMIX_TKE:
            raise ValueError(_format_to_single_line(f"""
                `mix_scheme` {self.mix_scheme} is not available, only the TKE scheme
                ({VMIX_TKE}) is implemented.
            """))
        if self.correction_variant not in (VCOR_ZLEVEL, VCOR_ZSTAR):
            raise ValueError(_format_to_single_line(f"""
                `correction_variant` must be {VCOR_ZLEVEL} (z-levels) or {VCOR_ZSTAR} (z*).
            """))
        if self.real_dtype not in REAL_DTYPES:
            raise ValueError(f'`real_dtype` must be one of {REAL_DTYPES}.')
        if self.reference_density <= 0 or self.grav <= 0:
            raise ValueError('`reference_density` and `grav` must be positive.')
        if self.dtime < 0:
            raise ValueError('`dtime` must be positive or null.')
        if self.dtime == 0:
            warnings.warn(_format_to_single_line("""
                The time-step `dtime` is null : the TKE will only be floored and all the
                tendencies will be 0.
            """))

    @property
    def idemix_coupled(self) -> bool:
        """The internal wave dissipation is a source of TKE."""
        return self.coupling_variant == IDEMIX_TKE_COUPLED

    @property
    def zstar(self) -> bool:
        """The layer thicknesses are stretched by the sea-level stretch factor."""
        return self.correction_variant == VCOR_ZSTAR

    @classmethod
    def from_yaml(cls, yaml_path: str, **overrides: Any) -> TkeConstants:
        """
        Creates the constants from a *yaml* configuration file.

        The keys of the file must be the names of the attributes, unknown keys are ignored with a
        warning. The keyword arguments :code:`overrides` take precedence over the file, which is
        usefull for the domain sizes that often come from the host model.

        Parameters
        ----------
        yaml_path : str
            Path of the *yaml* file.
        overrides : Any
            Values of attributes that replace the ones of the file.

        Returns
        -------
        constants : TkeConstants
            The constants described by the file.
        """
        metadatas = _read_yaml(yaml_path)
        metadatas.update(overrides)
        known = {f for f in cls.__dataclass_fields__}
        unknown = sorted(set(metadatas) - known)
        if unknown:
            warnings.warn(f'Unknown keys ignored in `{yaml_path}` : {unknown}.')
        return cls(**{k: v for k, v in metadatas.items() if k in known})


class TkeParameters(eqx.Module):
    r"""
    Set of the coefficients used in the TKE closure.

    The default values are the ones of the CVMix TKE scheme as used in ICON-O. The constructor
    takes all the attributes as parameters.

    Attributes
    ----------
    c_k : float, default=0.1
        Coefficient linking the eddy-viscosity to the mixing length and the square root of TKE
        :math:`[\text{dimensionless}]`.
    c_eps : float, default=0.7
        Dissipation coefficient :math:`[\text{dimensionless}]`.
    alpha_tke : float, default=30.
        Ratio between the TKE diffusivity and the eddy-viscosity :math:`[\text{dimensionless}]`.
    cd : float, default=3.75
        Surface wind input coefficient :math:`[\text{dimensionless}]`.
    mxl_min : float, default=1e-8
        Minimal mixing length :math:`[\text m]`.
    tke_min : float, default=1e-6
        Floor of the TKE after the solve :math:`\left[\text m^2 \cdot \text s^{-2}\right]`.
    kappa_m_min : float, default=0.
        Minimal eddy-viscosity :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    kappa_h_min : float, default=0.
        Minimal eddy-diffusivity :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    kappa_m_max : float, default=100.
        Maximal eddy-viscosity :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    prandtl_min : float, default=1.
        Lower bound of the turbulent Prandtl number.
    prandtl_max : float, default=10.
        Upper bound of the turbulent Prandtl number.
    prandtl_ri_factor : float, default=6.6
        Slope of the Prandtl number as a function of the Richardson number.
    nsqr_min : float, default=1e-12
        Minimal buoyancy frequency in the mixing length :math:`[\text s^{-2}]`.
    ssqr_min : float, default=1e-12
        Minimal shear in the Richardson number :math:`[\text s^{-2}]`.
    stokes_drift_factor : float, default=0.016
        Ratio between the surface Stokes drift and the 10 m wind speed.

    """

    c_k: float = 0.1
    c_eps: float = 0.7
    alpha_tke: float = 30.
    cd: float = 3.75
    mxl_min: float = 1e-8
    tke_min: float = 1e-6
    kappa_m_min: float = 0.
    kappa_h_min: float = 0.
    kappa_m_max: float = 100.
    prandtl_min: float = 1.
    prandtl_max: float = 10.
    prandtl_ri_factor: float = 6.6
    nsqr_min: float = 1e-12
    ssqr_min: float = 1e-12
    stokes_drift_factor: float = 0.016

    def __check_init__(self):
        if self.tke_min < 0:
            raise ValueError('`tke_min` must be positive or null.')
        if self.mxl_min <= 0:
            raise ValueError('`mxl_min` must be positive.')
        if not 0 < self.prandtl_min <= self.prandtl_max:
            raise ValueError('`prandtl_min` must be positive and lower than `prandtl_max`.')

    @classmethod
    def from_yaml(cls, yaml_path: str) -> TkeParameters:
        """
        Creates a set of parameters from a *yaml* file.

        Only the keys corresponding to an attribute are taken in account.

        Parameters
        ----------
        yaml_path : str
            Path of the *yaml* file.

        Returns
        -------
        params : TkeParameters
            The parameters of the file, default values for the missing ones.
        """
        metadatas = _read_yaml(yaml_path)
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: float(v) for k, v in metadatas.items() if k in known})
