r"""
TKE closure for one water column.

This module contains the implementation of the turbulent kinetic energy (TKE) closure of
Gaspar et al. [1]_ in the formulation of the CVMix TKE scheme used in ICON-O [2]_. The function
:func:`tke_column` advances the TKE of one column by one time-step with an implicit vertical
diffusion, and computes the eddy-viscosity, the eddy-diffusivity and the terms of the TKE budget.
It is written for a single column and is mapped over the columns by the backends with
:func:`~jax.vmap`.

On a column of :code:`nlevs` levels with :code:`dolic` wet cells, level :math:`k` of a cell
variable is cell :math:`k` and level :math:`k` of an interface variable is the top interface of
cell :math:`k` (level 0 is the sea surface). Only the levels :math:`k <` :code:`dolic` are computed,
the sea floor interface is not carried and has a no-flux condition for TKE.

Functions
---------
tke_column
    main function, run one time-step of the closure on one column
density_eos80
    in-situ density from the UNESCO equation of state
compute_nsqr_ssqr
    buoyancy frequency and shear at the interfaces
compute_langmuir
    Langmuir circulation source term
compute_mxl
    mixing length
compute_ed
    eddy-viscosity, eddy-diffusivity and Prandtl number

References
----------
.. [1] P. Gaspar, Y. Grégoris and J.-M. Lefevre. A simple eddy kinetic energy model for
    simulations of the oceanic vertical mixing: tests at station Papa and long-term upper ocean
    study site (1990). Journal of Geophysical Research 95 pp. 16179-16193.
.. [2] C. Eden, M. Dietze, J. Jungclaus, N. Brüggemann and D. Olbers. A closure for internal
    wave-mean flow interaction. Part I: Energy conversion (2014). Journal of Physical
    Oceanography 44 pp. 3257-3278.

"""

from typing import Tuple

import equinox as eqx
import jax.numpy as jnp
from jax import lax
from jaxtyping import Float, Int, Array

from tkemix.constants import TkeConstants, TkeParameters
from tkemix.fields import ArrNl
from tkemix.functions import thomas_forward, thomas_backward

_SQRT2 = 1.4142135623730951


class ColumnInput(eqx.Module):
    """
    Inputs of the closure on one cell column.

    The attributes have the names of the buffers they are read from (cf.
    :data:`~fields.BUFFER_SHAPES`), the 3D buffers give arrays of shape (nlevs) and the 2D
    buffers give scalars.

    """

    dolic_c: Int[Array, '']
    depth_cell_interface: ArrNl
    prism_center_dist_c: ArrNl
    inv_prism_center_dist_c: ArrNl
    prism_thick_c: ArrNl
    wet_c: ArrNl
    temp: ArrNl
    salt: ArrNl
    p_vn_x1: ArrNl
    p_vn_x2: ArrNl
    p_vn_x3: ArrNl
    tke: ArrNl
    iwe_tdis: ArrNl
    stretch_c: Float[Array, '']
    eta_c: Float[Array, '']
    stress_xw: Float[Array, '']
    stress_yw: Float[Array, '']
    fu10: Float[Array, '']
    concsum: Float[Array, '']


class ColumnOutput(eqx.Module):
    """
    Outputs of the closure on one cell column.

    The attributes have the names of the buffers (cf. :data:`~fields.BUFFER_SHAPES`) or of the
    scratch fields (cf. :data:`~fields.SCRATCH_SHAPES`) they are written to.

    """

    # closure outputs
    tke: ArrNl
    a_temp_v: ArrNl
    a_salt_v: ArrNl
    tke_plc: ArrNl
    wlc: ArrNl
    hlc: Float[Array, '']
    u_stokes: Float[Array, '']
    tke_tbpr: ArrNl
    tke_tspr: ArrNl
    tke_tdif: ArrNl
    tke_tdis: ArrNl
    tke_twin: ArrNl
    tke_tiwf: ArrNl
    tke_tbck: ArrNl
    tke_ttot: ArrNl
    tke_lmix: ArrNl
    tke_pr: ArrNl
    # scratch
    tke_old: ArrNl
    dzw_stretched: ArrNl
    dzt_stretched: ArrNl
    nsqr: ArrNl
    ssqr: ArrNl
    a_dif: ArrNl
    b_dif: ArrNl
    c_dif: ArrNl
    a_tri: ArrNl
    b_tri: ArrNl
    c_tri: ArrNl
    d_tri: ArrNl
    sqrttke: ArrNl
    forc: ArrNl
    ke: ArrNl
    cp: ArrNl
    dp: ArrNl
    tke_upd: ArrNl
    tke_unrest: ArrNl
    tke_av: ArrNl
    tke_kv: ArrNl
    forc_tke_surf_2d: Float[Array, '']


def density_eos80(
        temp: ArrNl,
        salt: ArrNl,
        pressure: ArrNl
    ) -> ArrNl:
    r"""
    Compute the in-situ density with the UNESCO equation of state EOS-80.

    Parameters
    ----------
    temp : float :class:`~jax.Array` of shape (nlevs)
        Temperature :math:`[° \text C]`.
    salt : float :class:`~jax.Array` of shape (nlevs)
        Salinity :math:`[\text{psu}]`, the negative values are taken as 0.
    pressure : float :class:`~jax.Array` of shape (nlevs)
        Pressure :math:`[\text{dbar}]`.

    Returns
    -------
    rho : float :class:`~jax.Array` of shape (nlevs)
        Density :math:`\left[\text{kg} \cdot \text m^{-3}\right]`.

    Notes
    -----
    secant bulk modulus formulation with the pressure in bar
    \( \rho(S, T, p) = \frac{\rho(S, T, 0)}{1 - p / K(S, T, p)} \)
    """
    t = temp
    s = jnp.maximum(salt, 0.)
    s15 = s*jnp.sqrt(s)
    p = 0.1*pressure

    rho_w = 999.842594 + t*(6.793952e-2 + t*(-9.095290e-3 + t*(1.001685e-4 + t*(-1.120083e-6 +
        t*6.536332e-9))))
    rho_0 = rho_w + s*(8.24493e-1 + t*(-4.0899e-3 + t*(7.6438e-5 + t*(-8.2467e-7 +
        t*5.3875e-9)))) + s15*(-5.72466e-3 + t*(1.0227e-4 - t*1.6546e-6)) + 4.8314e-4*s*s

    k_w = 19652.21 + t*(148.4206 + t*(-2.327105 + t*(1.360477e-2 - t*5.155288e-5)))
    k_0 = k_w + s*(54.6746 + t*(-0.603459 + t*(1.09987e-2 - t*6.1670e-5))) + \
        s15*(7.944e-2 + t*(1.6483e-2 - t*5.3009e-4))
    a_w = 3.239908 + t*(1.43713e-3 + t*(1.16092e-4 - t*5.77905e-7))
    a_p = a_w + s*(2.2838e-3 + t*(-1.0981e-5 - t*1.6078e-6)) + 1.91075e-4*s15
    b_w = 8.50935e-5 + t*(-6.12293e-6 + t*5.2787e-8)
    b_p = b_w + s*(-9.9348e-7 + t*(2.0816e-8 + t*9.1697e-10))
    k_p = k_0 + p*(a_p + p*b_p)

    return rho_0 / (1.0 - p/k_p)


def compute_nsqr_ssqr(
        col: ColumnInput,
        interior: Float[Array, 'nlevs'],
        inv_dzt: ArrNl,
        zlev_i: ArrNl,
        constants: TkeConstants
    ) -> Tuple[ArrNl, ArrNl]:
    r"""
    Compute the buoyancy frequency and the shear at the interfaces.

    Parameters
    ----------
    col : ColumnInput
        Inputs of the column.
    interior : bool :class:`~jax.Array` of shape (nlevs)
        Interfaces between two wet cells of the column.
    inv_dzt : float :class:`~jax.Array` of shape (nlevs)
        Inverse of the stretched distance between cell centers :math:`[\text m^{-1}]`.
    zlev_i : float :class:`~jax.Array` of shape (nlevs)
        Reference depth of the interfaces :math:`[\text m]`.
    constants : TkeConstants
        Physical constants.

    Returns
    -------
    nsqr : float :class:`~jax.Array` of shape (nlevs)
        Squared buoyancy frequency :math:`[\text s^{-2}]`.
    ssqr : float :class:`~jax.Array` of shape (nlevs)
        Squared vertical shear of the velocity :math:`[\text s^{-2}]`.

    Notes
    -----
    both densities are taken at the pressure of the interface
    \( (N^2)_k = \frac{g}{\rho_0} \frac{\rho_k - \rho_{k-1}}{\Delta z_k} \)
    \( (S^2)_k = \sum_i \left( \frac{v^i_{k-1} - v^i_k}{\Delta z_k} \right)^2 \)
    """
    sfc_pressure = 0.
    if constants.zstar:
        sfc_pressure = col.eta_c*constants.reference_pressure
    pressure = zlev_i*constants.reference_pressure + sfc_pressure

    rho_up = density_eos80(jnp.roll(col.temp, 1), jnp.roll(col.salt, 1), pressure)
    rho_down = density_eos80(col.temp, col.salt, pressure)
    nsqr = constants.grav/constants.reference_density * (rho_down - rho_up) * inv_dzt
    nsqr = jnp.where(interior, nsqr, 0.)

    ssqr = jnp.zeros_like(nsqr)
    for vel in (col.p_vn_x1, col.p_vn_x2, col.p_vn_x3):
        ssqr = ssqr + ((jnp.roll(vel, 1) - vel) * inv_dzt)**2
    ssqr = jnp.where(interior, ssqr, 0.)

    return nsqr, ssqr


def compute_langmuir(
        col: ColumnInput,
        active: Float[Array, 'nlevs'],
        depth: ArrNl,
        dzt: ArrNl,
        column_depth: float,
        nsqr: ArrNl,
        constants: TkeConstants,
        params: TkeParameters
    ) -> Tuple[float, float, ArrNl, ArrNl]:
    r"""
    Compute the TKE source from Langmuir circulation.

    Parameters
    ----------
    col : ColumnInput
        Inputs of the column.
    active : bool :class:`~jax.Array` of shape (nlevs)
        Active levels of the column.
    depth : float :class:`~jax.Array` of shape (nlevs)
        Stretched depth of the interfaces :math:`[\text m]`.
    dzt : float :class:`~jax.Array` of shape (nlevs)
        Stretched thickness of the interface control volumes :math:`[\text m]`.
    column_depth : float
        Stretched depth of the sea floor :math:`[\text m]`.
    nsqr : float :class:`~jax.Array` of shape (nlevs)
        Squared buoyancy frequency :math:`[\text s^{-2}]`.
    constants : TkeConstants
        Physical constants.
    params : TkeParameters
        Coefficients of the closure.

    Returns
    -------
    u_stokes : float
        Surface Stokes drift :math:`\left[\text m \cdot \text s^{-1}\right]`.
    hlc : float
        Depth of the Langmuir cells :math:`[\text m]`.
    wlc : float :class:`~jax.Array` of shape (nlevs)
        Vertical velocity of the Langmuir cells :math:`\left[\text m \cdot \text s^{-1}\right]`.
    tke_plc : float :class:`~jax.Array` of shape (nlevs)
        TKE source :math:`\left[\text m^2 \cdot \text s^{-3}\right]`.

    Notes
    -----
    the Langmuir cells go down to the depth where the potential energy of the stratification
    overcomes the kinetic energy of the Stokes drift
    \( \sum_{k' \le k} \max(N^2_{k'}, 0) z_{k'} \Delta z_{k'} > \frac 1 2 u_s^2 \)
    \( w_{lc}(z) = c_{lc} u_s \sin(\pi z / h_{lc}) \qquad P_{lc} = w_{lc}^3 / h_{lc} \)
    """
    u_stokes = params.stokes_drift_factor * col.fu10 * (1.0 - col.concsum)
    pot_energy = jnp.cumsum(jnp.where(active, jnp.maximum(nsqr, 0.)*depth*dzt, 0.))
    reached = active & (pot_energy > 0.5*u_stokes**2)
    hlc = jnp.where(jnp.any(reached), depth[jnp.argmax(reached)], column_depth)
    hlc = jnp.maximum(hlc, params.mxl_min)
    in_cells = active & (depth <= hlc)
    wlc = jnp.where(
        in_cells, constants.langmuir_coefficient*u_stokes*jnp.sin(constants.pi*depth/hlc), 0.
    )
    tke_plc = wlc**3 / hlc
    return u_stokes, hlc, wlc, tke_plc


def compute_mxl(
        sqrttke: ArrNl,
        nsqr: ArrNl,
        dzw: ArrNl,
        dolic: int,
        params: TkeParameters
    ) -> ArrNl:
    r"""
    Compute the mixing length.

    Parameters
    ----------
    sqrttke : float :class:`~jax.Array` of shape (nlevs)
        Square root of TKE :math:`\left[\text m \cdot \text s^{-1}\right]`.
    nsqr : float :class:`~jax.Array` of shape (nlevs)
        Squared buoyancy frequency :math:`[\text s^{-2}]`.
    dzw : float :class:`~jax.Array` of shape (nlevs)
        Stretched thickness of the cells :math:`[\text m]`.
    dolic : int
        Number of wet cells of the column.
    params : TkeParameters
        Coefficients of the closure.

    Returns
    -------
    mxl : float :class:`~jax.Array` of shape (nlevs)
        Mixing length :math:`[\text m]`.

    Notes
    -----
    buoyancy length scale
    \( l_k = \sqrt 2 \sqrt{k_k} / \sqrt{\max(N^2_k, N^2_{\min})} \)
    limited so that it is not larger than the distance to the surface and to the bottom
    \( l_k \le l_{k-1} + \Delta z_{k-1} \qquad l_0 = 0 \)
    \( l_k \le l_{k+1} + \Delta z_k \qquad l_{\text{dolic}-1} \le l_{\min} +
    \Delta z_{\text{dolic}-1} \)
    """
    nlevs, = sqrttke.shape
    mxl = _SQRT2 * sqrttke / jnp.sqrt(jnp.maximum(nsqr, params.nsqr_min))

    # distance to the surface
    mxl = mxl.at[0].set(0.)
    def body_fun1(k: int, x: ArrNl) -> ArrNl:
        return x.at[k].set(jnp.minimum(x[k], x[k-1] + dzw[k-1]))
    mxl = lax.fori_loop(1, nlevs, body_fun1, mxl)

    # distance to the bottom
    kbot = jnp.maximum(dolic - 1, 0)
    mxl = mxl.at[kbot].set(jnp.minimum(mxl[kbot], params.mxl_min + dzw[kbot]))
    def body_fun2(i: int, x: ArrNl) -> ArrNl:
        k = nlevs - 2 - i
        limited = jnp.minimum(x[k], x[k+1] + dzw[k])
        return x.at[k].set(jnp.where(k < kbot, limited, x[k]))
    mxl = lax.fori_loop(0, nlevs-1, body_fun2, mxl)

    return jnp.maximum(mxl, params.mxl_min)


def compute_ed(
        sqrttke: ArrNl,
        mxl: ArrNl,
        nsqr: ArrNl,
        ssqr: ArrNl,
        params: TkeParameters
    ) -> Tuple[ArrNl, ArrNl, ArrNl]:
    r"""
    Compute the eddy-viscosity, the eddy-diffusivity and the turbulent Prandtl number.

    Parameters
    ----------
    sqrttke : float :class:`~jax.Array` of shape (nlevs)
        Square root of TKE :math:`\left[\text m \cdot \text s^{-1}\right]`.
    mxl : float :class:`~jax.Array` of shape (nlevs)
        Mixing length :math:`[\text m]`.
    nsqr : float :class:`~jax.Array` of shape (nlevs)
        Squared buoyancy frequency :math:`[\text s^{-2}]`.
    ssqr : float :class:`~jax.Array` of shape (nlevs)
        Squared shear :math:`[\text s^{-2}]`.
    params : TkeParameters
        Coefficients of the closure.

    Returns
    -------
    kappa_m : float :class:`~jax.Array` of shape (nlevs)
        Eddy-viscosity :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    kappa_h : float :class:`~jax.Array` of shape (nlevs)
        Eddy-diffusivity :math:`\left[\text m^2 \cdot \text s^{-1}\right]`.
    prandtl : float :class:`~jax.Array` of shape (nlevs)
        Turbulent Prandtl number :math:`[\text{dimensionless}]`.

    Notes
    -----
    \( K_m = \min(K_{m,\max}, c_k l \sqrt k) \)
    \( {\rm Pr} = \min({\rm Pr}_{\max}, \max({\rm Pr}_{\min}, 6.6 {\rm Ri})) \qquad
    {\rm Ri} = N^2 / \max(S^2, S^2_{\min}) \)
    \( K_h = K_m / {\rm Pr} \)
    """
    kappa_m = jnp.minimum(params.kappa_m_max, params.c_k * mxl * sqrttke)
    rinum = nsqr / jnp.maximum(ssqr, params.ssqr_min)
    prandtl = jnp.clip(params.prandtl_ri_factor*rinum, params.prandtl_min, params.prandtl_max)
    kappa_h = kappa_m / prandtl
    return kappa_m, kappa_h, prandtl


def tke_column(
        col: ColumnInput,
        zlev_i: ArrNl,
        constants: TkeConstants,
        params: TkeParameters
    ) -> ColumnOutput:
    r"""
    Run one time-step of the TKE closure on one column.

    The TKE is advanced with an implicit vertical diffusion (tridiagonal problem solved with the
    Thomas algorithm), floored at :attr:`~constants.TkeParameters.tke_min`, and the eddy-viscosity
    and eddy-diffusivity are recomputed from the new TKE. The levels under :code:`dolic_c` are not
    computed : the TKE keeps its input value there and the other outputs are 0.

    Parameters
    ----------
    col : ColumnInput
        Inputs of the column.
    zlev_i : float :class:`~jax.Array` of shape (nlevs)
        Reference depth of the interfaces :math:`[\text m]`.
    constants : TkeConstants
        Physical constants and scheme selectors.
    params : TkeParameters
        Coefficients of the closure.

    Returns
    -------
    out : ColumnOutput
        New TKE, eddy coefficients, TKE budget and intermediate fields of the column.

    Notes
    -----
    tridiagonal problem at the active interfaces, with
    \( K_e = \alpha_{tke} K_m \) at the cell centers
    \( k^{n+1}_k - \Delta t \left( a_k (k^{n+1}_{k-1} - k^{n+1}_k) + c_k (k^{n+1}_{k+1} -
    k^{n+1}_k) \right) + \Delta t \frac{c_\epsilon \sqrt{k^n_k}}{l_k} k^{n+1}_k = k^n_k +
    \Delta t \left( K_m S^2 - K_h N^2 + P_{\text{wind}} + P_{\text{iw}} \right)_k \)
    \( a_k = \frac{(K_e)_{k-1}}{\Delta z^t_k \Delta z^w_{k-1}} \qquad
    c_k = \frac{(K_e)_k}{\Delta z^t_k \Delta z^w_k} \)
    budget closure
    \( T_{\text{tot}} = T_{\text{bpr}} + T_{\text{spr}} + T_{\text{dif}} + T_{\text{dis}} +
    T_{\text{win}} + T_{\text{iwf}} + T_{\text{bck}} \)
    """
    nlevs, = col.tke.shape
    dt = constants.dtime
    lev = jnp.arange(nlevs)
    dolic = col.dolic_c
    active = lev < dolic
    wet = col.wet_c > 0
    interior = active & (lev >= 1) & wet & jnp.roll(wet, 1)
    zeros = jnp.zeros(nlevs, dtype=col.tke.dtype)

    # stretched thicknesses
    stretch = col.stretch_c if constants.zstar else 1.0
    dzw = jnp.where(active, col.prism_thick_c*stretch, 0.)
    dzt = jnp.where(lev == 0, 0.5*dzw[0], col.prism_center_dist_c*stretch)
    dzt = jnp.where(active, dzt, 0.)
    inv_dzt = col.inv_prism_center_dist_c / stretch
    depth = jnp.where(active, col.depth_cell_interface*stretch, 0.)
    column_depth = jnp.sum(dzw)

    # stratification and shear
    nsqr, ssqr = compute_nsqr_ssqr(col, interior, inv_dzt, zlev_i, constants)

    # surface forcing
    tau_abs = jnp.sqrt(col.stress_xw**2 + col.stress_yw**2)
    forc_tke_surf = (1.0 - col.concsum) * jnp.sqrt(tau_abs/constants.reference_density)**3
    wind = jnp.where(
        (lev == 0) & active, params.cd*forc_tke_surf / jnp.where(dzt > 0, dzt, 1.), 0.
    )
    if constants.langmuir_enabled:
        u_stokes, hlc, wlc, tke_plc = compute_langmuir(
            col, active, depth, dzt, column_depth, nsqr, constants, params
        )
        wind = wind + tke_plc
    else:
        u_stokes, hlc, wlc, tke_plc = 0., 0., zeros, zeros
    hlc = jnp.where(dolic > 0, hlc, 0.)

    # eddy coefficients from the old TKE
    tke_old = col.tke
    sqrttke = jnp.where(active, jnp.sqrt(jnp.maximum(tke_old, 0.)), 0.)
    mxl = compute_mxl(sqrttke, nsqr, dzw, dolic, params)
    kappa_m, kappa_h, _ = compute_ed(sqrttke, mxl, nsqr, ssqr, params)
    kappa_m = jnp.where(active, kappa_m, 0.)
    kappa_h = jnp.where(active, kappa_h, 0.)

    # forcing
    tspr = jnp.where(active, ssqr*kappa_m, 0.)
    tbpr = jnp.where(active, -nsqr*kappa_h, 0.)
    tiwf = jnp.where(active, col.iwe_tdis, 0.) if constants.idemix_coupled else zeros
    forc = tspr + tbpr + tiwf + wind

    # diffusion coefficients, no flux through the sea floor
    has_below = active & (lev + 1 < dolic)
    ke = jnp.where(has_below, 0.5*params.alpha_tke*(kappa_m + jnp.roll(kappa_m, -1)), 0.)
    safe_dzt = jnp.where(active, dzt, 1.)
    a_dif = jnp.where(
        active & (lev >= 1),
        jnp.roll(ke, 1) / (safe_dzt*jnp.where(lev >= 1, jnp.roll(dzw, 1), 1.)), 0.
    )
    c_dif = jnp.where(has_below, ke / (safe_dzt*jnp.where(has_below, dzw, 1.)), 0.)
    b_dif = a_dif + c_dif
    diss = jnp.where(active, params.c_eps*sqrttke/mxl, 0.)

    # tridiagonal problem, identity on the inactive levels
    a_tri = -dt*a_dif
    c_tri = -dt*c_dif
    b_tri = jnp.where(active, 1.0 + dt*b_dif + dt*diss, 1.)
    d_tri = jnp.where(active, tke_old + dt*forc, tke_old)
    cp, dp = thomas_forward(a_tri, b_tri, c_tri, d_tri)
    tke_unrest = thomas_backward(cp, dp)

    # floor
    tke_upd = jnp.where(active, jnp.maximum(tke_unrest, params.tke_min), tke_old)

    # eddy coefficients from the new TKE
    sqrttke_new = jnp.where(active, jnp.sqrt(tke_upd), 0.)
    mxl_new = compute_mxl(sqrttke_new, nsqr, dzw, dolic, params)
    kappa_m_new, kappa_h_new, prandtl = compute_ed(sqrttke_new, mxl_new, nsqr, ssqr, params)
    tke_av = jnp.where(active, jnp.maximum(kappa_m_new, params.kappa_m_min), 0.)
    tke_kv = jnp.where(active, jnp.maximum(kappa_h_new, params.kappa_h_min), 0.)

    # budget
    tdif = a_dif*(jnp.roll(tke_unrest, 1) - tke_unrest) + \
        c_dif*(jnp.roll(tke_unrest, -1) - tke_unrest)
    tdif = jnp.where(active, tdif, 0.)
    tdis = -diss*tke_unrest
    if dt > 0:
        tbck = jnp.where(active, (tke_upd - tke_unrest)/dt, 0.)
        ttot = jnp.where(active, (tke_upd - tke_old)/dt, 0.)
    else:
        # no time integration, no tendency
        tspr, tbpr, tdif, tdis, wind, tiwf, tbck, ttot = (zeros,)*8

    return ColumnOutput(
        tke=tke_upd,
        a_temp_v=tke_kv,
        a_salt_v=tke_kv,
        tke_plc=tke_plc,
        wlc=wlc,
        hlc=jnp.asarray(hlc, dtype=col.tke.dtype),
        u_stokes=jnp.asarray(u_stokes, dtype=col.tke.dtype),
        tke_tbpr=tbpr,
        tke_tspr=tspr,
        tke_tdif=tdif,
        tke_tdis=tdis,
        tke_twin=wind,
        tke_tiwf=tiwf,
        tke_tbck=tbck,
        tke_ttot=ttot,
        tke_lmix=jnp.where(active, mxl_new, 0.),
        tke_pr=jnp.where(active, prandtl, 0.),
        tke_old=tke_old,
        dzw_stretched=dzw,
        dzt_stretched=dzt,
        nsqr=nsqr,
        ssqr=ssqr,
        a_dif=a_dif,
        b_dif=b_dif,
        c_dif=c_dif,
        a_tri=a_tri,
        b_tri=b_tri,
        c_tri=c_tri,
        d_tri=d_tri,
        sqrttke=sqrttke,
        forc=forc,
        ke=ke,
        cp=cp,
        dp=dp,
        tke_upd=tke_upd,
        tke_unrest=tke_unrest,
        tke_av=tke_av,
        tke_kv=tke_kv,
        forc_tke_surf_2d=jnp.asarray(forc_tke_surf, dtype=col.tke.dtype)
    )
