"""
Usefull calculation functions.

The functions in this module are used by the closure kernels. They can be called by the prefix
:code:`tkemix.functions.` or directly by :code:`tkemix.`.

"""

from typing import Tuple

import jax.numpy as jnp
from jax import lax, jit
from jaxtyping import Float, Array


def thomas_forward(
        a: Float[Array, 'n'],
        b: Float[Array, 'n'],
        c: Float[Array, 'n'],
        f: Float[Array, 'n']
    ) -> Tuple[Float[Array, 'n'], Float[Array, 'n']]:
    r"""
    Forward elimination of the Thomas algorithm.

    The system :math:`\mathbb MX = F` (cf. :func:`tridiag_solve`) is reduced to an upper
    bidiagonal one :math:`x_k = d'_k + c'_k x_{k+1}`.

    Parameters
    ----------
    a : Float[~jax.Array, 'n']
        Left diagonal of :math:`\mathbb M`, the first element is not used.
    b : Float[~jax.Array, 'n']
        Middle diagonal of :math:`\mathbb M`.
    c : Float[~jax.Array, 'n']
        Right diagonal of :math:`\mathbb M`, the last element is not used.
    f : Float[~jax.Array, 'n']
        Right hand of the equation :math:`F`.

    Returns
    -------
    cp : Float[~jax.Array, 'n']
        Modified upper coefficients :math:`c'`, with the sign convention
        :math:`c'_k = -c_k / (b_k + a_k c'_{k-1})`.
    dp : Float[~jax.Array, 'n']
        Modified right hand :math:`d'`.
    """
    n, = b.shape
    cff = 1.0 / b[0]
    dp = f.at[0].multiply(cff)
    cp = jnp.zeros_like(b).at[0].set(-c[0] * cff)

    def body_fun(k: int, x: Float[Array, '2 n']) -> Float[Array, '2 n']:
        cp = x[0, :]
        dp = x[1, :]
        cff = 1.0 / (b[k] + a[k] * cp[k-1])
        cp = cp.at[k].set(-cff * c[k])
        dp = dp.at[k].set(cff * (dp[k] - a[k] * dp[k-1]))
        return jnp.stack([cp, dp])
    cp_dp = lax.fori_loop(1, n, body_fun, jnp.stack([cp, dp]))
    return cp_dp[0, :], cp_dp[1, :]


def thomas_backward(
        cp: Float[Array, 'n'],
        dp: Float[Array, 'n']
    ) -> Float[Array, 'n']:
    r"""
    Back substitution of the Thomas algorithm.

    Parameters
    ----------
    cp : Float[~jax.Array, 'n']
        Modified upper coefficients from :func:`thomas_forward`.
    dp : Float[~jax.Array, 'n']
        Modified right hand from :func:`thomas_forward`.

    Returns
    -------
    x : Float[~jax.Array, 'n']
        Solution :math:`X` of the tridiagonal problem.
    """
    n, = dp.shape
    def body_fun(k: int, x: Float[Array, 'n']) -> Float[Array, 'n']:
        return x.at[n-1-k].add(cp[n-1-k] * x[n-k])
    return lax.fori_loop(1, n, body_fun, dp)


@jit
def tridiag_solve(
        a: Float[Array, 'n'],
        b: Float[Array, 'n'],
        c: Float[Array, 'n'],
        f: Float[Array, 'n']
    ) -> Float[Array, 'n']:
    r"""
    Solve a trigiagonal problem.

    The tridiagonal problem can be written :math:`\mathbb MX = F` where
    :math:`\mathbb M = \begin{pmatrix} b_1 & c_1 & & \\
    a_2 & \ddots & \ddots & \\
    & \ddots & \ddots & c_{n-1} \\
    & & a_n & b_n
    \end{pmatrix}`
    and :math:`F = \begin{pmatrix} f_1 \\ \vdots \\ f_n \end{pmatrix}`.
    The problem is solved by the Thomas algorithm (forward elimination then back substitution)
    with :mod:`jax.lax` loops. No pivoting is done : the matrix should be diagonally dominant.

    Parameters
    ----------
    a : Float[~jax.Array, 'n']
        Left diagonal of :math:`\mathbb M`, the first element is not used.
    b : Float[~jax.Array, 'n']
        Middle diagonal of :math:`\mathbb M`.
    c : Float[~jax.Array, 'n']
        Right diagonal of :math:`\mathbb M`, the last element is not used.
    f : Float[~jax.Array, 'n']
        Right hand of the equation :math:`F`.

    Returns
    -------
    x : Float[~jax.Array, 'n']
        Solution :math:`X` of tridiagonal problem.
    """
    cp, dp = thomas_forward(a, b, c, f)
    return thomas_backward(cp, dp)


def _format_to_single_line(text: str) -> str:
    """
    Transforms a multiple line text in a line string by removing indentations.

    In the code the error and warning messages are written on multiple lines with indentations to
    respect the maximum line length and the consistency of indentations. This function is used to
    show correctly these messages on one line and without the indentations.

    Parameters
    ----------
    text : str
        Text on multiple lines to transform.

    Returns
    -------
    line : str
        Text on a single line removed from indentations.
    """
    return " ".join(text.split())
