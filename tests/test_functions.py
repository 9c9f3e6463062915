"""
Unit tests of the module tkemix.functions.

"""

import numpy as np
import pytest
import jax.numpy as jnp

from tkemix import tridiag_solve
from tkemix.functions import _format_to_single_line


@pytest.mark.parametrize('n', [1, 2, 12])
def test_tridiag_solve(n):
    """
    The Thomas algorithm gives the solution of a dense solver on diagonally dominant systems.
    """
    rng = np.random.default_rng(n)
    a = rng.uniform(-1., 0., n)
    c = rng.uniform(-1., 0., n)
    b = 2.5 + rng.uniform(0., 1., n)
    f = rng.standard_normal(n)
    mat = np.diag(b) + np.diag(a[1:], -1) + np.diag(c[:-1], 1)
    x = tridiag_solve(jnp.array(a), jnp.array(b), jnp.array(c), jnp.array(f))
    np.testing.assert_allclose(np.asarray(x), np.linalg.solve(mat, f), rtol=1e-12, atol=1e-12)


def test_tridiag_identity():
    """
    Identity rows return the right hand.
    """
    n = 6
    zeros = jnp.zeros(n)
    f = jnp.arange(n, dtype=float)
    x = tridiag_solve(zeros, jnp.ones(n), zeros, f)
    np.testing.assert_array_equal(np.asarray(x), np.asarray(f))


def test_format_to_single_line():
    text = """
        first line
            second line
    """
    assert _format_to_single_line(text) == 'first line second line'
