"""
Unit tests of the module tkemix.constants.

"""

import pytest

from tkemix import TkeConstants, TkeParameters


def test_defaults():
    constants = TkeConstants(4, 10, 2, dtime=60.)
    assert constants.reference_density == pytest.approx(1025.022)
    assert constants.grav == pytest.approx(9.80665)
    assert not constants.idemix_coupled
    assert not constants.zstar
    assert TkeConstants(4, 10, 2, dtime=60., coupling_variant=4).idemix_coupled
    assert TkeConstants(4, 10, 2, dtime=60., correction_variant=1).zstar


@pytest.mark.parametrize('kwargs', [
    {'mix_scheme': 1},
    {'correction_variant': 2},
    {'real_dtype': 'int32'},
    {'dtime': -1.},
    {'reference_density': 0.},
])
def test_invalid_constants(kwargs):
    with pytest.raises(ValueError):
        TkeConstants(4, 10, 2, **{'dtime': 60., **kwargs})


def test_invalid_sizes():
    with pytest.raises(ValueError):
        TkeConstants(0, 10, 2, dtime=60.)


def test_null_time_step_warns():
    with pytest.warns(UserWarning, match='dtime'):
        TkeConstants(4, 10, 2)


def test_from_yaml(tmp_path):
    """
    The file gives the values, the keyword arguments take precedence and unknown keys warn.
    """
    path = tmp_path / 'constants.yaml'
    path.write_text(
        'nproma: 8\nnlevs: 20\nnblocks: 3\ndtime: 600.\nlangmuir_enabled: true\n'
        'grav: 9.81\nfoo: 1\n'
    )
    with pytest.warns(UserWarning, match='foo'):
        constants = TkeConstants.from_yaml(str(path), nblocks=5)
    assert constants.nproma == 8
    assert constants.nblocks == 5
    assert constants.langmuir_enabled
    assert constants.grav == pytest.approx(9.81)


def test_from_yaml_not_mapping(tmp_path):
    path = tmp_path / 'constants.yaml'
    path.write_text('- 1\n- 2\n')
    with pytest.raises(ValueError):
        TkeConstants.from_yaml(str(path))


def test_parameters_from_yaml(tmp_path):
    path = tmp_path / 'params.yaml'
    path.write_text('c_k: 0.2\nalpha_tke: 10\nunused: 3\n')
    params = TkeParameters.from_yaml(str(path))
    assert params.c_k == pytest.approx(0.2)
    assert params.alpha_tke == pytest.approx(10.)
    assert params.c_eps == pytest.approx(0.7)


def test_invalid_parameters():
    with pytest.raises(ValueError):
        TkeParameters(mxl_min=0.)
    with pytest.raises(ValueError):
        TkeParameters(prandtl_min=20.)
