r"""
Registry of available backends.

This module only contains a constant variable which lists all the available backends. It can be
obtained by the prefix :code:`tkemix.backends_registry.` or directly by :code:`tkemix.`.

Attributes
==========
BACKENDS_REGISTRY : Dict[str, Type[TkeBackendAbstract]]
    This variable is a dictionnary whose keys are the names of the backends and whose values are
    the corresponding child classes of :class:`~backend.TkeBackendAbstract`. The facade
    :class:`~tke.Tke` builds its backend from this constant. When the user adds a backend in
    :code:`backends/` they must import here its class and add an entry at this dictionnary.

    The current available backends are :

    - :code:`cpu` block after block on the host, cf. :mod:`backends.cpu`
    - :code:`gpu` one launch on the device, cf. :mod:`backends.gpu`

"""

from typing import Dict, Type

from tkemix.backend import TkeBackendAbstract
from tkemix.backends.cpu import CpuBackend
from tkemix.backends.gpu import GpuBackend


BACKENDS_REGISTRY: Dict[str, Type[TkeBackendAbstract]] = {
    'cpu': CpuBackend,
    'gpu': GpuBackend
}
