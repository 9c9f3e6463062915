"""
Entry point of the TKE closure for a host model.

This module contains the :class:`Tke` class, which builds a backend from
:attr:`~backends_registry.BACKENDS_REGISTRY` and takes the buffers of the host model by keyword
at every time-step. This class can be obtained by the prefix :code:`tkemix.tke.` or directly by
:code:`tkemix.`.

"""

from __future__ import annotations
from typing import Any, Optional, Tuple

import xarray as xr

from tkemix.backend import TkeBackendAbstract
from tkemix.backends_registry import BACKENDS_REGISTRY
from tkemix.constants import TkeConstants, TkeParameters
from tkemix.diagnostics import budget_to_ds
from tkemix.fields import BUNDLES, IndexRange
from tkemix.functions import _format_to_single_line


class Tke:
    """
    TKE vertical mixing of a host ocean model.

    Parameters
    ----------
    constants : TkeConstants
        Domain sizes, scheme selectors and physical constants.
    backend : str, default='cpu'
        Name of the backend in :attr:`~backends_registry.BACKENDS_REGISTRY`.
    params : TkeParameters, optional, default=TkeParameters()
        Coefficients of the closure.
    backend_options : Any
        Other keyword arguments of the constructor of the backend (:code:`policy`,
        :code:`launcher`, :code:`group_size`, :code:`synchronous` for the GPU one).

    Attributes
    ----------
    backend : TkeBackendAbstract
        The backend that runs the closure.

    Raises
    ------
    ValueError
        If :code:`backend` is not registered.

    """

    def __init__(
            self,
            constants: TkeConstants,
            backend: str = 'cpu',
            params: Optional[TkeParameters] = None,
            **backend_options: Any
        ) -> None:
        if backend not in BACKENDS_REGISTRY:
            raise ValueError(_format_to_single_line(f"""
                `backend` {backend} not registered in BACKENDS_REGISTRY, the available ones are
                {list(BACKENDS_REGISTRY)}.
            """))
        self.backend: TkeBackendAbstract = BACKENDS_REGISTRY[backend](
            constants, params, **backend_options
        )

    def calc(
            self,
            *,
            cells_range: Tuple[int, int, int, int, int],
            edges_range: Tuple[int, int, int, int, int],
            **buffers: Any
        ) -> None:
        """
        Run one time-step of the closure.

        Parameters
        ----------
        cells_range : tuple of 5 int
            Active cell columns :code:`(block_size, start_block, end_block, start_index,
            end_index)`, cf. :class:`~fields.IndexRange`.
        edges_range : tuple of 5 int
            Active edge columns, same format.
        buffers : Any
            Every buffer of the bundles of :data:`~fields.BUNDLES`, by field name.

        Raises
        ------
        ValueError
            If a buffer is missing or unknown, or cf. :meth:`~backend.TkeBackendAbstract.calc`.
        RuntimeError
            If the closure is closed.
        """
        bundles = {}
        for arg_name, bundle_class in BUNDLES.items():
            names = bundle_class.names()
            missing = [name for name in names if name not in buffers]
            if missing:
                raise ValueError(f'Missing buffers : {missing}.')
            bundles[arg_name] = bundle_class(**{name: buffers.pop(name) for name in names})
        if buffers:
            raise ValueError(f'Unknown buffers : {sorted(buffers)}.')
        self.backend.calc(
            cells=IndexRange.from_tuple(cells_range),
            edges=IndexRange.from_tuple(edges_range),
            **bundles
        )

    def synchronize(self) -> None:
        """Wait for the end of the writes of the last calls."""
        self.backend.policy.synchronize()

    def budget_ds(self) -> xr.Dataset:
        """
        TKE budget of the last call, cf. :func:`~diagnostics.budget_to_ds`.

        Raises
        ------
        RuntimeError
            If no call has been done yet.
        """
        views = self.backend.views
        if views is None:
            raise RuntimeError('The budget is not available before the first call of `calc`.')
        self.synchronize()
        return budget_to_ds(views, self.backend.policy)

    def close(self) -> None:
        """Release the backend."""
        self.backend.close()

    def __enter__(self) -> Tke:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
