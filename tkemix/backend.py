"""
Abstractions for defining backends.

A backend runs one time-step of the TKE closure on the buffers of the host model, on one kind of
hardware. This module contains the abstract class :class:`TkeBackendAbstract` that every backend
implements, and the :class:`ViewBinder` that each backend composes to build the views over the
buffers of the host model once and to check that these buffers do not move after. The backends
are defined in the folder :code:`backends/` and registered in
:attr:`~backends_registry.BACKENDS_REGISTRY`. These classes can be obtained by the prefix
:code:`tkemix.backend.` or directly by :code:`tkemix.`.

"""

from __future__ import annotations
import enum
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from tkemix.constants import TkeConstants
from tkemix.fields import (
    BUFFER_SHAPES, BUNDLES, FieldView, IndexRange, GridBuffers, OceanStateBuffers,
    AtmoFluxesBuffers, AtmosForOceanBuffers, SeaIceBuffers, TkeBuffers, field_dims, field_dtype
)
from tkemix.memory import MemoryPolicyAbstract, check_same_address
from tkemix.functions import _format_to_single_line


class ViewState(enum.Enum):
    """State of the views of a backend."""

    UNINITIALIZED = 'uninitialized'
    """No call yet, the views are not built."""
    READY = 'ready'
    """The views are built over the buffers of the first call."""
    RELEASED = 'released'
    """The backend is closed, the views are dropped."""


class ViewBinder:
    """
    Views over the buffers of the host model.

    The views are built by the first call of :meth:`bind`, which moves the state from
    :attr:`ViewState.UNINITIALIZED` to :attr:`ViewState.READY`. The next calls reuse them, and when
    Python runs without :code:`-O` they check that the buffers have kept their address. The
    transition is done once and is not reentrant : two first calls must not run at the same time.

    Parameters
    ----------
    constants : TkeConstants
        Domain sizes and floating type, used to validate the buffers.
    policy : MemoryPolicyAbstract
        Memory policy used to wrap the buffers.

    Attributes
    ----------
    state : ViewState
        Current state.
    views : Dict[str, FieldView]
        Views by buffer name, empty until the first call and after :meth:`release`.

    """

    def __init__(self, constants: TkeConstants, policy: MemoryPolicyAbstract) -> None:
        self._constants = constants
        self._policy = policy
        self.state = ViewState.UNINITIALIZED
        self.views: Dict[str, FieldView] = {}

    def bind(self, bundles: Mapping[str, Any]) -> Dict[str, FieldView]:
        """
        Get the views over the buffers of a call.

        Parameters
        ----------
        bundles : Mapping[str, Any]
            The bundles of buffers by argument name, the keys and types are the ones of
            :data:`~fields.BUNDLES`.

        Returns
        -------
        views : Dict[str, FieldView]
            Views by buffer name.

        Raises
        ------
        RuntimeError
            If the binder is released.
        ValueError
            If a bundle has not the right type, if a buffer can not be wrapped or, on the calls
            after the first one, if a buffer has moved.
        """
        if self.state is ViewState.RELEASED:
            raise RuntimeError('The backend is closed, it can not be used anymore.')
        for arg_name, bundle_class in BUNDLES.items():
            if not isinstance(bundles[arg_name], bundle_class):
                raise ValueError(_format_to_single_line(f"""
                    `{arg_name}` should be an instance of {bundle_class.__name__}.
                """))
        if self.state is ViewState.UNINITIALIZED:
            views = {}
            for bundle in bundles.values():
                for name, buffer in bundle.items():
                    kind, type_kind = BUFFER_SHAPES[name]
                    dims = field_dims(kind, self._constants)
                    dtype = field_dtype(type_kind, self._constants)
                    views[name] = self._policy.wrap(buffer, name, dims, dtype)
            self.views = views
            self.state = ViewState.READY
        elif __debug__:
            for bundle in bundles.values():
                for name, buffer in bundle.items():
                    check_same_address(self.views[name], buffer, self._policy)
        return self.views

    def release(self) -> None:
        """Drop the views, the binder can not be used after."""
        self.views = {}
        self.state = ViewState.RELEASED


class TkeBackendAbstract(ABC):
    """
    Abstraction of a backend of the TKE closure.

    A child class runs the closure on one kind of hardware. It owns its
    :class:`ViewBinder`, its :class:`~memory.ScratchFields` and its memory policy, nothing is shared
    between two instances. A backend instance must not run two calls of :meth:`calc` at the same
    time. It can be used as a context manager that calls :meth:`close` at the exit.

    Attributes
    ----------
    constants : TkeConstants
        Domain sizes, scheme selectors and physical constants.
    policy : MemoryPolicyAbstract
        Memory policy of the backend.

    """

    constants: TkeConstants
    policy: MemoryPolicyAbstract

    @abstractmethod
    def calc(
            self,
            patch: GridBuffers,
            cvmix: TkeBuffers,
            ocean_state: OceanStateBuffers,
            atmo_fluxes: AtmoFluxesBuffers,
            atmos_for_ocean: AtmosForOceanBuffers,
            sea_ice: SeaIceBuffers,
            cells: IndexRange,
            edges: IndexRange
        ) -> None:
        """
        Run one time-step of the closure.

        The TKE of the columns of :code:`cells` is advanced and the outputs of :code:`cvmix` are
        written in place on these columns, then the eddy-viscosity of the columns of
        :code:`edges` is interpolated in :attr:`~fields.TkeBuffers.a_veloc_v`. The other columns
        are not modified.

        Parameters
        ----------
        patch : GridBuffers
            Geometry of the grid.
        cvmix : TkeBuffers
            Inputs and outputs of the closure.
        ocean_state : OceanStateBuffers
            Ocean state.
        atmo_fluxes : AtmoFluxesBuffers
            Wind stress.
        atmos_for_ocean : AtmosForOceanBuffers
            Wind speed.
        sea_ice : SeaIceBuffers
            Sea-ice concentration.
        cells : IndexRange
            Active cell columns.
        edges : IndexRange
            Active edge columns.

        Raises
        ------
        ValueError
            If a buffer is not valid or has moved, or if a range does not fit in the domain.
        RuntimeError
            If the backend is closed.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the views and the scratch fields, the backend can not be used after."""

    @property
    def views(self) -> Optional[Dict[str, FieldView]]:
        """Views over the buffers of the host model, :code:`None` before the first call."""
        return None

    def __enter__(self) -> TkeBackendAbstract:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _bundle_args(
        patch: GridBuffers,
        cvmix: TkeBuffers,
        ocean_state: OceanStateBuffers,
        atmo_fluxes: AtmoFluxesBuffers,
        atmos_for_ocean: AtmosForOceanBuffers,
        sea_ice: SeaIceBuffers
    ) -> Dict[str, Any]:
    return {
        'patch': patch,
        'ocean_state': ocean_state,
        'atmo_fluxes': atmo_fluxes,
        'atmos_for_ocean': atmos_for_ocean,
        'sea_ice': sea_ice,
        'cvmix': cvmix
    }
