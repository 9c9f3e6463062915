"""
Memory policies of the backends.

A memory policy gathers the operations that depend on where the memory lives : wrapping a buffer
of the host model in a :class:`~fields.FieldView` without copy, allocating and freeing the
internal scratch fields, and moving values between the views and the JAX computations. The
:class:`HostMemoryPolicy` works on host memory with NumPy, the :class:`DeviceMemoryPolicy` on GPU
memory with CuPy and DLPack. The :class:`ScratchFields` class allocates the internal fields of a
backend through its policy. These classes can be obtained by the prefix :code:`tkemix.memory.` or
directly by :code:`tkemix.`.

"""

from __future__ import annotations
import ctypes
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np
import jax
import jax.numpy as jnp

from tkemix.constants import TkeConstants
from tkemix.fields import FieldView, SCRATCH_SHAPES, field_dims, field_dtype
from tkemix.functions import _format_to_single_line


class MemoryPolicyAbstract(ABC):
    """
    Abstraction of the memory operations of a backend.

    The child classes implement the allocation, the zero-copy wrapping and the transfers between
    views and :class:`~jax.Array` for one kind of memory. The views are built by :meth:`wrap` for
    the buffers of the host model and by :meth:`allocate_view` for the internal scratch fields.

    Attributes
    ----------
    name : str
        Name of the kind of memory.

    """

    name: str = ''

    @abstractmethod
    def allocate(self, dims: Tuple[int, ...], dtype: str) -> Any:
        """Allocate a zero-filled array of shape :code:`dims`."""

    @abstractmethod
    def free(self, view: FieldView) -> None:
        """Release the memory of a view built by :meth:`allocate_view`."""

    @abstractmethod
    def address(self, buffer: Any) -> int:
        """Address of the first element of a buffer."""

    @abstractmethod
    def _as_array(self, buffer: Any, dims: Tuple[int, ...], dtype: str) -> Any:
        """Array of shape :code:`dims` sharing the memory of :code:`buffer`."""

    @abstractmethod
    def read(self, view: FieldView, index: Any = None) -> jax.Array:
        """Values of a view, or of :code:`view[index]`, as a :class:`~jax.Array`."""

    @abstractmethod
    def write(self, view: FieldView, values: jax.Array, index: Any = None) -> None:
        """Write :code:`values` in place in the view, or in :code:`view[index]`."""

    @abstractmethod
    def to_host(self, view: FieldView) -> np.ndarray:
        """Copy of the values of a view in a :class:`numpy.ndarray`."""

    def synchronize(self) -> None:
        """Wait for the writes issued through this policy to be completed."""

    def wrap(self, buffer: Any, name: str, dims: Tuple[int, ...], dtype: str) -> FieldView:
        """
        Build a view over a buffer owned by the host model.

        The buffer is not copied : the view shares its memory and the writes through the view are
        seen by the owner of the buffer.

        Parameters
        ----------
        buffer : Any
            The buffer, an array, an object exposing its memory or a raw integer address.
        name : str
            Name of the field.
        dims : tuple of int
            Shape of the field.
        dtype : str
            Element type of the field.

        Returns
        -------
        view : FieldView
            The view over the buffer.

        Raises
        ------
        ValueError
            If the buffer is :code:`None`, has not the type :code:`dtype`, has not the number of
            elements of :code:`dims` or is not contiguous.
        """
        if buffer is None:
            raise ValueError(f'The buffer `{name}` is missing.')
        try:
            data = self._as_array(buffer, dims, dtype)
        except ValueError as e:
            raise ValueError(f'Cannot wrap the buffer `{name}` : {e}') from e
        return FieldView(name, tuple(dims), dtype, self.address(buffer), data)

    def allocate_view(self, name: str, dims: Tuple[int, ...], dtype: str) -> FieldView:
        """
        Allocate a zero-filled field and build its view.

        Parameters
        ----------
        name : str
            Name of the field.
        dims : tuple of int
            Shape of the field.
        dtype : str
            Element type of the field.

        Returns
        -------
        view : FieldView
            The view over the new memory, owned by the policy until :meth:`free`.
        """
        data = self.allocate(tuple(dims), dtype)
        return FieldView(name, tuple(dims), dtype, self.address(data), data)


def _check_array(arr: Any, dims: Tuple[int, ...], dtype: str) -> None:
    if arr.dtype != np.dtype(dtype):
        raise ValueError(f'the type is {arr.dtype} instead of {dtype}.')
    if arr.size != math.prod(dims):
        raise ValueError(f'it has {arr.size} elements instead of {math.prod(dims)} {dims}.')
    if not arr.flags.c_contiguous:
        raise ValueError('its memory is not contiguous.')


class HostMemoryPolicy(MemoryPolicyAbstract):
    """
    Memory policy for host memory.

    The buffers can be :class:`numpy.ndarray`, any object that exposes its memory with the buffer
    protocol (:class:`bytearray`, :class:`memoryview`, :mod:`ctypes` arrays...) or raw integer
    addresses. The views are :class:`numpy.ndarray` and the writes are synchronous.

    """

    name = 'host'

    def __init__(self) -> None:
        self._allocations: Dict[int, np.ndarray] = {}

    def allocate(self, dims: Tuple[int, ...], dtype: str) -> np.ndarray:
        data = np.zeros(dims, dtype=dtype)
        self._allocations[self.address(data)] = data
        return data

    def free(self, view: FieldView) -> None:
        self._allocations.pop(view.address, None)

    def address(self, buffer: Any) -> int:
        if isinstance(buffer, int):
            return buffer
        if isinstance(buffer, np.ndarray):
            return buffer.__array_interface__['data'][0]
        return np.frombuffer(buffer, dtype=np.uint8).ctypes.data

    def _as_array(self, buffer: Any, dims: Tuple[int, ...], dtype: str) -> np.ndarray:
        if isinstance(buffer, int):
            ctype = np.ctypeslib.as_ctypes_type(np.dtype(dtype))
            pointer = ctypes.cast(buffer, ctypes.POINTER(ctype))
            return np.ctypeslib.as_array(pointer, shape=dims)
        if isinstance(buffer, np.ndarray):
            arr = buffer
        else:
            arr = np.frombuffer(buffer, dtype=dtype)
        _check_array(arr, dims, dtype)
        return arr.reshape(dims)

    def read(self, view: FieldView, index: Any = None) -> jax.Array:
        data = view.data if index is None else view.data[index]
        return jnp.asarray(data)

    def write(self, view: FieldView, values: jax.Array, index: Any = None) -> None:
        target = view.data if index is None else view.data[index]
        np.copyto(target, np.asarray(values), casting='same_kind')

    def to_host(self, view: FieldView) -> np.ndarray:
        return np.array(view.data, copy=True)


class DeviceMemoryPolicy(MemoryPolicyAbstract):
    """
    Memory policy for GPU memory.

    The buffers must already live on the device : objects exposing the CUDA array interface or
    DLPack (CuPy, PyTorch, Numba...) or raw integer device addresses. The views are
    :class:`cupy.ndarray`, they are handed to JAX without copy through DLPack, and the results
    are copied device to device in the views on the current CuPy stream. Nothing is transfered
    between host and device by :meth:`read` and :meth:`write`.

    Raises
    ------
    ImportError
        If CuPy is not installed (install the :code:`gpu` extra).

    """

    name = 'device'

    def __init__(self) -> None:
        import cupy
        self._cp = cupy
        self._allocations: Dict[int, Any] = {}

    def allocate(self, dims: Tuple[int, ...], dtype: str) -> Any:
        data = self._cp.zeros(dims, dtype=dtype)
        self._allocations[self.address(data)] = data
        return data

    def free(self, view: FieldView) -> None:
        self._allocations.pop(view.address, None)

    def address(self, buffer: Any) -> int:
        if isinstance(buffer, int):
            return buffer
        return int(self._cp.asarray(buffer).data.ptr)

    def _as_array(self, buffer: Any, dims: Tuple[int, ...], dtype: str) -> Any:
        cp = self._cp
        if isinstance(buffer, int):
            nbytes = math.prod(dims) * np.dtype(dtype).itemsize
            memory = cp.cuda.UnownedMemory(buffer, nbytes, owner=None)
            return cp.ndarray(dims, dtype=dtype, memptr=cp.cuda.MemoryPointer(memory, 0))
        arr = cp.asarray(buffer)
        _check_array(arr, dims, dtype)
        return arr.reshape(dims)

    def read(self, view: FieldView, index: Any = None) -> jax.Array:
        data = view.data if index is None else view.data[index]
        if not data.flags.c_contiguous:
            data = self._cp.ascontiguousarray(data)
        return jax.dlpack.from_dlpack(data)

    def write(self, view: FieldView, values: jax.Array, index: Any = None) -> None:
        target = view.data if index is None else view.data[index]
        target[...] = self._cp.from_dlpack(values)

    def to_host(self, view: FieldView) -> np.ndarray:
        return self._cp.asnumpy(view.data)

    def synchronize(self) -> None:
        self._cp.cuda.get_current_stream().synchronize()


class ScratchFields:
    """
    Internal fields of a backend.

    The fields listed in :data:`~fields.SCRATCH_SHAPES` are allocated once at the construction
    through the memory policy of the backend, with dimensions fixed by the constants, and are
    released by :meth:`free`. They are owned by exactly one backend instance.

    Parameters
    ----------
    constants : TkeConstants
        Domain sizes and floating type.
    policy : MemoryPolicyAbstract
        Memory policy used for the allocations.

    Attributes
    ----------
    views : Dict[str, FieldView]
        Views of the scratch fields by name, empty after :meth:`free`.

    """

    def __init__(self, constants: TkeConstants, policy: MemoryPolicyAbstract) -> None:
        self._policy = policy
        self.views: Dict[str, FieldView] = {}
        for name, (kind, type_kind) in SCRATCH_SHAPES.items():
            dims = field_dims(kind, constants)
            self.views[name] = policy.allocate_view(name, dims, field_dtype(type_kind, constants))

    def __getitem__(self, name: str) -> FieldView:
        return self.views[name]

    def __contains__(self, name: str) -> bool:
        return name in self.views

    def get(self, name: str) -> Optional[FieldView]:
        """View of a scratch field, :code:`None` if it does not exist."""
        return self.views.get(name)

    def free(self) -> None:
        """Release all the scratch fields."""
        for view in self.views.values():
            self._policy.free(view)
        self.views = {}


def check_same_address(view: FieldView, buffer: Any, policy: MemoryPolicyAbstract) -> None:
    """
    Check that a buffer is still the one over which a view was built.

    Raises
    ------
    ValueError
        If the address of :code:`buffer` is not the one of the view.
    """
    if policy.address(buffer) != view.address:
        raise ValueError(_format_to_single_line(f"""
            The buffer `{view.name}` has moved since the first call : the buffers must keep the
            same address for the whole life of the backend.
        """))
