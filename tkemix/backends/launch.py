"""
Launch strategies of the GPU backend.

The :class:`~backends.gpu.GpuBackend` organises the columns of a call in :code:`group_count`
groups of :code:`units_per_group` units, one column per unit, and gives the mapping of the column
kernel on this geometry to a launch strategy. :class:`VmapLaunch` runs all the groups at the same
time and :class:`GroupMapLaunch` runs the groups one after the other with the units of a group
vectorized, which bounds the memory used by the intermediate fields. The strategies are immutable
and hashable, they are static arguments of the compiled dispatch.

"""

from abc import abstractmethod
from typing import Any, Callable

import equinox as eqx
import jax
from jax import lax


def _check_geometry(units_per_group: int, group_count: int, args: Any) -> None:
    for leaf in jax.tree_util.tree_leaves(args):
        if leaf.shape[:2] != (group_count, units_per_group):
            raise ValueError(
                f'The arguments must have the leading shape {(group_count, units_per_group)}.'
            )


class LaunchStrategyAbstract(eqx.Module):
    """
    Abstraction of a launch strategy.

    A child class implements :meth:`launch`, which applies a one column kernel to every unit of a
    launch geometry.

    """

    @abstractmethod
    def launch(
            self,
            units_per_group: int,
            group_count: int,
            kernel: Callable[..., Any],
            args: Any
        ) -> Any:
        """
        Apply :code:`kernel` to every unit.

        Parameters
        ----------
        units_per_group : int
            Number of units in a group.
        group_count : int
            Number of groups.
        kernel : Callable
            Function of one column, taking the pytree of one unit.
        args : pytree
            Inputs of all the units, every leaf has the leading shape
            :code:`(group_count, units_per_group)`.

        Returns
        -------
        out : pytree
            Outputs of all the units, every leaf has the leading shape
            :code:`(group_count, units_per_group)`.

        Raises
        ------
        ValueError
            If a leaf of :code:`args` has not the leading shape of the geometry.
        """


class VmapLaunch(LaunchStrategyAbstract):
    """Strategy that runs all the groups in parallel with nested :func:`~jax.vmap`."""

    def launch(self, units_per_group, group_count, kernel, args):
        _check_geometry(units_per_group, group_count, args)
        return jax.vmap(jax.vmap(kernel))(args)


class GroupMapLaunch(LaunchStrategyAbstract):
    """
    Strategy that runs the groups one after the other with :func:`~jax.lax.map`.

    The units of a group are vectorized with :func:`~jax.vmap`.

    """

    def launch(self, units_per_group, group_count, kernel, args):
        _check_geometry(units_per_group, group_count, args)
        return lax.map(jax.vmap(kernel), args)


LAUNCH_STRATEGIES = {
    'vmap': VmapLaunch,
    'group_map': GroupMapLaunch
}
"""Launch strategies by name, cf. :class:`~backends.gpu.GpuBackend`."""
