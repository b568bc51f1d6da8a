"""Detection of a functional Machine API."""

from __future__ import annotations

from typing import Callable

from .models import LabelSelector


class MachineAPI:
    """Decides whether the Machine API manages the master machines.

    The lister should hold master machines only; the selector is applied as well
    in case it does not.
    """

    def __init__(
        self,
        has_synced: Callable[[], bool],
        machine_lister,
        machine_selector: LabelSelector,
    ) -> None:
        self._has_synced = has_synced
        self._machine_lister = machine_lister
        self._machine_selector = machine_selector

    def is_functional(self) -> bool:
        """Return True once any master machine is in the Running phase."""
        if not self._has_synced():
            return False
        machines = self._machine_lister.list(self._machine_selector)
        return any((machine.phase or "") == "Running" for machine in machines)