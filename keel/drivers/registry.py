"""Driver registry - name -> scheduler driver instance.

Populated once during bootstrap (see `keel.drivers.build_driver_registry`).
Registering a name twice replaces the earlier driver: last registration
wins. This is logged but not rejected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from keel.errors import UnknownDriverError

if TYPE_CHECKING:
    from keel.drivers.base import SchedulerDriver

logger = structlog.get_logger()


class DriverRegistry:
    def __init__(self) -> None:
        self._drivers: dict[str, "SchedulerDriver"] = {}

    def register(self, name: str, driver: "SchedulerDriver") -> None:
        if name in self._drivers:
            logger.warning("drivers.register.replaced", driver=name)
        self._drivers[name] = driver

    def get(self, name: str) -> "SchedulerDriver":
        """Get driver by name.

        Raises:
            UnknownDriverError: If nothing is registered under `name`
        """
        try:
            return self._drivers[name]
        except KeyError:
            raise UnknownDriverError(name) from None

    def names(self) -> list[str]:
        return list(self._drivers)
