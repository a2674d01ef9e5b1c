"""Radio interface consumed by the scan service."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from blescope.core.model import GattService, RawObservation


class Radio(Protocol):
    async def scan(
        self,
        on_observation: Callable[[RawObservation], None],
        *,
        duration_s: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Deliver observations until the duration elapses or ``stop_event`` is set."""

    async def connect(self, identity: str) -> None: ...

    async def disconnect(self, identity: str) -> None: ...

    async def is_connected(self, identity: str) -> bool: ...

    async def services(self, identity: str) -> list[GattService]: ...

    async def read_characteristic(self, identity: str, service_uuid: str, char_uuid: str) -> bytes: ...

    async def write_characteristic(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        data: bytes,
        *,
        with_response: bool = True,
    ) -> None: ...

    async def subscribe(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        handler: Callable[[bytes], None],
    ) -> None: ...

    async def unsubscribe(self, identity: str, service_uuid: str, char_uuid: str) -> None: ...

    async def mtu(self, identity: str) -> int: ...
