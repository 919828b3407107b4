"""
Publisher cache for the Zenoh side of the relay.

Publishers are declared lazily, on the first message for a key expression, and
reused for every later message on it. Entries are never evicted: the relayed
topic set is assumed to be small and long-lived.

Declaration is single-flight per address. If several callers ask for the same
new address while its declaration is still in progress, they all wait on that
one declaration instead of declaring duplicates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field

from loguru import logger

from ..datastructures.type_aliases import DestinationAddress
from .errors import PublisherDeclarationError
from .interfaces import PublishHandle

type PublisherFactory = Callable[[DestinationAddress], Awaitable[PublishHandle]]


def _retrieve_failure(declaration: asyncio.Future[PublishHandle]) -> None:
    # Every waiter may have been cancelled; the failure still counts as seen.
    if not declaration.cancelled() and declaration.exception() is not None:
        logger.debug(f"Publisher declaration failed: {declaration.exception()!r}")


@dataclass(slots=True)
class PublisherCache:
    """Maps destination addresses to live publish handles."""

    declare: PublisherFactory
    _handles: dict[DestinationAddress, PublishHandle] = field(default_factory=dict)
    _pending: dict[DestinationAddress, asyncio.Future[PublishHandle]] = field(
        default_factory=dict
    )

    async def get_or_create(self, address: DestinationAddress) -> PublishHandle:
        """Return the publisher for ``address``, declaring it if needed.

        Raises:
            PublisherDeclarationError: the overlay rejected the address. Nothing
                is cached, so the next call for the address declares again.
        """
        handle = self._handles.get(address)
        if handle is not None:
            return handle

        pending = self._pending.get(address)
        if pending is None:
            pending = asyncio.ensure_future(self._declare(address))
            pending.add_done_callback(_retrieve_failure)
            self._pending[address] = pending
        # A cancelled waiter must not cancel the declaration other callers share.
        return await asyncio.shield(pending)

    async def _declare(self, address: DestinationAddress) -> PublishHandle:
        try:
            logger.info(f"Creating new publisher for {address}")
            try:
                handle = await self.declare(address)
            except PublisherDeclarationError:
                raise
            except Exception as e:
                raise PublisherDeclarationError(address, str(e)) from e
            self._handles[address] = handle
            return handle
        finally:
            self._pending.pop(address, None)

    def get(self, address: DestinationAddress) -> PublishHandle | None:
        return self._handles.get(address)

    def addresses(self) -> tuple[DestinationAddress, ...]:
        return tuple(self._handles)

    def __contains__(self, address: object) -> bool:
        return address in self._handles

    def __iter__(self) -> Iterator[DestinationAddress]:
        return iter(self._handles)

    def __len__(self) -> int:
        return len(self._handles)
