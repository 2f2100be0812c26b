from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from transport import Transport

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

ENTITY_NAMES = (
    "Member",
    "Transaction",
    "InputType",
    "MembershipPlan",
    "MembershipCharge",
    "Invoice",
    "RecurringPayment",
    "Guest",
    "GuestTransaction",
    "StatementTemplate",
    "EmailSchedule",
)

Record = dict[str, Any]


def clamp_page_size(page_size: int) -> int:
    return max(1, min(int(page_size), MAX_PAGE_SIZE))


class ResourceClient:
    """CRUD over one named entity collection.

    Records are plain dicts; nothing here knows an entity's fields.
    """

    def __init__(self, transport: Transport, name: str) -> None:
        self.transport = transport
        self.name = name
        self.path = f"/entities/{name}"

    async def list(
        self,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
    ) -> Any:
        params: dict[str, str] = {}
        if sort:
            params["sort"] = sort
        if limit is not None:
            params["limit"] = str(limit)
        if page is not None:
            params["page"] = str(page)
        return await self.transport.request(self.path, params=params or None)

    async def filter(
        self,
        where: Record,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
    ) -> Any:
        body: dict[str, Any] = {"where": where}
        if sort is not None:
            body["sort"] = sort
        if limit is not None:
            body["limit"] = limit
        if page is not None:
            body["page"] = page
        return await self.transport.request(
            f"{self.path}/filter", method="POST", body=body
        )

    async def list_all(
        self, sort: Optional[str] = None, page_size: int = MAX_PAGE_SIZE
    ) -> list[Record]:
        size = clamp_page_size(page_size)
        return await self._accumulate(
            lambda page: self.list(sort, size, page), size
        )

    async def filter_all(
        self,
        where: Record,
        sort: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> list[Record]:
        size = clamp_page_size(page_size)
        return await self._accumulate(
            lambda page: self.filter(where, sort, size, page), size
        )

    async def _accumulate(
        self, fetch_page: Callable[[int], Awaitable[Any]], page_size: int
    ) -> list[Record]:
        # pages are fetched one after another; a failure propagates and the
        # partial list is dropped with this frame
        accumulated: list[Record] = []
        page = 1
        while True:
            chunk = await fetch_page(page)
            if not isinstance(chunk, list):
                break
            accumulated.extend(chunk)
            if len(chunk) < page_size:
                break
            page += 1
        logger.debug(
            f"fetched_all: entity={self.name} pages={page} records={len(accumulated)}"
        )
        return accumulated

    async def create(self, data: Record) -> Any:
        return await self.transport.request(self.path, method="POST", body=data)

    async def update(self, record_id: str, data: Record) -> Any:
        return await self.transport.request(
            f"{self.path}/{record_id}", method="PATCH", body=data
        )

    async def delete(self, record_id: str) -> None:
        await self.transport.request(f"{self.path}/{record_id}", method="DELETE")

    async def bulk_create(self, records: list[Record]) -> Any:
        # one request for the whole array; callers chunk large imports
        return await self.transport.request(
            f"{self.path}/bulk", method="POST", body=records
        )


class Entities:
    def __init__(self, transport: Transport) -> None:
        self._clients = {name: ResourceClient(transport, name) for name in ENTITY_NAMES}

    def get(self, name: str) -> ResourceClient:
        try:
            return self._clients[name]
        except KeyError:
            raise ValueError(f"Unknown entity: {name}") from None

    def __getattr__(self, name: str) -> ResourceClient:
        clients = self.__dict__.get("_clients", {})
        if name in clients:
            return clients[name]
        raise AttributeError(name)
