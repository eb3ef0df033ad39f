"""
Change Feed Abstract Base Class

Tells open pages that a table changed so they can re-fetch it.
Notifications carry no row data beyond identifiers: receivers always
reload the affected collection, so a lost or duplicated event only
costs an extra (or a later) refresh.

Author: Khalil Bannouri
Version: 1.0.0
"""

import json
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional


@dataclass
class ChangeEvent:
    """
    One row change.

    Attributes:
        table: daily_groups, orders, stores or products
        action: insert, update or delete
        record_id: primary key of the changed row
        group_id: group the row belongs to (orders only)
        store_id: store the row belongs to (products and groups)
    """
    table: str
    action: str
    record_id: Optional[int] = None
    group_id: Optional[int] = None
    store_id: Optional[int] = None
    occurred_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ChangeEvent":
        return cls(**json.loads(raw))


class BaseChangeFeed(ABC):
    """
    Publish/subscribe channel for change notifications.

    Lifecycle: start() before the first publish/subscribe, stop() on
    shutdown; stop() ends every open subscription.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Send an event to every current subscriber."""
        pass

    @abstractmethod
    def subscribe(self) -> AbstractAsyncContextManager[AsyncIterator[ChangeEvent]]:
        """
        Register a subscriber.

        Usage:
            async with feed.subscribe() as events:
                async for event in events:
                    ...
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
