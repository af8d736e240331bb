import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
STOCK_ADDED = "stock_added"
STOCK_REMOVED = "stock_removed"
DELETED = "deleted"


@dataclass(frozen=True)
class ProductChanged:
    kind: str
    owner_id: str
    product_id: str
    quantity: int = 0
    cost: float = 0.0
    movement_id: str = ""
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


Subscriber = Callable[[ProductChanged], None]


class ProductEvents:
    """Publish-subscribe channel for product changes.

    One instance lives on the application; subscribers are called in
    subscription order after the change is committed.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ProductChanged) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed for %s event on product %s", callback, event.kind, event.product_id)
