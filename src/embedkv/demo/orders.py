"""Fixed-rate publisher appending orders to a stream."""

import uuid
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from embedkv.observability import get_logger
from embedkv.scheduling import PeriodicTask
from embedkv.streams import StreamId

if TYPE_CHECKING:
    from embedkv.client import KeyValueClient

logger = get_logger(__name__)


class Order(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    amount: int = 1000

    def to_fields(self) -> dict[str, str]:
        return {"id": self.id, "amount": str(self.amount)}

    @classmethod
    def from_fields(cls, fields: dict) -> "Order":
        return cls.model_validate(
            {
                (k.decode() if isinstance(k, bytes) else k): (
                    v.decode() if isinstance(v, bytes) else v
                )
                for k, v in fields.items()
            }
        )


class OrderPublisher:
    """Appends a new order to ``stream`` every ``interval`` seconds.

    Example:
        publisher = OrderPublisher(client, stream="orders", interval=10)
        publisher.start()
        ...
        await publisher.stop()
    """

    def __init__(
        self,
        client: "KeyValueClient",
        stream: str = "orders",
        interval: float = 10,
        max_length: int | None = None,
    ) -> None:
        self.client = client
        self.stream = stream
        self.max_length = max_length
        self.published = 0
        self._task = PeriodicTask(interval, self.publish_once, name=f"publisher:{stream}")

    @classmethod
    def from_client(cls, client: "KeyValueClient") -> "OrderPublisher":
        """Publisher configured by ``client.config.publisher``."""
        settings = client.config.publisher
        return cls(
            client,
            stream=settings.stream,
            interval=settings.interval_seconds,
            max_length=settings.max_length,
        )

    @property
    def running(self) -> bool:
        return self._task.running

    async def publish_once(self) -> StreamId:
        order = Order()
        record_id = await self.client.streams.append(
            self.stream, order.to_fields(), max_length=self.max_length
        )
        self.published += 1
        logger.info(
            "Order published",
            context={"stream": self.stream, "order_id": order.id, "record_id": str(record_id)},
        )
        return record_id

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()
