"""
RabbitMQ event publisher.

pika is blocking, so each publish runs in the default thread-pool executor and opens
its own connection. Subscribers bind to the topic exchange with routing keys such as
``listing.published.ebay`` or ``item.sold.#``.
"""
import asyncio
import json
from dataclasses import asdict
from functools import partial

import pika
import structlog

from src.application.interfaces.event_publisher import EventPublisher
from src.config import settings
from src.domain.events.domain_events import (
    DomainEvent,
    ItemSoldEvent,
    ListingDelistedEvent,
    ListingPublishedEvent,
)

logger = structlog.get_logger(__name__)

EXCHANGE_NAME = "crosslist.events"


def _event_to_routing_key(event: DomainEvent) -> str:
    if isinstance(event, ListingPublishedEvent):
        return f"listing.published.{event.marketplace}"
    if isinstance(event, ListingDelistedEvent):
        return f"listing.delisted.{event.marketplace}"
    if isinstance(event, ItemSoldEvent):
        return f"item.sold.{event.marketplace}"
    return "event.unknown"


def _serialise_event(event: DomainEvent) -> str:
    payload = asdict(event)
    payload["event_type"] = _event_to_routing_key(event).rsplit(".", 1)[0]
    payload["event_id"] = str(event.event_id)
    payload["occurred_at"] = event.occurred_at.isoformat()
    return json.dumps(payload, default=str)


def _blocking_publish(rabbitmq_url: str, routing_key: str, body: str) -> None:
    connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
    try:
        channel = connection.channel()
        channel.exchange_declare(exchange=EXCHANGE_NAME, exchange_type="topic", durable=True)
        channel.basic_publish(
            exchange=EXCHANGE_NAME,
            routing_key=routing_key,
            body=body.encode(),
            properties=pika.BasicProperties(
                delivery_mode=pika.DeliveryMode.Persistent,
                content_type="application/json",
            ),
        )
    finally:
        connection.close()


class RabbitMQPublisher(EventPublisher):
    """Publishes listing events to a RabbitMQ topic exchange."""

    def __init__(self, rabbitmq_url: str = settings.rabbitmq_url) -> None:
        self._url = rabbitmq_url

    async def publish(self, event: DomainEvent) -> None:
        routing_key = _event_to_routing_key(event)
        body = _serialise_event(event)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, partial(_blocking_publish, self._url, routing_key, body))
            logger.debug("event_published", routing_key=routing_key, event_id=str(event.event_id))
        except Exception as exc:
            # A lost event never fails the listing operation that raised it
            logger.error("failed_to_publish_event", routing_key=routing_key, error=str(exc))
