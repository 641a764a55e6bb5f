"""
NATS JetStream Client for Python Microservices

Event envelope and event bus over nats-py. Services publish ``Event``
instances; the bus maps the event type prefix to a JetStream stream
(``shipment.*`` -> ``shipment-stream``) and runs pull consumers for
subscriptions.
"""

import asyncio
import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union, TYPE_CHECKING

import nats
from nats.errors import Error as NATSError
from nats.errors import TimeoutError as NATSTimeoutError
from nats.js.errors import BadRequestError

if TYPE_CHECKING:
    from core.config_manager import ConfigManager

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and date types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class ServiceSource(str, Enum):
    """Event sources"""

    SHIPMENT_SERVICE = "shipment_service"
    CARRIER_WEBHOOK = "carrier_webhook"
    NOTIFICATION_SERVICE = "notification_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[str, Enum],
        source: Union[str, Enum],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source.value if isinstance(source, Enum) else source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.utcnow().isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


EventHandler = Callable[[Event], Awaitable[None]]


def stream_name_for(event_type: str) -> str:
    """``shipment.label_created`` -> ``shipment-stream``"""
    prefix = event_type.split(".")[0]
    return f"{prefix}-stream"


class NATSEventBus:
    """NATS JetStream event bus"""

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        url: Optional[str] = None,
    ):
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if url is None:
            if config is None:
                config = ConfigManager(service_name)
            url = config.get_service_config().infrastructure.resolved_nats_url
        self.url = url

        self._nc = None
        self._js = None
        self._known_streams: set = set()
        self._subscriptions: Dict[str, bool] = {}  # pattern -> active
        self._subscription_tasks: List[asyncio.Task] = []

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.url], name=self.service_name)
            self._js = self._nc.jetstream()
            logger.info(f"Connected to NATS as {self.service_name}")
        except (OSError, NATSError) as e:
            logger.error(f"Failed to connect to NATS at {self.url}: {e}")
            raise

    async def _ensure_stream(self, stream_name: str, subject_prefix: str):
        if stream_name in self._known_streams:
            return
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{subject_prefix}.>"], max_msgs=100000)
        except BadRequestError as e:
            # Stream already exists with a different config
            logger.debug(f"Stream creation note: {e}")
        self._known_streams.add(stream_name)

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to its JetStream stream.

        Returns False when disconnected or when the publish fails; the
        caller decides whether that matters.
        """
        if not self.is_connected:
            logger.error("Not connected to NATS")
            return False

        try:
            stream_name = stream_name_for(event.type)
            await self._ensure_stream(stream_name, event.type.split(".")[0])
            payload = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(event.type, payload)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True
        except (NATSError, OSError, TypeError, ValueError) as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: EventHandler, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a pattern using a JetStream pull consumer.

        Args:
            pattern: Subject pattern (e.g. ``carrier.tracking.updated``)
            handler: Async callback receiving an ``Event``
            durable: Optional durable consumer name
        """
        if not self.is_connected:
            logger.error("Not connected to NATS")
            return None

        prefix = pattern.split(".")[0]
        await self._ensure_stream(stream_name_for(prefix), prefix)
        consumer_name = durable or f"{self.service_name}-{prefix}-consumer"
        subscription = await self._js.pull_subscribe(pattern, durable=consumer_name)

        self._subscriptions[pattern] = True
        task = asyncio.create_task(self._consumer_loop(pattern, subscription, handler))
        self._subscription_tasks.append(task)

        logger.info(f"Subscribed to {pattern} (JetStream consumer {consumer_name})")
        return consumer_name

    async def _consumer_loop(self, pattern: str, subscription, handler: EventHandler):
        try:
            while self._subscriptions.get(pattern, False):
                try:
                    messages = await subscription.fetch(batch=10, timeout=1)
                except NATSTimeoutError:
                    continue
                except NATSError as e:
                    logger.warning(f"Pull error on {pattern} (will retry): {e}")
                    await asyncio.sleep(5)
                    continue

                for msg in messages:
                    try:
                        body = json.loads(msg.data.decode())
                        if "type" in body and "source" in body and "data" in body:
                            event = Event.from_dict(body)
                        else:
                            event = Event(event_type=msg.subject, source="external", data=body)
                        await handler(event)
                    except Exception as e:
                        # Handler failures are logged and the message is still acked
                        logger.error(f"Error processing message on {msg.subject}: {e}", exc_info=True)
                    await msg.ack()
        except asyncio.CancelledError:
            pass
        finally:
            self._subscriptions[pattern] = False
            logger.info(f"JetStream consumer stopped: {pattern}")

    async def close(self):
        """Stop consumers and close the connection"""
        for pattern in list(self._subscriptions.keys()):
            self._subscriptions[pattern] = False

        for task in self._subscription_tasks:
            if not task.done():
                task.cancel()
        if self._subscription_tasks:
            await asyncio.gather(*self._subscription_tasks, return_exceptions=True)
        self._subscription_tasks = []

        if self._nc is not None:
            await self._nc.drain()
            self._nc = None
            self._js = None

        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """Get or create the process-wide event bus"""
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(service_name=service_name, config=config)
        await _event_bus.connect()

    return _event_bus
