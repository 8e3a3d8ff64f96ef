"""
Kafka producer for publishing trade events
"""
from aiokafka import AIOKafkaProducer
from typing import Optional, Dict, Any
from datetime import datetime
import json
import logging

from .config import settings

logger = logging.getLogger(__name__)


class KafkaProducerManager:
    """Manage Kafka producer for event publishing"""

    def __init__(self):
        self.producer: Optional[AIOKafkaProducer] = None

    async def start(self):
        """Start Kafka producer"""
        if not settings.KAFKA_ENABLED:
            logger.warning("Kafka is disabled")
            return

        try:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                key_serializer=lambda k: k.encode('utf-8') if k else None,
            )
            await self.producer.start()
            logger.info(f"Kafka producer started at {settings.KAFKA_BOOTSTRAP_SERVERS}")
        except Exception as e:
            logger.error(f"Failed to start Kafka producer: {e}")
            self.producer = None

    async def stop(self):
        """Stop Kafka producer"""
        if self.producer:
            await self.producer.stop()
            logger.info("Kafka producer stopped")

    async def publish_event(self, topic: str, key: str, event_data: Dict[str, Any]) -> bool:
        """
        Publish an event to Kafka

        Args:
            topic: Kafka topic name
            key: Message key (trade id)
            event_data: Event payload

        Returns:
            True if successful, False otherwise
        """
        if not self.producer:
            logger.warning("Kafka producer not available, skipping event publishing")
            return False

        try:
            await self.producer.send(topic, value=event_data, key=key)
            logger.info(f"Published event to topic '{topic}' with key '{key}'")
            return True
        except Exception as e:
            logger.error(f"Failed to publish event to topic '{topic}': {e}")
            return False

    async def publish_trade_created(self, trade_id: str, trader_id: str, status: str) -> bool:
        """Publish trade created event"""
        event = {
            "event_type": "trade_created",
            "trade_id": trade_id,
            "trader_id": trader_id,
            "status": status,
            "timestamp": datetime.utcnow().isoformat(),
        }
        return await self.publish_event(settings.KAFKA_TOPIC_TRADE_CREATED, trade_id, event)

    async def publish_trade_deleted(self, trade_id: str, trader_id: str, deleted_by: str) -> bool:
        """Publish trade deleted event"""
        event = {
            "event_type": "trade_deleted",
            "trade_id": trade_id,
            "trader_id": trader_id,
            "deleted_by": deleted_by,
            "timestamp": datetime.utcnow().isoformat(),
        }
        return await self.publish_event(settings.KAFKA_TOPIC_TRADE_DELETED, trade_id, event)

    async def publish_trade_featured(
        self,
        trade_id: str,
        trader_id: str,
        featured_until: datetime
    ) -> bool:
        """Publish trade featured event"""
        event = {
            "event_type": "trade_featured",
            "trade_id": trade_id,
            "trader_id": trader_id,
            "featured_until": featured_until.isoformat(),
            "timestamp": datetime.utcnow().isoformat(),
        }
        return await self.publish_event(settings.KAFKA_TOPIC_TRADE_FEATURED, trade_id, event)


# Global Kafka producer instance
kafka_producer = KafkaProducerManager()


async def get_kafka_producer() -> KafkaProducerManager:
    """Dependency for getting Kafka producer instance"""
    return kafka_producer
