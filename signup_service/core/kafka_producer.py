# signup_service/core/kafka_producer.py

import json
import logging
import threading
from typing import Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from signup_service.core.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[KafkaProducer] = None
_producer_lock = threading.Lock()


def get_kafka_singleton() -> Optional[KafkaProducer]:
    """
    Return the process-wide Kafka producer, creating it on first use.

    Returns None when Kafka is disabled or the brokers cannot be reached, so
    callers can treat publishing as best-effort.
    """
    global _producer

    if not settings.KAFKA_ENABLED:
        return None

    if _producer is not None:
        return _producer

    with _producer_lock:
        if _producer is None:
            try:
                _producer = KafkaProducer(
                    bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS.split(","),
                    value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                    key_serializer=lambda k: k.encode("utf-8") if k else None,
                    request_timeout_ms=5000,
                    retries=3,
                    retry_backoff_ms=100,
                )
                logger.info("Kafka producer connected")
            except KafkaError as e:
                logger.warning(f"Kafka unavailable, events will not be published: {e}")
                return None

    return _producer


def close_kafka_singleton() -> None:
    """Flush and close the shared producer (called on application shutdown)."""
    global _producer

    with _producer_lock:
        if _producer is not None:
            try:
                _producer.flush()
                _producer.close()
            except KafkaError as e:
                logger.warning(f"Error while closing Kafka producer: {e}")
            finally:
                _producer = None
