"""
Kafka Notifier Adapter for pvwatch.

Publishes anomaly lifecycle events to a Kafka topic as JSON.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from confluent_kafka import KafkaException, Producer

from pvwatch.core.domain.anomaly import Anomaly
from pvwatch.core.ports.notifier import Notifier

logger = logging.getLogger(__name__)


class KafkaNotifier(Notifier):
    """
    Notifier that produces one message per event, keyed by system id.

    Publishing failures are logged and never propagated: alert delivery must
    not break detection.
    """

    def __init__(self, bootstrap_servers: str, topic: str = "pvwatch-anomalies"):
        """
        Initialize the notifier.

        Args:
            bootstrap_servers: Comma-separated list of Kafka broker addresses
            topic: Topic that receives all events
        """
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.producer = None

    def _get_producer(self) -> Producer:
        """Lazy initialization of Kafka producer."""
        if self.producer is None:
            config = {
                'bootstrap.servers': self.bootstrap_servers,
                'client.id': 'pvwatch-notifier',
                'acks': 'all',
                'retries': 3,
            }
            self.producer = Producer(config)
        return self.producer

    def _delivery_callback(self, err, msg):
        """Callback for message delivery reports."""
        if err:
            logger.error(f"Message delivery failed: {err}")
        else:
            logger.debug(f"Message delivered to {msg.topic()} [{msg.partition()}]")

    def publish(self, event_type: str, key: str, payload: dict[str, Any]) -> None:
        message = {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        try:
            producer = self._get_producer()
            producer.produce(
                topic=self.topic,
                value=json.dumps(message).encode('utf-8'),
                key=key.encode('utf-8'),
                callback=self._delivery_callback,
            )
            producer.poll(0)
            logger.info(f"Published '{event_type}' for '{key}' to topic '{self.topic}'")
        except KafkaException as e:
            logger.error(f"Failed to publish '{event_type}': {e}")
        except Exception as e:
            logger.error(f"Unexpected error publishing to Kafka: {e}")

    def anomalies_detected(self, system_id: str, anomalies: list[Anomaly]) -> None:
        self.publish(
            "anomalies_detected",
            system_id,
            {
                "system_id": system_id,
                "anomalies": [a.model_dump(mode="json") for a in anomalies],
            },
        )

    def anomaly_acknowledged(self, anomaly: Anomaly) -> None:
        self.publish(
            "anomaly_acknowledged",
            anomaly.system_id,
            {
                "system_id": anomaly.system_id,
                "anomaly_id": anomaly.id,
                "acknowledged_by": anomaly.acknowledged_by,
                "feedback": anomaly.feedback.model_dump(mode="json") if anomaly.feedback else None,
            },
        )

    def flush(self, timeout: float = 10.0):
        """Wait for all messages to be delivered."""
        if self.producer:
            remaining = self.producer.flush(timeout)
            if remaining > 0:
                logger.warning(f"{remaining} messages were not delivered within timeout")

    def close(self):
        if self.producer:
            self.producer.flush(10.0)
            self.producer = None
