"""
notifications.py — Order Confirmation Publisher (RabbitMQ)

Publishes an "order.confirmed" event for the notification service (email/SMS).
Publishing is advisory: every failure is logged and swallowed, the order has
already been committed when this runs.

Each publish opens its own connection and closes it again. Checkouts run on
several threadpool workers at once and a pika BlockingConnection must not be
shared between threads.
"""

import json
import logging
import time
import uuid

import pika

from .config import NOTIFICATION_QUEUE, RABBITMQ_HOST, RABBITMQ_PASSWORD, RABBITMQ_USER

log = logging.getLogger(__name__)


class NotificationPublisher:
    """
    Fire-and-forget publisher for order notifications.

    Args:
        host (str): RabbitMQ host.
        queue (str): Durable queue the events are routed to.
        connection_factory (Callable): Builds a connection from `pika.ConnectionParameters`.
    """

    def __init__(self, host: str = RABBITMQ_HOST, queue: str = NOTIFICATION_QUEUE,
                 connection_factory=pika.BlockingConnection):
        self.host = host
        self.queue = queue
        self.connection_factory = connection_factory

    def _connect(self):
        credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
        connection = self.connection_factory(
            pika.ConnectionParameters(
                host=self.host,
                credentials=credentials,
                connection_attempts=1,
                socket_timeout=3,
                blocked_connection_timeout=5,
            )
        )
        channel = connection.channel()
        channel.queue_declare(queue=self.queue, durable=True)
        return connection, channel

    def order_confirmed(self, order_id: str, order_number: str):
        """Sends the confirmation event. Never raises."""
        message = {
            "eventId": str(uuid.uuid4()),
            "type": "order.confirmed",
            "orderId": order_id,
            "orderNumber": order_number,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        connection = None
        try:
            connection, channel = self._connect()
            channel.basic_publish(
                exchange='',
                routing_key=self.queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2, content_type="application/json"),
            )
            log.info(f"[Order: {order_number}] Bestätigungs-Event an Notification-Queue gesendet.")
        except Exception as e:
            log.error(f"[Order: {order_number}] Bestätigungs-Event konnte nicht gesendet werden: {e}")
        finally:
            if connection is not None and connection.is_open:
                try:
                    connection.close()
                except Exception as e:
                    log.warning(f"[Order: {order_number}] RabbitMQ-Verbindung nicht sauber geschlossen: {e}")
