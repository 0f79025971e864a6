import json
import threading
from concurrent.futures import ThreadPoolExecutor

from order_pipeline.notifications import NotificationPublisher


class FakeChannel:
    def __init__(self, connection):
        self.connection = connection

    def queue_declare(self, queue, durable):
        self.connection.declared.append((queue, durable))

    def basic_publish(self, exchange, routing_key, body, properties):
        if self.connection.fail_publish:
            raise ConnectionError("channel closed")
        self.connection.published.append((routing_key, json.loads(body), properties.delivery_mode))


class FakeConnection:
    def __init__(self, params, fail_publish=False):
        self.params = params
        self.fail_publish = fail_publish
        self.thread = threading.get_ident()
        self.declared = []
        self.published = []
        self.is_open = True

    def channel(self):
        return FakeChannel(self)

    def close(self):
        self.is_open = False


class ConnectionRecorder:
    def __init__(self, fail_publish=False):
        self.fail_publish = fail_publish
        self.connections = []
        self._lock = threading.Lock()

    def __call__(self, params):
        connection = FakeConnection(params, self.fail_publish)
        with self._lock:
            self.connections.append(connection)
        return connection


def test_publishes_persistent_event_and_closes_connection():
    recorder = ConnectionRecorder()
    publisher = NotificationPublisher(host="mq", queue="orders.q", connection_factory=recorder)

    publisher.order_confirmed("o-1", "ORD-1")

    (connection,) = recorder.connections
    assert connection.declared == [("orders.q", True)]
    routing_key, event, delivery_mode = connection.published[0]
    assert (routing_key, delivery_mode) == ("orders.q", 2)
    assert event["type"] == "order.confirmed"
    assert (event["orderId"], event["orderNumber"]) == ("o-1", "ORD-1")
    assert connection.is_open is False


def test_concurrent_publishes_never_share_a_connection():
    recorder = ConnectionRecorder()
    publisher = NotificationPublisher(connection_factory=recorder)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda n: publisher.order_confirmed(f"o-{n}", f"ORD-{n}"), range(12)))

    assert len(recorder.connections) == 12
    assert all(len(c.published) == 1 for c in recorder.connections)
    assert not any(c.is_open for c in recorder.connections)


def test_publish_failure_is_swallowed_and_connection_closed():
    recorder = ConnectionRecorder(fail_publish=True)

    NotificationPublisher(connection_factory=recorder).order_confirmed("o-1", "ORD-1")

    assert recorder.connections[0].is_open is False


def test_broker_unreachable_is_swallowed():
    def unreachable(params):
        raise ConnectionError("refused")

    NotificationPublisher(connection_factory=unreachable).order_confirmed("o-1", "ORD-1")
