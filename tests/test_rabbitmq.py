"""Tests for the RabbitMQ publisher and consumer with pika mocked out."""

import json
from unittest.mock import Mock, patch

import pika.exceptions

from task_service.core.rabbitmq import RabbitMQConsumer, RabbitMQPublisher


def _mock_connection() -> Mock:
    connection = Mock()
    connection.is_closed = False
    return connection


def test_add_publishes_envelope_routed_by_job_name() -> None:
    connection = _mock_connection()
    channel = connection.channel.return_value

    with patch("task_service.core.rabbitmq.pika.BlockingConnection", return_value=connection):
        publisher = RabbitMQPublisher(exchange="tasks")
        accepted = publisher.add("task-status-update", {"taskId": "t-1", "status": "PENDING"})

    assert accepted is True
    channel.exchange_declare.assert_called_once_with(exchange="tasks", exchange_type="topic", durable=True)
    kwargs = channel.basic_publish.call_args.kwargs
    assert kwargs["exchange"] == "tasks"
    assert kwargs["routing_key"] == "task-status-update"
    assert json.loads(kwargs["body"]) == {
        "event_type": "task-status-update",
        "data": {"taskId": "t-1", "status": "PENDING"},
    }
    assert kwargs["properties"].delivery_mode == 2


def test_add_returns_false_when_broker_unreachable() -> None:
    with patch(
        "task_service.core.rabbitmq.pika.BlockingConnection",
        side_effect=pika.exceptions.AMQPConnectionError("refused"),
    ):
        publisher = RabbitMQPublisher()
        assert publisher.add("task-status-update", {"taskId": "t-1"}) is False


def test_add_reconnects_once_after_publish_failure() -> None:
    connection = _mock_connection()
    channel = connection.channel.return_value
    channel.basic_publish.side_effect = [pika.exceptions.StreamLostError("lost"), None]

    with patch("task_service.core.rabbitmq.pika.BlockingConnection", return_value=connection) as factory:
        publisher = RabbitMQPublisher()
        assert publisher.add("task-status-update", {"taskId": "t-1"}) is True

    assert factory.call_count == 2
    assert channel.basic_publish.call_count == 2


def test_add_gives_up_after_second_failure() -> None:
    connection = _mock_connection()
    connection.channel.return_value.basic_publish.side_effect = pika.exceptions.StreamLostError("lost")

    with patch("task_service.core.rabbitmq.pika.BlockingConnection", return_value=connection):
        publisher = RabbitMQPublisher()
        assert publisher.add("task-status-update", {"taskId": "t-1"}) is False


def _delivery(tag: int = 7) -> Mock:
    method = Mock()
    method.delivery_tag = tag
    return method


def test_consumer_dispatches_to_handler_and_acks() -> None:
    handler = Mock()
    consumer = RabbitMQConsumer()
    consumer.add_message_handler("task-status-update", handler)
    channel = Mock()
    message = {"event_type": "task-status-update", "data": {"taskId": "t-1", "status": "COMPLETED"}}

    consumer.process_message(channel, _delivery(), None, json.dumps(message).encode("utf-8"))

    handler.assert_called_once_with(message)
    channel.basic_ack.assert_called_once_with(delivery_tag=7)


def test_consumer_rejects_malformed_json_without_requeue() -> None:
    consumer = RabbitMQConsumer()
    channel = Mock()

    consumer.process_message(channel, _delivery(), None, b"{not json")

    channel.basic_nack.assert_called_once_with(delivery_tag=7, requeue=False)


def test_consumer_requeues_when_handler_fails() -> None:
    consumer = RabbitMQConsumer()
    consumer.add_message_handler("task-status-update", Mock(side_effect=RuntimeError("db down")))
    channel = Mock()

    consumer.process_message(channel, _delivery(), None, b'{"event_type": "task-status-update", "data": {}}')

    channel.basic_nack.assert_called_once_with(delivery_tag=7, requeue=True)
    channel.basic_ack.assert_not_called()


def test_consumer_acks_unknown_event_types() -> None:
    consumer = RabbitMQConsumer()
    channel = Mock()

    consumer.process_message(channel, _delivery(), None, b'{"event_type": "something-else"}')

    channel.basic_ack.assert_called_once_with(delivery_tag=7)


def test_consumer_binds_queue_per_registered_job() -> None:
    consumer = RabbitMQConsumer(queue="task-processing", exchange="tasks")
    consumer.add_message_handler("task-status-update", Mock())
    consumer.channel = Mock()

    consumer.setup_queue()

    consumer.channel.queue_declare.assert_called_once_with(queue="task-processing", durable=True)
    consumer.channel.queue_bind.assert_called_once_with(
        exchange="tasks", queue="task-processing", routing_key="task-status-update"
    )
