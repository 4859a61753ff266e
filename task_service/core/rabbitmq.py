"""
RabbitMQ clients for the task job queue.

The web process publishes jobs with ``RabbitMQPublisher``; the worker process
consumes them with ``RabbitMQConsumer``. Every message is a JSON envelope
``{"event_type": <job name>, "data": <payload>}`` routed by job name.
"""
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional
import pika
import pika.exceptions

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

MessageHandler = Callable[[Dict[str, Any]], None]


def _connection_parameters(host: str, port: int, user: str, password: str, vhost: str) -> pika.ConnectionParameters:
    credentials = pika.PlainCredentials(user, password)
    return pika.ConnectionParameters(
        host=host,
        port=port,
        virtual_host=vhost,
        credentials=credentials,
        heartbeat=600,
        blocked_connection_timeout=300,
    )


class RabbitMQPublisher:
    """RabbitMQ publisher for task jobs"""

    def __init__(
        self,
        host: str = settings.rabbitmq_host,
        port: int = settings.rabbitmq_port,
        user: str = settings.rabbitmq_user,
        password: str = settings.rabbitmq_password,
        vhost: str = settings.rabbitmq_vhost,
        exchange: str = settings.rabbitmq_exchange,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.vhost = vhost
        self.exchange = exchange
        self.connection = None
        self.channel = None
        # BlockingConnection is not thread-safe; sync endpoints run in a threadpool
        self._lock = threading.Lock()

    def connect(self, max_retries: int = 1, retry_delay: int = 5) -> bool:
        """Establish connection to RabbitMQ with retries"""
        for attempt in range(max_retries):
            try:
                parameters = _connection_parameters(
                    self.host, self.port, self.user, self.password, self.vhost
                )
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare exchange
                self.channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )

                logger.info(f"Connected to RabbitMQ at {self.host}:{self.port}")
                return True

            except pika.exceptions.AMQPConnectionError as e:
                logger.warning(f"RabbitMQ connection attempt {attempt + 1}/{max_retries} failed: {e}")
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                else:
                    logger.error("Failed to connect to RabbitMQ after all retries")
            except Exception as e:
                logger.error(f"Unexpected error connecting to RabbitMQ: {e}")
                return False

        return False

    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    def add(self, job_name: str, data: Dict[str, Any]) -> bool:
        """
        Publish a job to RabbitMQ.

        Never raises: returns False when the job could not be handed to the
        broker. A broken connection is dropped and the publish retried once
        on a fresh one.
        """
        message = {
            'event_type': job_name,
            'data': data
        }

        with self._lock:
            for attempt in range(2):
                if not self.is_connected() and not self.connect():
                    logger.warning(f"Failed to publish {job_name} job - no connection")
                    return False

                try:
                    self.channel.basic_publish(
                        exchange=self.exchange,
                        routing_key=job_name,
                        body=json.dumps(message, default=str),
                        properties=pika.BasicProperties(
                            delivery_mode=2,  # Persistent
                            content_type='application/json'
                        )
                    )
                    logger.info(f"Published {job_name} job to RabbitMQ")
                    return True

                except Exception as e:
                    logger.error(f"Error publishing {job_name} job (attempt {attempt + 1}/2): {e}")
                    self._reset()

        return False

    def _reset(self):
        try:
            if self.is_connected():
                self.connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while dropping connection: {e}")
        self.connection = None
        self.channel = None

    def close(self):
        """Close connection"""
        try:
            if self.is_connected():
                self.connection.close()
                logger.info("RabbitMQ connection closed")
        except Exception as e:
            logger.error(f"Error closing connection: {e}")


class RabbitMQConsumer:
    """RabbitMQ consumer for task jobs"""

    def __init__(
        self,
        queue: str = settings.rabbitmq_queue,
        exchange: str = settings.rabbitmq_exchange,
    ):
        self.queue = queue
        self.exchange = exchange
        self.connection = None
        self.channel = None
        self.consuming = False
        self.message_handlers: Dict[str, MessageHandler] = {}

    def connect(self, max_retries: int = settings.rabbitmq_connect_retries,
                retry_delay: int = settings.rabbitmq_retry_delay) -> bool:
        """Establish connection to RabbitMQ with retries"""
        for attempt in range(max_retries):
            try:
                parameters = _connection_parameters(
                    settings.rabbitmq_host,
                    settings.rabbitmq_port,
                    settings.rabbitmq_user,
                    settings.rabbitmq_password,
                    settings.rabbitmq_vhost,
                )
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare exchange and queue
                self.setup_queue()

                logger.info(f"Connected to RabbitMQ at {settings.rabbitmq_host}:{settings.rabbitmq_port}")
                return True

            except pika.exceptions.AMQPConnectionError as e:
                logger.warning(f"RabbitMQ connection attempt {attempt + 1}/{max_retries} failed: {e}")
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                else:
                    logger.error("Failed to connect to RabbitMQ after all retries")
            except Exception as e:
                logger.error(f"Unexpected error connecting to RabbitMQ: {e}")
                return False

        return False

    def setup_queue(self):
        """Setup exchange, queue, and one binding per registered job name"""
        self.channel.exchange_declare(
            exchange=self.exchange,
            exchange_type='topic',
            durable=True
        )

        self.channel.queue_declare(
            queue=self.queue,
            durable=True
        )

        for event_type in self.message_handlers:
            self.channel.queue_bind(
                exchange=self.exchange,
                queue=self.queue,
                routing_key=event_type
            )

        logger.info(f"Queue setup completed: {self.queue}")

    def add_message_handler(self, event_type: str, handler: MessageHandler):
        """Add message handler for specific event type"""
        self.message_handlers[event_type] = handler
        logger.info(f"Added handler for event type: {event_type}")

    def process_message(self, channel, method, properties, body):
        """Process incoming message from RabbitMQ"""
        try:
            message = json.loads(body.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Error parsing message JSON: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return

        event_type = message.get('event_type', 'unknown') if isinstance(message, dict) else 'unknown'
        logger.info(f"Received message: {event_type}")
        logger.debug(f"Message content: {message}")

        handler: Optional[MessageHandler] = self.message_handlers.get(event_type)
        if handler is None:
            logger.warning(f"No handler found for event type: {event_type}")
            channel.basic_ack(delivery_tag=method.delivery_tag)
            return

        try:
            handler(message)
        except Exception as e:
            logger.error(f"Error processing {event_type} message: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            return

        logger.info(f"Successfully processed {event_type} event")
        channel.basic_ack(delivery_tag=method.delivery_tag)

    def start_consuming(self) -> bool:
        """Start consuming messages (blocks until stopped)"""
        if not self.connection or self.connection.is_closed:
            if not self.connect():
                logger.error("Cannot start consuming - no connection")
                return False

        try:
            self.channel.basic_qos(prefetch_count=1)
            self.channel.basic_consume(
                queue=self.queue,
                on_message_callback=self.process_message
            )

            self.consuming = True
            logger.info("Started consuming messages from RabbitMQ")

            self.channel.start_consuming()

        except KeyboardInterrupt:
            logger.info("Stopping consumer...")
            self.stop_consuming()
        except Exception as e:
            logger.error(f"Error during consuming: {e}")
            self.consuming = False
            return False

        return True

    def stop_consuming(self):
        """Stop consuming messages"""
        if self.consuming and self.channel:
            self.channel.stop_consuming()
            self.consuming = False
            logger.info("Stopped consuming messages")

    def close(self):
        """Close connection"""
        try:
            if self.consuming:
                self.stop_consuming()

            if self.connection and not self.connection.is_closed:
                self.connection.close()
                logger.info("RabbitMQ connection closed")

        except Exception as e:
            logger.error(f"Error closing RabbitMQ connection: {e}")


# Global publisher instance
rabbitmq_publisher = RabbitMQPublisher()
