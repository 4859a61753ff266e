"""
Task queue worker.

Consumes jobs from RabbitMQ and applies them to the task store:

    python -m task_service.worker
"""
import logging

from .core.config import get_settings
from .core.database import SessionLocal, init_db
from .core.rabbitmq import RabbitMQConsumer
from .services.task_processor import TaskProcessor
from .services.tasks import TASK_STATUS_UPDATE_JOB

settings = get_settings()

logger = logging.getLogger(__name__)


def build_consumer() -> RabbitMQConsumer:
    processor = TaskProcessor(SessionLocal)
    consumer = RabbitMQConsumer()
    consumer.add_message_handler(TASK_STATUS_UPDATE_JOB, processor.handle_status_update)
    return consumer


def main() -> int:
    logging.basicConfig(level=settings.log_level)
    logger.info("Starting task queue worker...")

    if not init_db():
        logger.error("Database initialization failed")
        return 1

    consumer = build_consumer()
    try:
        if not consumer.start_consuming():
            return 1
    finally:
        consumer.close()

    logger.info("Task queue worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
