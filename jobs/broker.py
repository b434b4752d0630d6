"""
Dramatiq broker configuration.

Redis-based message broker for task queue. Tests get an in-memory
StubBroker so actors can be imported without a Redis server.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from app.config.settings import settings
from app.utils.redis_utils import get_redis_url_masked


if settings.environment == "test":
    broker = StubBroker()
    broker.emit_after("process_boot")
else:
    broker = RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password if settings.redis_password else None,
        db=settings.redis_db,
    )

# ShutdownNotifications: Allows workers to gracefully shutdown
# CurrentMessage: Provides access to current message in actors
# Retries: Exponential backoff for failed tasks (ChainUnavailable, DB errors)
broker.add_middleware(ShutdownNotifications())
broker.add_middleware(CurrentMessage())
broker.add_middleware(
    Retries(
        max_retries=3,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
    )
)

# Set as default broker
dramatiq.set_broker(broker)

logger.info(
    f"Dramatiq broker initialized ({type(broker).__name__}): "
    f"{get_redis_url_masked()}"
)
