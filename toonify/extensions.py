import logging
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis
from rq import Queue

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Set up in create_app; the queue falls back to PollOnlyQueue without Redis
redis_client: _redis.Redis = None  # type: ignore
task_queue = None


class PollOnlyQueue:
    """Queue stand-in when Redis is absent.

    Paid images stay ``in_queue`` in the database, so the polling
    dispatcher (``flask dispatch``) still picks them up.
    """

    def enqueue(self, func, *args, **kwargs):
        logger.warning(
            "Redis not available, leaving %s%s for the dispatcher",
            getattr(func, "__name__", func),
            args,
        )
        return None


def init_redis(app):
    global redis_client, task_queue
    redis_client = None
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set, processing relies on the dispatcher")
        task_queue = PollOnlyQueue()
        return

    try:
        redis_client = _redis.from_url(redis_url, decode_responses=False)
        redis_client.ping()
        task_queue = Queue(
            app.config["PROCESSING_QUEUE"],
            connection=redis_client,
            default_timeout=app.config["PROCESSING_JOB_TIMEOUT"],
        )
    except _redis.RedisError as e:
        logger.warning("Redis connection failed (%s), processing relies on the dispatcher", e)
        redis_client = None
        task_queue = PollOnlyQueue()
