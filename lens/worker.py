"""RQ Worker for background job processing."""

import os

import redis
from rq import Queue, Worker
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_redis_connection():
    """Get Redis connection from environment."""
    redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    return redis.from_url(redis_url)


def setup_queues(redis_conn):
    """Setup RQ queues, stats first."""
    return {
        'stats': Queue('stats', connection=redis_conn),
        'default': Queue(connection=redis_conn),
    }


def main():
    redis_conn = get_redis_connection()
    queues = setup_queues(redis_conn)
    worker = Worker(list(queues.values()), connection=redis_conn)

    print(f"Listening on queues: {list(queues.keys())}")
    try:
        worker.work()
    except KeyboardInterrupt:
        print("\nWorker stopped by user")


if __name__ == '__main__':
    main()
