"""Queue service for background jobs using RQ."""

import redis
from flask import current_app
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from lens.services.jobs import recompute_stats_job


class QueueService:
    """Service for managing background job queues."""

    def __init__(self, redis_url):
        self.redis_conn = redis.from_url(redis_url)
        self.stats_queue = Queue('stats', connection=self.redis_conn)

    def enqueue_stats_recompute(self, user_id=None):
        """Queue an idempotent recount of user statistics."""
        return self.stats_queue.enqueue(recompute_stats_job, user_id=user_id)

    def get_job_status(self, job_id):
        """Get the status of a job by ID."""
        try:
            job = Job.fetch(job_id, connection=self.redis_conn)
        except NoSuchJobError:
            return None
        return {
            'id': job.id,
            'status': job.get_status(),
            'result': job.return_value(),
            'created_at': job.created_at.isoformat() if job.created_at else None,
            'ended_at': job.ended_at.isoformat() if job.ended_at else None,
        }


def get_queue_service():
    """Queue service bound to the current app's REDIS_URL."""
    service = current_app.extensions.get('lens.queue')
    if service is None:
        service = QueueService(current_app.config['REDIS_URL'])
        current_app.extensions['lens.queue'] = service
    return service


__all__ = ['QueueService', 'get_queue_service']
