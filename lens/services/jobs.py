"""Background job functions for RQ worker."""


def recompute_stats_job(user_id=None):
    """Background job to rebuild user counters from photo rows."""
    from lens import create_app

    app = create_app()

    with app.app_context():
        try:
            from lens.services.stats import recompute_user_stats
            changed = recompute_user_stats(user_id)
            app.logger.info(f"Recomputed stats, {changed} user(s) changed")
            return changed
        except Exception as e:
            app.logger.error(f"Stats recompute job failed: {str(e)}")
            raise
