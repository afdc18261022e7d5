"""opsync -- async operation controllers with classified errors, retries,
optimistic updates and a two-tier entity cache.

Quick start::

    from opsync.core.settings import OpsyncSettings
    from opsync.core.cache import EntityCacheSpec, create_cache_synchronizer
    from opsync.execution import RetryableOperationController

    settings = OpsyncSettings()
    sync = create_cache_synchronizer(settings, [EntityCacheSpec("team")])
    controller = RetryableOperationController(load_team, policy=settings.retry_policy())
"""

__version__ = "0.1.0"
