"""
Background maintenance tasks started with the application.
"""
from storefront.scheduler.maintenance import (
    expire_memberships_once,
    run_maintenance_loop,
    run_maintenance_once,
)

__all__ = [
    'expire_memberships_once',
    'run_maintenance_loop',
    'run_maintenance_once',
]
