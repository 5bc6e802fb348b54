"""
MQTT Publishers
===============

Bounded Context: Message Production

Public API
----------
    StatusPublisher: Accessory status change messages (retained, per node)
"""

from .status import StatusPublisher

__all__ = [
    'StatusPublisher',
]
