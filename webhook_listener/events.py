"""
Event types emitted by the platform
"""

# Every webhook registered by the listener subscribes to all of these.
ALL_EVENTS = [
    'deployment.created',
    'deployment.error',
    'deployment.succeeded',
    'deployment.canceled',
    'domain.created',
    'project.created',
    'project.removed',
]
