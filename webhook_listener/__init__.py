"""
Webhook Listener - Receive platform webhooks locally and relay them to your endpoints
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .listener import WebhookListener
from .relay import RelayServer, RelayServerConfig
from .rules import ForwardingRule, RuleMatcher

__all__ = [
    "WebhookListener",
    "RelayServer",
    "RelayServerConfig",
    "ForwardingRule",
    "RuleMatcher",
    "__version__",
]
