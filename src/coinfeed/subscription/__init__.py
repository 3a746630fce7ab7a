"""
Supervised live price streaming for CoinAPI.

This module provides the restart supervisor, the orchestration that wires it
to configuration and storage, and the CLI built on top.
"""

from coinfeed.subscription.orchestrator import run_feed
from coinfeed.subscription.supervisor import SubscriptionSupervisor

__all__ = ["SubscriptionSupervisor", "run_feed"]
