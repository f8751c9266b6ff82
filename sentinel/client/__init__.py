# Client SDK
# Async WebSocket client for operators, requesters and agents

from sentinel.client.client import DispatchClient, Subscription, EventCallback

__all__ = ["DispatchClient", "Subscription", "EventCallback"]
