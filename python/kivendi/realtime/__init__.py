"""Real-time delivery: the in-process chat hub."""

from kivendi.realtime.hub import ChatHub, HubClient, ReadWriteLock

__all__ = ["ChatHub", "HubClient", "ReadWriteLock"]
