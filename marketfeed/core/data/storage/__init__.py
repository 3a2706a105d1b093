"""Storage and broker adapters."""

from marketfeed.core.data.storage.memory import InMemoryBrokerPublisher, InMemoryMarketStore, PublishedMessage

__all__ = ["InMemoryBrokerPublisher", "InMemoryMarketStore", "PublishedMessage"]
