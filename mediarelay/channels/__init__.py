from .manager import ChannelManager, ProgressEvent, Subscription

__all__ = ["ChannelManager", "ProgressEvent", "Subscription"]
