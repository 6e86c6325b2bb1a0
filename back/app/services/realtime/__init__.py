# Local application imports
from app.services.realtime.fanout import FEED, ChangeFanout, Subscription, SubscriptionClosed
from app.services.realtime.redis_bridge import RedisEventBridge

__all__ = ["FEED", "ChangeFanout", "RedisEventBridge", "Subscription", "SubscriptionClosed"]
