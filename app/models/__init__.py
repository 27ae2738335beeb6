from app.models.media import MediaContent, MediaPurchase
from app.models.message import Message, MessagePayment, MessageUnlock
from app.models.payment import Payment
from app.models.subscription import Subscription, SubscriptionPlan
from app.models.user import User

__all__ = [
    "MediaContent",
    "MediaPurchase",
    "Message",
    "MessagePayment",
    "MessageUnlock",
    "Payment",
    "Subscription",
    "SubscriptionPlan",
    "User",
]
