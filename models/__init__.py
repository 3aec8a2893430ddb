from .user import User, TierEnum
from .product import Product, Feature, ProductFeature
from .user_subscription import UserSubscription, SubscriptionStatusEnum, PROVIDER_RAZORPAY, PROVIDER_MANUAL_GRANT
from .order import Order, OrderStatusEnum
from .plan import Plan, Task
