from .forwarder import Forwarder
from .queue import DeliveryQueue
from .retry import RetryDriver

__all__ = ["DeliveryQueue", "Forwarder", "RetryDriver"]
