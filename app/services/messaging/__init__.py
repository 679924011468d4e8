from .durable_queue import Delivery, QueueBroker

__all__ = ["Delivery", "QueueBroker"]
