"""模块说明：__init__。"""

from chatsync.bus.events import InboundEvent, OutboundEvent
from chatsync.bus.queue import EventBus
from chatsync.bus.reconciler import Reconciler

__all__ = ["EventBus", "InboundEvent", "OutboundEvent", "Reconciler"]
