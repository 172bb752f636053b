"""模块说明：queue。"""

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from chatsync.bus.events import InboundEvent, OutboundEvent
from chatsync.events.casing import camel_to_snake
from chatsync.events.normalizer import normalize_incoming, normalize_outgoing

EventHandler = Callable[[InboundEvent], Awaitable[None]]

WILDCARD = "*"


def _topic(event_type: str) -> str:
    # chat_response 与 chatResponse 视为同一主题
    return event_type if event_type == WILDCARD else camel_to_snake(event_type)


class EventBus:
    """进站/出站事件队列；发布时完成规范化，进站事件按类型分发给订阅者。"""

    def __init__(self):
        self.inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundEvent] = asyncio.Queue()
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._running = False

    async def publish_inbound(self, raw: Any) -> InboundEvent:
        """规范化传输层交来的原始载荷并入队。"""
        payload = normalize_incoming(raw)
        if not payload["__normalized"]:
            logger.debug(f"Queueing unnormalized inbound event: {payload.get('__error')}")
        event = InboundEvent(type=payload["type"], payload=payload)
        await self.inbound.put(event)
        return event

    async def consume_inbound(self) -> InboundEvent:
        """异步函数说明：consume_inbound。"""
        return await self.inbound.get()

    async def publish_outbound(self, event: Any) -> OutboundEvent:
        """规范化客户端事件（转 snake_case）并放入出站队列。"""
        payload = normalize_outgoing(event)
        outbound = OutboundEvent(type=payload["type"], payload=payload)
        await self.outbound.put(outbound)
        return outbound

    async def consume_outbound(self) -> OutboundEvent:
        """异步函数说明：consume_outbound。"""
        return await self.outbound.get()

    def subscribe(self, event_type: str, callback: EventHandler) -> None:
        """订阅某类进站事件；event_type 为 "*" 时接收全部事件。"""
        self._subscribers.setdefault(_topic(event_type), []).append(callback)

    def unsubscribe(self, event_type: str, callback: EventHandler) -> None:
        """函数说明：unsubscribe。"""
        callbacks = self._subscribers.get(_topic(event_type), [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def dispatch(self, event: InboundEvent) -> None:
        """把事件交给对应订阅者；单个订阅者出错只记录日志。"""
        callbacks = self._subscribers.get(_topic(event.type), []) + self._subscribers.get(WILDCARD, [])
        for callback in callbacks:
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Error dispatching {event.type} event: {e}")

    async def dispatch_inbound(self) -> None:
        """持续消费进站队列直到 stop()。"""
        self._running = True
        while self._running:
            try:
                event = await asyncio.wait_for(self.inbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self.dispatch(event)

    def stop(self) -> None:
        """函数说明：stop。"""
        self._running = False

    @property
    def inbound_size(self) -> int:
        """函数说明：inbound_size。"""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """函数说明：outbound_size。"""
        return self.outbound.qsize()
