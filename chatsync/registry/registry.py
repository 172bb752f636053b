"""消息注册表。

客户端在服务端确认之前就会先在本地创建消息（乐观更新），此时只有临时 ID。
MessageRegistry 负责：
- 为缺少 ID 的消息分配临时 ID（temp_<毫秒>_<8位十六进制>）
- 收到服务端确认后把临时 ID 与服务端 ID 关联（reconcile）
- 跟踪 PENDING -> SENDING -> RECONCILED 生命周期
- 周期性地把迟迟得不到确认的消息标记为 ORPHANED 并回收

记录只存一份（以主键 id 为键），服务端 ID 通过辅助索引指向主键。
"""

import asyncio
from collections.abc import Mapping
from typing import Any

from loguru import logger

from chatsync.config.schema import RegistryConfig
from chatsync.registry.record import MessageRecord, MessageState, RecordMetadata, can_transition
from chatsync.registry.similarity import calculate_similarity
from chatsync.utils.helpers import now_ms, prefixed_id, truncate_string

TEMP_ID_PREFIX = "temp"


class MessageRegistry:
    """临时消息与服务端消息的对账注册表。"""

    def __init__(self, config: RegistryConfig | None = None, **overrides: Any):
        base = config or RegistryConfig()
        self.config = RegistryConfig(**{**base.model_dump(), **overrides}) if overrides else base

        self._records: dict[str, MessageRecord] = {}  # 主键 -> 记录
        self._temp_ids: set[str] = set()  # 尚未对账的临时主键
        self._server_ids: dict[str, str] = {}  # 服务端 ID -> 主键

        self._stats = self._empty_stats()
        self._started_at = now_ms()
        self._destroyed = False
        self._cleanup_task: asyncio.Task | None = None

        self._start_cleanup_timer()

    # ------------------------------------------------------------------
    # 注册与状态
    # ------------------------------------------------------------------

    def generate_temp_id(self) -> str:
        """生成在当前注册表内未被占用的临时 ID。"""
        while True:
            candidate = prefixed_id(TEMP_ID_PREFIX)
            if candidate not in self._records and candidate not in self._server_ids:
                return candidate

    def register_message(self, message: Any = None, **options: Any) -> MessageRecord:
        """登记一条消息并返回其记录。

        带 id 的消息以该 id 为主键；否则分配临时 ID。
        None 或非映射的载荷登记为空消息，不抛异常。
        同一 id 重复登记时返回已有记录（投递可能重复）。
        """
        self._ensure_alive()

        if isinstance(message, Mapping):
            payload = dict(message)
        else:
            if message is not None:
                logger.warning(
                    f"Registering non-mapping message payload of type {type(message).__name__}"
                )
            payload = {}

        supplied = payload.get("id")
        if supplied is not None and supplied != "":
            message_id = str(supplied)
            existing = self.get_message(message_id)
            if existing is not None:
                self._debug(f"Message {message_id} already registered")
                return existing
            is_temporary = False
        else:
            message_id = self.generate_temp_id()
            is_temporary = True

        payload["id"] = message_id
        record = MessageRecord(
            id=message_id,
            message=payload,
            timestamp=now_ms(),
            temp_id=message_id if is_temporary else None,
            original_id=None if is_temporary else message_id,
            metadata=RecordMetadata(is_temporary=is_temporary, extra=dict(options)),
        )

        self._records[message_id] = record
        if is_temporary:
            self._temp_ids.add(message_id)
        self._stats["total_messages"] += 1

        self._debug(f"Registered message: {message_id} (temp: {is_temporary})")
        return record

    def update_message_state(
        self,
        message_id: str,
        new_state: MessageState | str,
        **metadata: Any,
    ) -> MessageRecord | None:
        """按任意已知键更新状态；找不到记录时返回 None。

        非法状态值抛 ValueError。回退或离开终态的迁移会被拒绝，
        记录原样返回。
        """
        self._ensure_alive()
        state = MessageState(new_state)

        record = self.get_message(message_id)
        if record is None:
            self._debug(f"Attempted to update unknown message: {message_id}")
            return None

        if not can_transition(record.state, state):
            logger.warning(
                f"Refusing state change for {record.id}: {record.state.value} -> {state.value}"
            )
            return record

        record.metadata.extra.update(metadata)
        self._apply_state(record, state, now_ms())
        return record

    def _apply_state(self, record: MessageRecord, state: MessageState, now: int) -> None:
        old_state = record.state
        if old_state == state:
            return

        record.state = state
        if state == MessageState.SENDING:
            record.send_timestamp = now
        elif state == MessageState.RECONCILED:
            record.reconcile_timestamp = now
            self._temp_ids.discard(record.id)
            self._record_reconcile_time(now - record.timestamp)
        elif state == MessageState.ORPHANED:
            record.orphan_timestamp = now
            self._temp_ids.discard(record.id)
            self._stats["orphaned_messages"] += 1

        self._debug(f"State change: {record.id} {old_state.value} -> {state.value}")

    def _record_reconcile_time(self, elapsed: int) -> None:
        self._stats["reconciled_messages"] += 1
        count = self._stats["reconciled_messages"]
        average = self._stats["average_reconcile_time"]
        self._stats["average_reconcile_time"] = (average * (count - 1) + elapsed) / count

    # ------------------------------------------------------------------
    # 对账
    # ------------------------------------------------------------------

    def reconcile_message(
        self,
        temp_id: str,
        server_id: str,
        server_data: Mapping[str, Any] | None = None,
    ) -> MessageRecord | None:
        """把临时（或调用方提供的）ID 与服务端 ID 关联。

        服务端数据合并进 message（冲突时以服务端为准），记录进入 RECONCILED，
        并可通过 server_id 查到同一对象。找不到记录、记录已孤立、
        或 server_id 已属于其他记录时返回 None。
        """
        self._ensure_alive()

        record = self._records.get(temp_id)
        if record is None:
            self._stats["failed_reconciliations"] += 1
            self._debug(f"Cannot reconcile unknown message id: {temp_id}")
            return None

        server_id = str(server_id)
        owner = self.get_message(server_id)
        if owner is not None and owner is not record:
            self._stats["failed_reconciliations"] += 1
            logger.warning(f"Server id {server_id} already belongs to message {owner.id}")
            return None

        if record.state == MessageState.RECONCILED:
            if record.server_id == server_id:
                return record
            self._stats["failed_reconciliations"] += 1
            logger.warning(
                f"Message {record.id} already reconciled with {record.server_id}, ignoring {server_id}"
            )
            return None

        if record.state == MessageState.ORPHANED:
            self._stats["failed_reconciliations"] += 1
            self._debug(f"Cannot reconcile orphaned message: {record.id}")
            return None

        record.server_id = server_id
        if isinstance(server_data, Mapping):
            record.message.update(server_data)
        record.message["id"] = server_id
        record.metadata.reconciled_with = server_id
        if server_id != record.id:
            self._server_ids[server_id] = record.id

        self._apply_state(record, MessageState.RECONCILED, now_ms())
        self._debug(f"Reconciled: {record.id} -> {server_id}")
        return record

    def reconcile_by_content(
        self,
        content: str,
        server_id: str,
        server_data: Mapping[str, Any] | None = None,
        threshold: float = 1.0,
    ) -> MessageRecord | None:
        """不知道临时 ID 时，按内容相似度对账。

        在 PENDING/SENDING 记录中选相似度最高且不低于 threshold 的一条；
        同分时取最早登记的。没有达标的候选时返回 None，不做任何修改。
        """
        self._ensure_alive()
        if not isinstance(content, str) or not content:
            return None

        best: MessageRecord | None = None
        best_score = -1.0
        for record in self._records.values():
            if record.state.is_terminal:
                continue
            candidate = record.content
            if not isinstance(candidate, str) or not candidate:
                continue
            score = calculate_similarity(content, candidate)
            if score >= threshold and score > best_score:
                best, best_score = record, score

        if best is None:
            self._debug(f"No content match for {truncate_string(content, 40)!r} (threshold {threshold})")
            return None

        self._debug(
            f"Content-based reconciliation: {best.id} -> {server_id} (similarity: {best_score:.2f})"
        )
        return self.reconcile_message(best.id, server_id, server_data)

    @staticmethod
    def calculate_similarity(text1: str, text2: str) -> float:
        """函数说明：calculate_similarity。"""
        return calculate_similarity(text1, text2)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get_message(self, message_id: str | None) -> MessageRecord | None:
        """按主键、临时 ID 或服务端 ID 查找记录。"""
        if message_id is None:
            return None
        record = self._records.get(message_id)
        if record is not None:
            return record
        canonical = self._server_ids.get(message_id)
        return self._records.get(canonical) if canonical is not None else None

    def get_messages_by_state(self, state: MessageState | str) -> list[MessageRecord]:
        """函数说明：get_messages_by_state。"""
        state = MessageState(state)
        return [record for record in self._records.values() if record.state == state]

    def get_orphaned_messages(self, now: int | None = None) -> list[MessageRecord]:
        """返回超过 orphan_timeout 仍处于 PENDING/SENDING 的记录（不修改状态）。"""
        now = now_ms() if now is None else now
        return [
            record
            for record in self._records.values()
            if record.state.is_active and record.age(now) > self.config.orphan_timeout
        ]

    # ------------------------------------------------------------------
    # 清理
    # ------------------------------------------------------------------

    def cleanup_orphaned_messages(self) -> int:
        """把超时记录标记为 ORPHANED，返回本次标记的数量。

        临时记录数超过 max_orphaned_messages 时，额外淘汰最旧的临时记录；
        已孤立超过 orphan_retention 的记录在此一并清除。
        """
        if self._destroyed:
            return 0

        now = now_ms()
        orphaned = self.get_orphaned_messages(now)
        for record in orphaned:
            self._apply_state(record, MessageState.ORPHANED, now)

        excess = len(self._temp_ids) - self.config.max_orphaned_messages
        if excess > 0:
            self.force_cleanup_oldest_messages(excess)

        self._purge_expired_orphans(now)

        if orphaned:
            self._debug(f"Cleaned up {len(orphaned)} orphaned messages")
        return len(orphaned)

    def force_cleanup_oldest_messages(self, count: int) -> int:
        """不看年龄，直接移除最旧的 count 条临时记录，返回移除数量。"""
        if count <= 0:
            return 0

        temporary = [record for record in self._records.values() if record.id in self._temp_ids]
        victims = sorted(temporary, key=lambda r: r.timestamp)[:count]

        now = now_ms()
        for record in victims:
            self._apply_state(record, MessageState.ORPHANED, now)
            self._remove(record)
            self._stats["evicted_messages"] += 1

        if victims:
            logger.warning(
                f"Force cleaned {len(victims)} oldest temporary messages "
                f"(limit {self.config.max_orphaned_messages})"
            )
        return len(victims)

    def _purge_expired_orphans(self, now: int) -> None:
        expired = [
            record
            for record in self._records.values()
            if record.state == MessageState.ORPHANED
            and record.orphan_timestamp is not None
            and now - record.orphan_timestamp > self.config.orphan_retention
        ]
        for record in expired:
            self._remove(record)

    def _remove(self, record: MessageRecord) -> None:
        self._records.pop(record.id, None)
        self._temp_ids.discard(record.id)
        if record.server_id is not None:
            self._server_ids.pop(record.server_id, None)

    # ------------------------------------------------------------------
    # 周期清理任务
    # ------------------------------------------------------------------

    def _start_cleanup_timer(self) -> bool:
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._debug("No running event loop, periodic cleanup waits for start()")
            return False
        self._cleanup_task = loop.create_task(self._run_cleanup_loop())
        self._debug(f"Periodic cleanup started (every {self.config.cleanup_interval}ms)")
        return True

    async def start(self) -> None:
        """在事件循环中启动周期清理（构造时已有运行中的循环则无需调用）。"""
        self._ensure_alive()
        self._start_cleanup_timer()

    async def _run_cleanup_loop(self) -> None:
        """异步函数说明：_run_cleanup_loop。"""
        interval_s = self.config.cleanup_interval / 1000
        while not self._destroyed:
            try:
                await asyncio.sleep(interval_s)
                if self._destroyed:
                    break
                self.cleanup_orphaned_messages()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Message registry cleanup error: {e}")

    def _stop_cleanup_timer(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    @property
    def cleanup_running(self) -> bool:
        """函数说明：cleanup_running。"""
        return self._cleanup_task is not None and not self._cleanup_task.done()

    # ------------------------------------------------------------------
    # 统计、导出与生命周期
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_stats() -> dict[str, Any]:
        return {
            "total_messages": 0,
            "reconciled_messages": 0,
            "orphaned_messages": 0,
            "evicted_messages": 0,
            "failed_reconciliations": 0,
            "average_reconcile_time": 0.0,
        }

    def get_stats(self) -> dict[str, Any]:
        """返回计数器与当前索引规模。

        total_messages / reconciled_messages / orphaned_messages 为自上次 clear 以来的累计值，
        average_reconcile_time 为登记到对账的平均耗时（毫秒）。
        """
        now = now_ms()
        return {
            **self._stats,
            "total_records": len(self._records),
            "active_messages": sum(1 for r in self._records.values() if r.state.is_active),
            "temp_messages": len(self._temp_ids),
            "orphan_candidates": len(self.get_orphaned_messages(now)),
            "memory_usage": {
                "records": len(self._records),
                "temporary_ids": len(self._temp_ids),
                "server_id_mappings": len(self._server_ids),
            },
            "uptime": now - self._started_at,
        }

    def export_messages(self) -> dict[str, dict[str, Any]]:
        """调试用：所有已知键 -> 记录快照。"""
        exported = {}
        for record in self._records.values():
            snapshot = record.to_dict()
            for key in record.keys:
                exported[key] = snapshot
        return exported

    def clear(self) -> None:
        """清空全部记录、索引与计数器；注册表仍可继续使用。"""
        self._records.clear()
        self._temp_ids.clear()
        self._server_ids.clear()
        self._stats = self._empty_stats()
        self._debug("All messages cleared")

    def destroy(self) -> None:
        """停止周期清理并清空状态，之后不可再写入。"""
        self._destroyed = True
        self._stop_cleanup_timer()
        self.clear()

    @property
    def destroyed(self) -> bool:
        """函数说明：destroyed。"""
        return self._destroyed

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("MessageRegistry has been destroyed")

    def _debug(self, message: str) -> None:
        if self.config.debug:
            logger.debug(f"[MessageRegistry] {message}")

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, message_id: str) -> bool:
        return self.get_message(message_id) is not None


_global_registry: MessageRegistry | None = None


def get_message_registry(config: RegistryConfig | None = None) -> MessageRegistry:
    """进程级共享注册表，首次调用时创建；之后传入的 config 被忽略。"""
    global _global_registry
    if _global_registry is None:
        _global_registry = MessageRegistry(config)
    return _global_registry


def reset_message_registry() -> None:
    """销毁共享注册表并丢弃引用，下次获取时重新创建。"""
    global _global_registry
    if _global_registry is not None:
        _global_registry.destroy()
        _global_registry = None
