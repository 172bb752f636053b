"""模块说明：schema。"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistryConfig(BaseModel):
    """消息注册表配置，时间单位均为毫秒。"""
    cleanup_interval: int = Field(default=30_000, gt=0)  # 孤儿清理周期
    orphan_timeout: int = Field(default=60_000, ge=0)  # PENDING/SENDING 超过该时长视为孤儿
    max_orphaned_messages: int = Field(default=1_000, ge=0)  # 临时记录上限，超出后强制淘汰最旧的
    orphan_retention: int = Field(default=60_000, ge=0)  # ORPHANED 记录保留多久后被清除
    debug: bool = False


class ReconcilerConfig(BaseModel):
    """类说明：ReconcilerConfig。"""
    threshold: float = Field(default=1.0, ge=0.0, le=1.0)  # 按内容对账的最低相似度


class LoggingConfig(BaseModel):
    """类说明：LoggingConfig。"""
    level: str = "INFO"
    file: str | None = None


class Config(BaseSettings):
    """类说明：Config。"""
    model_config = SettingsConfigDict(env_prefix="CHATSYNC_", env_nested_delimiter="__")

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
