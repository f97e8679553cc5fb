"""Pydantic schema for engine settings (config/liveconf.yaml)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from liveconf.broadcaster import DEFAULT_TOPIC

WatchStrategyName = Literal["auto", "poll"]
SourceFormat = Literal["json", "yaml"]


class EngineSettings(BaseModel):
    """Engine settings (loaded from config/liveconf.yaml)."""

    model_config = {"extra": "ignore"}

    host: str = "0.0.0.0"
    port: int = 8000
    config_dir: str = Field(default="config", description="Directory holding the domain documents; CONFIG_DIR env overrides when loading.")
    source_format: SourceFormat = Field("json", description="Suffix and decoder for domain documents: json or yaml")
    # auto = OS change notifications with polling fallback; poll = polling only
    watch_strategy: WatchStrategyName = Field("auto", description="auto | poll")
    poll_interval_seconds: float = Field(5.0, gt=0, le=3600)
    settle_delay_seconds: float = Field(0.5, ge=0, le=60, description="Quiet period after a change before reloading")
    reload_workers: int = Field(2, ge=1, le=16)
    event_queue_size: int = Field(64, ge=1, le=10000)
    shutdown_timeout_seconds: float = Field(10.0, gt=0)
    notification_topic: str = DEFAULT_TOPIC
    redis_url: str | None = Field(None, description="When set, reload notifications are also published to Redis pub/sub")
    redis_timeout_seconds: float = Field(5.0, gt=0, le=60, description="Socket connect/read timeout for Redis publishes")
    log_level: str = "INFO"
    log_json: bool = False
