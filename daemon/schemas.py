# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
RunAlert Schema Registry — Pydantic models for every JSON structure.

Single source of truth for the config document we read, the upstream
payloads we consume and the status summaries we produce.

Usage:
    from daemon.schemas import WatcherConfig, RunSnapshot

    # Validate on load
    cfg = WatcherConfig.model_validate(json.loads(path.read_text()))

    # Serialize on save (camelCase on the wire)
    path.write_text(cfg.model_dump_json(by_alias=True, indent=2))

Wire format is camelCase (thresholdSec, defaultMilestones, isLive, eventList),
Python attributes are snake_case. All models use extra="allow" so upstream
fields we don't know about won't break parsing.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# Base config: all models inherit this
# ============================================================================

class RunAlertModel(BaseModel):
    """Base for all RunAlert schemas. camelCase aliases, extra fields allowed."""
    model_config = {
        "extra": "allow",
        "populate_by_name": True,
        "alias_generator": to_camel,
    }


# ============================================================================
# Custom exceptions: standardized error handling across daemon layer
# ============================================================================

class RunAlertError(Exception):
    """Base class for RunAlert errors."""


class UpstreamError(RunAlertError):
    """Raised when the split-timing API fails (transport error or non-2xx)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DedupeStoreError(RunAlertError):
    """Raised when the sent-keys record can't be persisted."""


class ConfigError(RunAlertError):
    """Raised when a config document can't be used at all."""


# ============================================================================
# CLOCKS, SOURCES, DELIVERY OUTCOMES
# ============================================================================

IGT = "IGT"
RTA = "RTA"
CLOCKS = (IGT, RTA)

SOURCE_WORLD = "world"
SOURCE_LIVE = "live"


class Delivery:
    """Outcomes reported by the notification delivery call."""
    SENT = "sent"
    SUPPRESSED_QUIET = "suppressed-quiet"
    DRY_RUN = "dry-run"
    FAILED = "failed"


@dataclass(frozen=True)
class SplitSample:
    """Elapsed time at which a run reached a milestone."""
    ms: float
    clock: str
    source: str

    @property
    def seconds(self) -> int:
        return int(self.ms // 1000)


# ============================================================================
# CONFIG DOCUMENT
# ============================================================================

class MilestoneRule(RunAlertModel):
    """Per-milestone rule. thresholdSec=None means no cutoff."""
    threshold_sec: Optional[Union[int, float]] = None
    enabled: bool = True


def _default_milestones() -> Dict[str, MilestoneRule]:
    return {"nether": MilestoneRule(threshold_sec=240, enabled=True)}


class WatcherConfig(RunAlertModel):
    """The config document: ~/.runalert/config.json (or the remote copy)."""
    streamers: List[str] = Field(default_factory=list)
    default_milestones: Dict[str, MilestoneRule] = Field(default_factory=_default_milestones)
    profiles: Dict[str, Dict[str, MilestoneRule]] = Field(default_factory=dict)
    quiet_hours: Optional[Union[str, List[str]]] = None
    clock: str = IGT

    @field_validator("clock", mode="before")
    @classmethod
    def _normalize_clock(cls, value: Any) -> str:
        if value is None:
            return IGT
        clock = str(value).strip().upper()
        if clock not in CLOCKS:
            raise ValueError(f"clock must be one of {CLOCKS}, got {value!r}")
        return clock

    @property
    def quiet_spans(self) -> List[str]:
        """Quiet hours as a list; a bare string is the legacy single span."""
        if not self.quiet_hours:
            return []
        if isinstance(self.quiet_hours, str):
            return [self.quiet_hours]
        return list(self.quiet_hours)

    def clocks(self) -> Tuple[str, str]:
        """(primary, fallback) — the fallback is always the other clock."""
        primary = self.clock
        return primary, (RTA if primary == IGT else IGT)


# ============================================================================
# UPSTREAM PAYLOADS
# ============================================================================

class RunSnapshot(RunAlertModel):
    """getWorld payload: { isLive, data: {splits..., updateTime, nickname, ...} }"""
    is_live: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_data(cls, value: Any) -> Any:
        return value if value is not None else {}

    @property
    def nickname(self) -> Optional[str]:
        return _clean_str(self.data.get("nickname"))

    @property
    def twitch(self) -> Optional[str]:
        return _clean_str(self.data.get("twitch"))

    @property
    def uuid(self) -> Optional[str]:
        return _clean_str(self.data.get("uuid"))

    @property
    def update_time(self) -> Optional[float]:
        return _positive_number(self.data.get("updateTime"))

    @property
    def insert_time(self) -> Optional[float]:
        return _positive_number(self.data.get("insertTime"))


class LiveEvent(RunAlertModel):
    """One event in a live run's eventList (igt/rta in ms)."""
    event_id: Optional[str] = None
    igt: Any = None
    rta: Any = None


class LiveRun(RunAlertModel):
    """One entry of the live-runs feed."""
    nickname: Optional[str] = None
    user: Dict[str, Any] = Field(default_factory=dict)
    event_list: List[LiveEvent] = Field(default_factory=list)
    last_updated: Any = None

    @field_validator("user", "event_list", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any, info) -> Any:
        if value is None:
            return {} if info.field_name == "user" else []
        return value

    def identities(self) -> List[str]:
        """Candidate display names, most specific first."""
        names = [
            self.nickname,
            self.user.get("nickname"),
            self.user.get("nick"),
            self.user.get("displayName"),
        ]
        return [n for n in names if isinstance(n, str) and n.strip()]


# ============================================================================
# STATUS SUMMARY
# ============================================================================

class StreamerStatus(RunAlertModel):
    """Per-streamer status summary consumed by status-reporting surfaces."""
    run_id: Optional[int] = None
    is_live: bool = False
    is_active: bool = False
    run_is_active: bool = False
    last_updated_sec: Optional[float] = None
    run_start_sec: Optional[float] = None
    last_milestone: Optional[str] = None
    last_milestone_ms: Optional[float] = None
    last_milestone_source: Optional[str] = None
    recent_finish_ms: Optional[float] = None
    recent_finish_updated_sec: Optional[float] = None


class StreamerProfile(RunAlertModel):
    """Who a streamer is upstream: latest run, twitch handle, avatar."""
    run_id: Optional[int] = None
    twitch: Optional[str] = None
    uuid: Optional[str] = None
    avatar_url: Optional[str] = None


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value <= 0:  # NaN or non-positive
        return None
    return value


# ============================================================================
# UTILITY: validated load/save helpers
# ============================================================================

T = TypeVar("T", bound=RunAlertModel)


def load_validated(path: Path, schema: Type[T]) -> T:
    """
    Load JSON from file and validate against schema.

    Missing file returns schema() with all defaults. Unparseable or invalid
    content raises ConfigError so the caller can decide to keep the last
    good document.
    """
    if not path.exists():
        return schema()
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"{path}: {e}") from e
    try:
        return schema.model_validate(data)
    except ValueError as e:
        raise ConfigError(f"{path}: {e}") from e


def _atomic_rename(tmp: Path, dest: Path):
    """Flush, fsync, then rename — crash-safe atomic write."""
    fd = os.open(str(tmp), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
    os.replace(str(tmp), str(dest))


def atomic_write_json(path: Path, data: Any, indent: int = 2):
    """Atomically write a dict/list as JSON (write .tmp, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=indent))
    _atomic_rename(tmp, path)
