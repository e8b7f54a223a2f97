# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Notification copy: labels, emoji and the banner title."""

from typing import Optional
from urllib.parse import quote

_LABELS = {
    "nether": "Nether",
    "bastion": "Bastion",
    "fortress": "Fortress",
    "first_portal": "First Portal",
    "second_portal": "Second Portal",
    "stronghold": "Stronghold",
    "end": "End",
    "finish": "Finish",
}

_EMOJI = {
    "nether": "🔥",
    "bastion": "🟨🐷",
    "fortress": "🏰🧱",
    "first_portal": "🌀✨",
    "second_portal": "🌀🔁",
    "stronghold": "👁️",
    "end": "🐉",
    "finish": "👑",
}

# Read fine without "Entered".
_PLAIN_LABELS = {"first_portal", "finish"}


def ms_to_mmss(ms: Optional[float]) -> str:
    """179852 -> "2:59". None -> "—"."""
    if ms is None:
        return "—"
    total = int(ms // 1000)
    return f"{total // 60}:{total % 60:02d}"


def milestone_label(milestone: str) -> str:
    """Friendly label; unknown keys become Title Case words."""
    if milestone in _LABELS:
        return _LABELS[milestone]
    words = [w for w in str(milestone or "").strip().split("_") if w]
    if not words:
        return "Milestone"
    return " ".join(w[:1].upper() + w[1:] for w in words)


def milestone_entered_label(milestone: str) -> str:
    label = milestone_label(milestone)
    if milestone in _PLAIN_LABELS:
        return label
    return f"Entered {label}"


def milestone_emoji(milestone: str) -> Optional[str]:
    return _EMOJI.get(milestone)


def format_notification_title(milestone: str, split_ms: Optional[float], streamer: str) -> str:
    """"First Portal 🌀✨ — 3:12 (xQcOW)". Short so banners don't truncate."""
    label = milestone_label(milestone)
    emoji = milestone_emoji(milestone)
    who = str(streamer or "").strip() or "Unknown"
    head = f"{label} {emoji}" if emoji else label
    return f"{head} — {ms_to_mmss(split_ms)} ({who})"


def stream_url(handle: Optional[str]) -> Optional[str]:
    """Twitch URL for a handle, or None."""
    handle = (handle or "").strip()
    if not handle:
        return None
    return f"https://www.twitch.tv/{quote(handle, safe='')}"
