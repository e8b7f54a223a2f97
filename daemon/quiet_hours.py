# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Quiet hours — "HH:MM-HH:MM" spans during which delivery is suppressed.

Start inclusive, end exclusive, minute granularity. start > end wraps past
midnight; start == end is a full 24h span. Malformed spans are skipped.
"""

import re
from datetime import datetime
from typing import Iterable, Optional, Union

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_hhmm(value: str) -> Optional[int]:
    """"HH:MM" (24h) -> minutes since midnight, or None if invalid."""
    if not isinstance(value, str):
        return None
    m = _HHMM_RE.match(value.strip())
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return None
    return hh * 60 + mm


def in_span(span: str, now: datetime) -> bool:
    """True if `now` falls inside the span. Invalid spans are never quiet."""
    if not isinstance(span, str):
        return False
    parts = span.split("-")
    if len(parts) != 2:
        return False
    start, end = parse_hhmm(parts[0]), parse_hhmm(parts[1])
    if start is None or end is None:
        return False

    cur = now.hour * 60 + now.minute
    if start == end:
        return True
    if start < end:
        return start <= cur < end
    return cur >= start or cur < end


def in_quiet_hours(
    spans: Union[None, str, Iterable[str]],
    now: Optional[datetime] = None,
    override: bool = False,
) -> bool:
    """True if any span matches. `override` bypasses quiet hours entirely."""
    if override or not spans:
        return False
    if now is None:
        now = datetime.now()
    if isinstance(spans, str):
        spans = [spans]
    return any(in_span(s, now) for s in spans)
