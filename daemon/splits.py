# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Split resolution — reads a milestone's elapsed time out of upstream payloads.

Two sources can carry a split:
  - world: the periodic getWorld snapshot (authoritative once present)
  - live:  the live-runs event feed (fallback for not-yet-reflected progress)

Resolution order, strictly:
  1. snapshot, primary clock
  2. snapshot, fallback clock
  3. live feed, primary clock
  4. live feed, fallback clock
  5. None

Upstream key naming lives in one table (SPLIT_KEYS / split_keys_for):
IGT is stored under the bare milestone key, RTA under "<key>Rta", and both
snake_case and camelCase spellings show up.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from daemon.schemas import (
    IGT, RTA, SOURCE_LIVE, SOURCE_WORLD,
    LiveRun, RunSnapshot, SplitSample,
)

# Canonical run order. Unknown keys are still tolerated everywhere.
MILESTONES: Tuple[str, ...] = (
    "nether",
    "bastion",
    "fortress",
    "first_portal",
    "second_portal",
    "stronghold",
    "end",
    "finish",
)

# milestone -> live feed eventId
LIVE_EVENT_BY_MILESTONE: Dict[str, str] = {
    "nether": "rsg.enter_nether",
    "bastion": "rsg.enter_bastion",
    "fortress": "rsg.enter_fortress",
    "first_portal": "rsg.first_portal",
    "second_portal": "rsg.second_portal",
    "stronghold": "rsg.enter_stronghold",
    "end": "rsg.enter_end",
    "finish": "rsg.credits",
}


@dataclass(frozen=True)
class SplitKeys:
    """Snapshot data keys that may hold a milestone's split, per clock."""
    igt_keys: Tuple[str, ...]
    rta_keys: Tuple[str, ...]

    def for_clock(self, clock: str) -> Tuple[str, ...]:
        return self.igt_keys if clock == IGT else self.rta_keys


def to_camel_case(name: str) -> str:
    """first_portal -> firstPortal. Keys without underscores pass through."""
    raw = str(name or "")
    if "_" not in raw:
        return raw
    head, *rest = raw.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def split_keys_for(milestone: str) -> SplitKeys:
    """Key table entry for a milestone (computed for keys outside MILESTONES)."""
    known = SPLIT_KEYS.get(milestone)
    if known is not None:
        return known
    return _build_split_keys(milestone)


def _build_split_keys(milestone: str) -> SplitKeys:
    camel = to_camel_case(milestone)
    igt = _unique((milestone, f"{milestone}Igt", camel, f"{camel}Igt"))
    rta = _unique((f"{milestone}Rta", f"{camel}Rta"))
    return SplitKeys(igt_keys=igt, rta_keys=rta)


def _unique(keys: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(keys))


SPLIT_KEYS: Dict[str, SplitKeys] = {m: _build_split_keys(m) for m in MILESTONES}


def _valid_ms(value: Any, allow_zero: bool = True) -> Optional[float]:
    """Finite, non-negative number or None. bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    if value == 0 and not allow_zero:
        return None
    return value


# ============================================================================
# Per-source lookups
# ============================================================================

def get_split_ms(snapshot: Optional[RunSnapshot], milestone: str, clock: str = RTA) -> Optional[float]:
    """Split from the getWorld snapshot under one clock, or None.

    Zero is the snapshot's "not reached yet" sentinel and reads as None.
    """
    if snapshot is None:
        return None
    data = snapshot.data
    for key in split_keys_for(milestone).for_clock(str(clock).upper()):
        ms = _valid_ms(data.get(key), allow_zero=False)
        if ms is not None:
            return ms
    return None


def get_live_split_ms(live_run: Optional[LiveRun], milestone: str, clock: str) -> Optional[float]:
    """Split from a live-feed entry under one clock, or None."""
    if live_run is None:
        return None
    event_id = LIVE_EVENT_BY_MILESTONE.get(milestone)
    if not event_id:
        return None
    for event in live_run.event_list:
        if event.event_id == event_id:
            value = event.igt if str(clock).upper() == IGT else event.rta
            return _valid_ms(value)
    return None


def _normalize_nick(value: Any) -> str:
    return str(value or "").strip().lower()


def find_live_run_for_streamer(live_runs: Optional[Sequence[LiveRun]], names: Iterable[Optional[str]]) -> Optional[LiveRun]:
    """First live run whose nickname matches any of `names` (case-insensitive)."""
    targets = {_normalize_nick(n) for n in names if n}
    targets.discard("")
    if not targets:
        return None
    for run in live_runs or ():
        identities = run.identities()
        if identities and _normalize_nick(identities[0]) in targets:
            return run
    return None


# ============================================================================
# Resolver
# ============================================================================

def resolve_split(
    snapshot: Optional[RunSnapshot],
    live_run: Optional[LiveRun],
    milestone: str,
    primary_clock: str,
    fallback_clock: str,
) -> Optional[SplitSample]:
    """Resolve a milestone's split across both sources and both clocks.

    A snapshot value always wins over a live event, regardless of clock.
    """
    for clock in (primary_clock, fallback_clock):
        ms = get_split_ms(snapshot, milestone, clock)
        if ms is not None:
            return SplitSample(ms=ms, clock=clock, source=SOURCE_WORLD)
    for clock in (primary_clock, fallback_clock):
        ms = get_live_split_ms(live_run, milestone, clock)
        if ms is not None:
            return SplitSample(ms=ms, clock=clock, source=SOURCE_LIVE)
    return None


def last_milestone(
    snapshot: Optional[RunSnapshot],
    live_run: Optional[LiveRun],
    milestones: Sequence[str] = MILESTONES,
) -> Optional[Tuple[str, SplitSample]]:
    """(milestone, sample) for the furthest milestone reached, or None.

    "Furthest" is the maximum resolved elapsed time; ties go to the later
    entry in `milestones`.
    """
    best: Optional[Tuple[str, SplitSample]] = None
    for milestone in milestones:
        sample = resolve_split(snapshot, live_run, milestone, IGT, RTA)
        if sample is None:
            continue
        if best is None or sample.ms >= best[1].ms:
            best = (milestone, sample)
    return best


_BARE_SPLIT_KEY_RE = re.compile(r"^[a-z_]+$")


def available_milestones(snapshot: Optional[RunSnapshot]) -> List[str]:
    """Milestone keys a snapshot carries, for building config rules.

    RTA keys ("netherRta") name their base directly. Bare lowercase keys with
    a numeric value are IGT splits; other bare keys are run metadata.
    """
    if snapshot is None:
        return []
    bases = set()
    for key, value in snapshot.data.items():
        if key.endswith("Rta") and len(key) > 3:
            bases.add(key[:-3])
        elif _BARE_SPLIT_KEY_RE.match(key) and _valid_ms(value) is not None:
            bases.add(key)
    return sorted(bases)
