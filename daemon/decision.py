# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Notification decision — should this split notify?

Rules, first match wins:
  1. disabled            -> False (even with force)
  2. no split            -> False
  3. force               -> True
  4. sec < thresholdSec  -> True  (strict; equal does not notify)
     no cutoff           -> False (only force gets past a missing cutoff)

Pure and idempotent. Deduplication happens at delivery, not here.
"""

from typing import Optional, Union

from daemon.schemas import SplitSample


def should_notify(
    split: Optional[SplitSample],
    enabled: bool,
    threshold_sec: Optional[Union[int, float]],
    force_send: bool = False,
) -> bool:
    if not enabled:
        return False
    if split is None:
        return False
    if force_send:
        return True
    if threshold_sec is None:
        return False
    return split.seconds < threshold_sec
