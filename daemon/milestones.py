# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Milestone rule sets — merge global defaults with per-streamer overrides.

Merge is field-level: a profile that only says {"enabled": false} for nether
keeps the default thresholdSec. The key space is the union of default keys
and profile keys, so profile-only milestones are still evaluated.

Pure functions; rebuilt from config on every watch tick.
"""

import logging
from typing import Dict, List

from daemon.schemas import MilestoneRule, WatcherConfig

logger = logging.getLogger("runalert.milestones")

RuleSet = Dict[str, MilestoneRule]

# Quiet-hours spans the UI lets you configure.
MAX_QUIET_SPANS = 3


def merge_rule(base: MilestoneRule, override: MilestoneRule) -> MilestoneRule:
    """Field-level merge: only fields explicitly set on `override` win."""
    merged = base.model_dump(exclude_unset=True)
    merged.update(override.model_dump(exclude_unset=True))
    return MilestoneRule(**merged)


def build_rule_set(config: WatcherConfig, streamer: str) -> RuleSet:
    """Merged rule set for one streamer. No profile means defaults verbatim."""
    defaults = config.default_milestones
    profile = config.profiles.get(streamer, {})
    keys = list(defaults) + [k for k in profile if k not in defaults]

    rules: RuleSet = {}
    for milestone in keys:
        base = defaults.get(milestone, MilestoneRule())
        override = profile.get(milestone, MilestoneRule())
        rules[milestone] = merge_rule(base, override)
    return rules


def build_rule_sets(config: WatcherConfig) -> Dict[str, RuleSet]:
    """streamer name -> merged rule set, for every configured streamer."""
    return {name: build_rule_set(config, name) for name in config.streamers}


def validate_config(config: WatcherConfig) -> List[str]:
    """Advisory checks. Returns warnings (also logged); never raises."""
    warnings: List[str] = []
    streamers = set(config.streamers)

    for name in config.profiles:
        if name not in streamers:
            warnings.append(
                f'profiles has an entry for streamer "{name}" which is not listed in streamers'
            )

    for name, profile in config.profiles.items():
        for milestone in profile:
            if milestone not in config.default_milestones:
                warnings.append(
                    f'profiles.{name} refers to unknown milestone "{milestone}" (no defaultMilestones entry)'
                )

    if len(config.quiet_spans) > MAX_QUIET_SPANS:
        warnings.append(
            f"quietHours has {len(config.quiet_spans)} spans (max {MAX_QUIET_SPANS}); all are evaluated"
        )

    for w in warnings:
        logger.warning("Config: %s", w)
    return warnings


def describe_rule(milestone: str, rule: MilestoneRule) -> str:
    """Compact form used in logs: "nether<240s", "!bastion<∞s"."""
    cutoff = rule.threshold_sec if rule.threshold_sec is not None else "∞"
    return f"{'' if rule.enabled else '!'}{milestone}<{cutoff}s"


def log_config_summary(config: WatcherConfig) -> None:
    """Print the merged view of the config at startup."""
    logger.info("Streamers: %s", ", ".join(config.streamers) or "(none)")
    for name, rules in build_rule_sets(config).items():
        parts = [describe_rule(m, r) for m, r in rules.items()]
        logger.info("  %s → %s", name, ", ".join(parts))
    for name in config.profiles:
        if name not in config.streamers:
            logger.info("  (ignored profile for unknown streamer: %s)", name)
