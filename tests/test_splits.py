# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tests for split resolution across snapshot/live sources and clocks."""

import pytest

from daemon.schemas import IGT, RTA, SOURCE_LIVE, SOURCE_WORLD, LiveRun, RunSnapshot
from daemon.splits import (
    MILESTONES,
    SPLIT_KEYS,
    available_milestones,
    find_live_run_for_streamer,
    get_live_split_ms,
    get_split_ms,
    last_milestone,
    resolve_split,
    split_keys_for,
    to_camel_case,
)


def _snap(**data):
    return RunSnapshot(is_live=True, data=data)


def _live(nickname="xQcOW", **events):
    return LiveRun.model_validate({
        "nickname": nickname,
        "eventList": [{"eventId": k, **v} for k, v in events.items()],
    })


class TestKeyTable:

    def test_every_milestone_has_entry(self):
        assert set(SPLIT_KEYS) == set(MILESTONES)

    def test_snake_and_camel_variants(self):
        keys = split_keys_for("first_portal")
        assert keys.igt_keys == ("first_portal", "first_portalIgt", "firstPortal", "firstPortalIgt")
        assert keys.rta_keys == ("first_portalRta", "firstPortalRta")

    def test_single_word_has_no_duplicates(self):
        keys = split_keys_for("nether")
        assert keys.igt_keys == ("nether", "netherIgt")
        assert keys.rta_keys == ("netherRta",)

    def test_unknown_milestone_computed(self):
        keys = split_keys_for("blind_travel")
        assert "blindTravelRta" in keys.rta_keys

    def test_to_camel_case(self):
        assert to_camel_case("second_portal") == "secondPortal"
        assert to_camel_case("nether") == "nether"
        assert to_camel_case("") == ""


class TestSnapshotLookup:

    def test_fixture_igt_and_rta(self, world_xqc):
        assert get_split_ms(world_xqc, "nether", IGT) == 179852
        assert get_split_ms(world_xqc, "nether", RTA) == 181812

    def test_zero_is_not_reached(self, world_xqc):
        assert get_split_ms(world_xqc, "bastion", IGT) is None
        assert get_split_ms(world_xqc, "bastion", RTA) is None

    def test_null_and_missing(self, world_xqc):
        assert get_split_ms(world_xqc, "fortress", IGT) is None
        assert get_split_ms(world_xqc, "stronghold", IGT) is None

    def test_camel_case_key(self):
        snap = _snap(firstPortal=301000, firstPortalRta=305500)
        assert get_split_ms(snap, "first_portal", IGT) == 301000
        assert get_split_ms(snap, "first_portal", RTA) == 305500

    def test_clock_name_case_insensitive(self):
        assert get_split_ms(_snap(netherRta=5000), "nether", "rta") == 5000

    @pytest.mark.parametrize("bad", [-1, float("nan"), float("inf"), "179852", True])
    def test_invalid_values_ignored(self, bad):
        assert get_split_ms(_snap(nether=bad), "nether", IGT) is None

    def test_none_snapshot(self):
        assert get_split_ms(None, "nether", IGT) is None


class TestLiveLookup:

    def test_igt_and_rta(self, live_runs):
        run = live_runs[0]
        assert get_live_split_ms(run, "bastion", IGT) == 245377
        assert get_live_split_ms(run, "bastion", RTA) == 250412

    def test_live_zero_is_valid(self):
        run = _live(**{"rsg.enter_nether": {"igt": 0, "rta": 0}})
        assert get_live_split_ms(run, "nether", IGT) == 0

    def test_unknown_milestone(self, live_runs):
        assert get_live_split_ms(live_runs[0], "blind_travel", IGT) is None

    def test_none_run(self):
        assert get_live_split_ms(None, "nether", IGT) is None


class TestResolveSplit:

    def test_world_primary_wins(self, world_xqc, live_runs):
        split = resolve_split(world_xqc, live_runs[0], "nether", IGT, RTA)
        assert split.ms == 179852
        assert split.clock == IGT
        assert split.source == SOURCE_WORLD
        assert split.seconds == 179

    def test_world_fallback_clock_before_live(self):
        snap = _snap(netherRta=181812)
        run = _live(**{"rsg.enter_nether": {"igt": 100000, "rta": 101000}})
        split = resolve_split(snap, run, "nether", IGT, RTA)
        assert (split.ms, split.clock, split.source) == (181812, RTA, SOURCE_WORLD)

    def test_live_used_when_snapshot_lacks_split(self, world_xqc, live_runs):
        split = resolve_split(world_xqc, live_runs[0], "bastion", IGT, RTA)
        assert (split.ms, split.clock, split.source) == (245377, IGT, SOURCE_LIVE)

    def test_live_fallback_clock(self):
        run = _live(**{"rsg.enter_bastion": {"rta": 250412}})
        split = resolve_split(_snap(), run, "bastion", IGT, RTA)
        assert (split.ms, split.clock, split.source) == (250412, RTA, SOURCE_LIVE)

    def test_rta_primary(self, world_xqc):
        split = resolve_split(world_xqc, None, "nether", RTA, IGT)
        assert (split.ms, split.clock) == (181812, RTA)

    def test_nothing_anywhere(self, world_xqc):
        assert resolve_split(world_xqc, None, "end", IGT, RTA) is None


class TestFindLiveRun:

    def test_match_by_nickname_case_insensitive(self, live_runs):
        assert find_live_run_for_streamer(live_runs, ["XQCOW"]) is live_runs[0]

    def test_match_by_user_display_name(self, live_runs):
        assert find_live_run_for_streamer(live_runs, ["feinberg"]) is live_runs[1]

    def test_match_by_any_candidate(self, live_runs):
        assert find_live_run_for_streamer(live_runs, ["someone", None, " xqcow "]) is live_runs[0]

    def test_no_match(self, live_runs):
        assert find_live_run_for_streamer(live_runs, ["forsen"]) is None

    def test_empty_inputs(self, live_runs):
        assert find_live_run_for_streamer(live_runs, [None, ""]) is None
        assert find_live_run_for_streamer(None, ["xQcOW"]) is None


class TestLastMilestone:

    def test_furthest_split_wins(self, world_xqc, live_runs):
        milestone, sample = last_milestone(world_xqc, live_runs[0])
        assert milestone == "bastion"
        assert sample.source == SOURCE_LIVE

    def test_snapshot_only(self, world_xqc):
        milestone, sample = last_milestone(world_xqc, None)
        assert milestone == "nether"
        assert sample.ms == 179852

    def test_tie_goes_to_later_milestone(self):
        snap = _snap(fortress=300000, bastion=300000)
        milestone, _ = last_milestone(snap, None)
        assert milestone == "fortress"

    def test_nothing_reached(self):
        assert last_milestone(_snap(), None) is None


class TestAvailableMilestones:

    def test_from_fixture(self, world_xqc):
        # bastion/first_portal are zero but their keys exist
        assert available_milestones(world_xqc) == ["bastion", "first_portal", "nether"]

    def test_none(self):
        assert available_milestones(None) == []
