# ==============================================================================
# Tests for the Experiment Assignment Engine
# ==============================================================================
"""
Tests for ExperimentContext: resolution order, URL overrides, per-context
caching, exposure emission and the declarative rendering pass.
"""

from unittest.mock import MagicMock

import pytest

from siteanalytics.core.experiments import ExperimentContext, VariantElement, parse_query
from siteanalytics.core.hashing import assign_variant, bucket_for_user, inline_variants
from siteanalytics.core.models import ExperimentConfig, Exposure, Variant

HERO = {
    "key": "hero",
    "variants": [{"key": "control", "weight": 50}, {"key": "b", "weight": 50}],
}


def _hashed(name: str, user_id: str, variants) -> str:
    return assign_variant(bucket_for_user(name, user_id), variants)


# ==============================================================================
# parse_query
# ==============================================================================


class TestParseQuery:
    """Tests for query normalization."""

    def test_leading_question_mark(self):
        assert parse_query("?a=1&b=2") == {"a": "1", "b": "2"}

    def test_bare_query_string(self):
        assert parse_query("a=1") == {"a": "1"}

    def test_full_url(self):
        assert parse_query("https://site.test/p?aa_variant_hero=b#top") == {"aa_variant_hero": "b"}

    def test_mapping(self):
        assert parse_query({"a": "1", "b": None}) == {"a": "1"}

    def test_empty(self):
        assert parse_query(None) == {}
        assert parse_query("") == {}

    def test_first_value_wins(self):
        assert parse_query("a=1&a=2") == {"a": "1"}


# ==============================================================================
# Assignment
# ==============================================================================


class TestAssign:
    """Tests for ExperimentContext.assign."""

    def test_hash_assignment_matches_bucket(self):
        ctx = ExperimentContext("user-1", experiments=[HERO])
        expected = _hashed("hero", "user-1", ExperimentConfig(**HERO).variants)
        assert ctx.assign("hero") == expected

    def test_hash_assignment_exposure_not_forced(self):
        ctx = ExperimentContext("user-1", experiments=[HERO])
        variant = ctx.assign("hero")
        assert ctx.exposures == [Exposure(experiment="hero", variant=variant)]
        assert "forced" not in ctx.exposures[0].to_properties()

    def test_unknown_experiment_returns_none(self):
        ctx = ExperimentContext("user-1", experiments=[HERO])
        assert ctx.assign("missing") is None
        assert ctx.exposures == []

    def test_inline_variants_used_without_config(self):
        ctx = ExperimentContext("user-7")
        variant = ctx.assign("cta", ["red", "blue", "green"])
        assert variant == _hashed("cta", "user-7", inline_variants(["red", "blue", "green"]))

    def test_server_config_takes_precedence_over_inline(self):
        only_control = {"key": "hero", "variants": [{"key": "control", "weight": 100}]}
        ctx = ExperimentContext("user-1", experiments=[only_control])
        assert ctx.assign("hero", ["x", "y"]) == "control"

    def test_accepts_config_models(self):
        config = ExperimentConfig(key="hero", variants=[Variant(key="only", weight=100)])
        ctx = ExperimentContext("user-1", experiments=[config])
        assert ctx.assign("hero") == "only"


class TestOverride:
    """Tests for `aa_variant_<name>` query overrides."""

    @pytest.mark.parametrize("forced", ["control", "b"])
    def test_valid_override_is_forced(self, forced):
        ctx = ExperimentContext("user-1", experiments=[HERO], query=f"?aa_variant_hero={forced}")
        assert ctx.assign("hero") == forced
        assert ctx.exposures[0].forced is True
        assert ctx.exposures[0].to_properties() == {
            "experiment": "hero",
            "variant": forced,
            "forced": True,
        }

    def test_override_from_full_url(self):
        ctx = ExperimentContext(
            "user-1", experiments=[HERO], query="https://site.test/landing?utm=x&aa_variant_hero=b"
        )
        assert ctx.assign("hero") == "b"

    def test_invalid_override_falls_through_to_hash(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=nope")
        expected = _hashed("hero", "user-1", ExperimentConfig(**HERO).variants)
        assert ctx.assign("hero") == expected
        assert ctx.exposures[0].forced is False

    def test_override_applies_to_inline_variants(self):
        ctx = ExperimentContext("user-1", query="aa_variant_cta=blue")
        assert ctx.assign("cta", ["red", "blue"]) == "blue"
        assert ctx.exposures[0].forced is True

    def test_override_for_other_experiment_ignored(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_other=b")
        assert ctx.exposures == []
        ctx.assign("hero")
        assert ctx.exposures[0].forced is False

    def test_custom_prefix(self):
        ctx = ExperimentContext(
            "user-1", experiments=[HERO], query="?force_hero=b", override_prefix="force_"
        )
        assert ctx.assign("hero") == "b"


class TestCache:
    """Tests for per-context memoization."""

    def test_repeat_returns_cached_without_exposure(self):
        on_exposure = MagicMock()
        ctx = ExperimentContext("user-1", experiments=[HERO], on_exposure=on_exposure)
        first = ctx.assign("hero")
        second = ctx.assign("hero")

        assert first == second
        assert len(ctx.exposures) == 1
        on_exposure.assert_called_once_with(ctx.exposures[0])

    def test_forced_assignment_is_cached(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=b")
        ctx.assign("hero")
        assert ctx.assign("hero") == "b"
        assert len(ctx.exposures) == 1

    def test_contexts_do_not_share_state(self):
        first = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=b")
        second = ExperimentContext("user-1", experiments=[HERO])
        first.assign("hero")
        assert second.assignments == {}

    def test_assignments_snapshot(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=control")
        ctx.assign("hero")
        assert ctx.assignments == {"hero": "control"}


# ==============================================================================
# Payloads, exposures and rendering
# ==============================================================================


class TestFromPayload:
    """Tests for building a context from the config body."""

    def test_parses_experiments(self):
        ctx = ExperimentContext.from_payload({"experiments": [HERO]}, "user-1", query="?aa_variant_hero=b")
        assert ctx.assign("hero") == "b"

    def test_empty_payload(self):
        ctx = ExperimentContext.from_payload(None, "user-1")
        assert ctx.assign("hero") is None


class TestExposureEvent:
    """Tests for Exposure.to_event."""

    def test_builds_tracked_event(self):
        event = Exposure(experiment="hero", variant="b", forced=True).to_event(
            "site-1", "user-1", session_id="s-1", timestamp=1_000
        )
        assert event.event == "$experiment_exposure"
        assert event.project == "site-1"
        assert event.session_id == "s-1"
        assert event.properties == {"experiment": "hero", "variant": "b", "forced": True}


class TestRender:
    """Tests for the declarative variant rendering pass."""

    def test_swaps_content_for_lowercased_variant(self):
        config = {"key": "hero", "variants": [{"key": "Bold", "weight": 100}]}
        ctx = ExperimentContext("user-1", experiments=[config])
        element = VariantElement("hero", {"bold": "Big headline"}, "Original")

        ctx.render([element])

        assert element.content == "Big headline"

    def test_control_keeps_original(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=control")
        element = VariantElement("hero", {"b": "Variant B"}, "Original")
        ctx.render([element])
        assert element.content == "Original"

    def test_unknown_experiment_keeps_original(self):
        ctx = ExperimentContext("user-1")
        element = VariantElement("ghost", {"b": "Variant B"}, "Original")
        ctx.render([element])
        assert element.content == "Original"
        assert ctx.exposures == []

    def test_elements_share_one_assignment(self):
        ctx = ExperimentContext("user-1", experiments=[HERO], query="?aa_variant_hero=b")
        elements = [
            VariantElement("hero", {"b": "Headline B"}, "Headline"),
            VariantElement("hero", {"b": "Button B"}, "Button"),
        ]
        ctx.render(elements)
        assert [e.content for e in elements] == ["Headline B", "Button B"]
        assert len(ctx.exposures) == 1
