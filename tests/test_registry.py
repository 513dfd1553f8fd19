"""Tests for pattern registry."""

import json

import pytest

from site_extractor.exceptions import PatternError
from site_extractor.models import DataPattern, ExtractionConfig
from site_extractor.registry import PatternRegistry, builtin_patterns
from site_extractor.transforms import VerifiedHandle

COUPON_SPEC = {
    "name": "Coupon Codes",
    "patterns": [r"\b[A-Z0-9]{6,10}\b"],
    "config": {
        "selectors": ['[class*="coupon"]', "body"],
        "validate": {"kind": "length_between", "min_length": 6, "max_length": 10},
    },
}


class FakeSuggester:
    """Suggester returning canned answers and recording calls."""

    def __init__(self, key=None, spec=None):
        self.key = key
        self.spec = spec
        self.suggest_calls = []
        self.generate_calls = []

    async def suggest_key(self, text):
        self.suggest_calls.append(text)
        return self.key

    async def generate_spec(self, key):
        self.generate_calls.append(key)
        return self.spec


class TestBuiltinPatterns:
    """Test the built-in pattern set."""

    def test_keys(self, registry):
        """Test that all built-in keys are registered in order."""
        assert registry.keys() == [
            "email",
            "phone",
            "twitter",
            "linkedin",
            "instagram",
            "facebook",
            "prices",
            "dates",
        ]

    def test_twitter_requires_validation(self):
        """Test that twitter handles go through profile validation."""
        assert isinstance(builtin_patterns()["twitter"].config.transform, VerifiedHandle)

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("https://twitter.com/realuser", ["https://twitter.com/realuser"]),
            ('href="https://www.x.com/RealUser/"', ["https://www.x.com/RealUser/"]),
            ("follow x.com/realuser today", ["x.com/realuser"]),
            ("https://twitter.com/jack?lang=en", ["https://twitter.com/jack"]),
            ("https://www.dropbox.com/sharedfile", []),
            ("https://www.fox.com/shows", []),
            ("https://mobile.twitter.com/realuser", []),
            ("https://x.com/realuser/status/123", []),
        ],
    )
    def test_twitter_regex_anchored(self, text, expected):
        """Test that only twitter.com and x.com hosts produce profile matches."""
        regex = builtin_patterns()["twitter"].compiled[0]

        assert [m.group(0) for m in regex.finditer(text)] == expected

    def test_fresh_copies(self):
        """Test that each call returns independent pattern objects."""
        assert builtin_patterns()["email"] is not builtin_patterns()["email"]


class TestMatchKeys:
    """Test free-text key matching."""

    def test_matches_keys_in_text(self, registry):
        """Test that keys mentioned in the request are found."""
        keys = registry.match_keys("Find email addresses and phone numbers from https://example.com")

        assert keys == ["email", "phone"]

    def test_matches_by_regex(self, registry):
        """Test that a regex match in the text selects the pattern."""
        assert "email" in registry.match_keys("who owns hello@example.org?")

    def test_matches_display_name(self, registry):
        """Test that a pattern's display name selects it."""
        registry.synthesize(
            "opening_hours",
            {"name": "Opening Hours", "patterns": [r"\d{1,2}:\d{2}"], "config": {"selectors": ["body"]}},
        )

        assert registry.match_keys("what are the opening hours") == ["opening_hours"]

    def test_no_match(self, registry):
        """Test that unrelated text matches nothing."""
        assert registry.match_keys("hello there") == []


class TestRegister:
    """Test registration rules."""

    def _pattern(self, **overrides):
        data = {"name": "Things", "patterns": [r"thing"], "config": ExtractionConfig(selectors=["body"])}
        data.update(overrides)
        return DataPattern(**data)

    def test_key_is_lowercased(self, registry):
        """Test case-insensitive keys."""
        registry.register("Things", self._pattern())

        assert "things" in registry
        assert "THINGS" in registry
        assert registry.get("Things").name == "Things"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": " "},
            {"patterns": []},
            {"config": ExtractionConfig(selectors=[])},
        ],
    )
    def test_incomplete_pattern_rejected(self, registry, overrides):
        """Test that patterns without name, regexes or selectors are rejected."""
        with pytest.raises(PatternError):
            registry.register("things", self._pattern(**overrides))

    def test_empty_key_rejected(self, registry):
        """Test that an empty key is rejected."""
        with pytest.raises(PatternError):
            registry.register("  ", self._pattern())

    def test_invalid_regex_rejected(self):
        """Test that regexes are compiled when the pattern is built."""
        with pytest.raises(ValueError):
            self._pattern(patterns=["(unclosed"])


class TestSynthesize:
    """Test building patterns from generated specifications."""

    def test_from_dict(self, registry):
        """Test that a valid specification is registered."""
        pattern = registry.synthesize("coupons", COUPON_SPEC)

        assert pattern is not None
        assert registry.get("coupons") is pattern
        assert pattern.config.validate_.check("SAVE2024")

    def test_from_json(self, registry):
        """Test that a JSON string specification is accepted."""
        assert registry.synthesize("coupons", json.dumps(COUPON_SPEC)) is not None
        assert "coupons" in registry

    def test_rejects_code(self, registry):
        """Test that a specification carrying a code string is rejected."""
        spec = dict(COUPON_SPEC, config={"selectors": ["body"], "transform": "return value.trim()"})

        assert registry.synthesize("coupons", spec) is None
        assert "coupons" not in registry

    def test_rejects_incomplete(self, registry):
        """Test that a specification without selectors is rejected."""
        spec = dict(COUPON_SPEC, config={"selectors": []})

        assert registry.synthesize("coupons", spec) is None
        assert "coupons" not in registry

    def test_rejects_malformed_json(self, registry):
        """Test that malformed JSON is rejected."""
        assert registry.synthesize("coupons", "{not json") is None


class TestLoadFile:
    """Test loading patterns from YAML."""

    def test_load_yaml(self, registry, tmp_path):
        """Test that valid entries load and invalid ones are skipped."""
        path = tmp_path / "patterns.yaml"
        path.write_text(
            """
coupons:
  name: Coupon Codes
  patterns: ['\\b[A-Z0-9]{6,10}\\b']
  config:
    selectors: ['[class*="coupon"]']
broken:
  name: Broken
  patterns: []
  config:
    selectors: [body]
"""
        )

        loaded = registry.load_file(path)

        assert loaded == ["coupons"]
        assert "coupons" in registry
        assert "broken" not in registry

    def test_load_non_mapping(self, registry, tmp_path):
        """Test that a file without a mapping is rejected."""
        path = tmp_path / "patterns.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(PatternError):
            registry.load_file(path)


class TestResolve:
    """Test request resolution with the suggester fallback."""

    @pytest.mark.asyncio
    async def test_matched_keys_skip_suggester(self, registry):
        """Test that the suggester is not consulted when keys match."""
        suggester = FakeSuggester(key="coupons", spec=COUPON_SPEC)

        keys = await registry.resolve("find the email on https://example.com", suggester)

        assert keys == ["email"]
        assert suggester.suggest_calls == []

    @pytest.mark.asyncio
    async def test_suggested_known_key(self, registry):
        """Test that a suggested registered key is used without generation."""
        suggester = FakeSuggester(key="Prices")

        assert await registry.resolve("how much does it cost", suggester) == ["prices"]
        assert suggester.generate_calls == []

    @pytest.mark.asyncio
    async def test_generates_new_pattern(self, registry):
        """Test that an unknown suggested key gets a synthesized pattern."""
        suggester = FakeSuggester(key="coupons", spec=COUPON_SPEC)

        keys = await registry.resolve("any discount vouchers?", suggester)

        assert keys == ["coupons"]
        assert suggester.generate_calls == ["coupons"]
        assert "coupons" in registry

    @pytest.mark.asyncio
    async def test_rejected_generation(self, registry):
        """Test that a rejected specification resolves to nothing."""
        suggester = FakeSuggester(key="coupons", spec={"name": "Coupons"})

        assert await registry.resolve("any discount vouchers?", suggester) == []
        assert "coupons" not in registry

    @pytest.mark.asyncio
    async def test_no_suggestion(self, registry):
        """Test that an empty suggestion resolves to nothing."""
        assert await registry.resolve("hello there", FakeSuggester(key=None)) == []
        assert await registry.resolve("hello there") == []
