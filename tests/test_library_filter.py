"""Tests for rule evaluation and library applicability."""

import pytest
from hypothesis import given, strategies as st

from launcher_core.models import LibraryDescriptor, OsConstraint, Rule, RuleAction
from launcher_core.services.library_filter import (
    PlatformInfo,
    evaluate_rules,
    is_legacy_version,
    is_library_included,
    should_download_library,
)

LINUX = PlatformInfo(os_name="linux", arch="x86_64")
WINDOWS = PlatformInfo(os_name="windows", arch="x86_64", os_version="10.0")
MAC_INTEL = PlatformInfo(os_name="osx", arch="x86_64")
MAC_ARM = PlatformInfo(os_name="osx", arch="arm64")

allow = Rule(action=RuleAction.ALLOW)
allow_osx = Rule(action=RuleAction.ALLOW, os=OsConstraint(name="osx"))
disallow_osx = Rule(action=RuleAction.DISALLOW, os=OsConstraint(name="osx"))


class TestEvaluateRules:
    """Allow/disallow verdicts for rule lists."""

    def test_no_rules_allows(self) -> None:
        assert evaluate_rules([], LINUX) is True

    def test_allow_all_except_osx(self) -> None:
        rules = [allow, disallow_osx]
        assert evaluate_rules(rules, LINUX) is True
        assert evaluate_rules(rules, WINDOWS) is True
        assert evaluate_rules(rules, MAC_INTEL) is False

    def test_only_osx(self) -> None:
        assert evaluate_rules([allow_osx], MAC_INTEL) is True
        assert evaluate_rules([allow_osx], LINUX) is False

    def test_later_rule_overrides_earlier(self) -> None:
        rules = [disallow_osx, allow_osx]
        assert evaluate_rules(rules, MAC_INTEL) is True

    def test_arch_constraint(self) -> None:
        rule = Rule(action=RuleAction.ALLOW, os=OsConstraint(arch="x86"))
        assert evaluate_rules([rule], PlatformInfo(os_name="windows", arch="x86")) is True
        assert evaluate_rules([rule], WINDOWS) is False

    def test_os_version_pattern(self) -> None:
        rule = Rule(action=RuleAction.DISALLOW, os=OsConstraint(name="windows", version="^10\\."))
        assert evaluate_rules([allow, rule], WINDOWS) is False
        assert evaluate_rules([allow, rule], PlatformInfo(os_name="windows", arch="x86_64", os_version="6.1")) is True

    def test_invalid_version_pattern_does_not_match(self) -> None:
        rule = Rule(action=RuleAction.DISALLOW, os=OsConstraint(version="[unclosed"))
        assert evaluate_rules([allow, rule], WINDOWS) is True

    def test_feature_rules(self) -> None:
        rule = Rule(action=RuleAction.ALLOW, features={"is_demo_user": True})
        demo = PlatformInfo(os_name="linux", arch="x86_64", features={"is_demo_user": True})
        assert evaluate_rules([rule], demo) is True
        assert evaluate_rules([rule], LINUX) is False

    @given(st.lists(st.sampled_from([allow, allow_osx, disallow_osx]), max_size=8))
    def test_last_matching_rule_decides(self, rules: list[Rule]) -> None:
        matching = [r for r in rules if r.os is None or r.os.name == "linux"]
        expected = matching[-1].action is RuleAction.ALLOW if matching else not rules
        assert evaluate_rules(rules, LINUX) is expected


class TestMacIdentifiers:
    """OS identifiers used when matching rules on macOS hosts."""

    def test_arm64_modern_version_accepts_generic_natives(self) -> None:
        ids = MAC_ARM.identifiers("1.20.1")
        assert ids[:2] == ["osx-arm64", "macos-arm64"]
        assert "osx" in ids

    def test_arm64_legacy_version_excludes_generic_natives(self) -> None:
        ids = MAC_ARM.identifiers("1.16.5")
        assert "osx" not in ids
        assert evaluate_rules([allow_osx], MAC_ARM, "1.16.5") is False
        assert evaluate_rules([allow_osx], MAC_ARM, "1.19") is True

    def test_intel_identifiers(self) -> None:
        assert MAC_INTEL.identifiers("1.8.9") == ["osx", "macos", "osx-x86_64"]

    @pytest.mark.parametrize(
        ("version", "legacy"),
        [("1.18.2", True), ("1.19", False), ("1.20.4", False), ("23w14a", False), ("1", False)],
    )
    def test_is_legacy_version(self, version: str, legacy: bool) -> None:
        assert is_legacy_version(version) is legacy


class TestLibraryApplicability:
    """Download and classpath inclusion decisions."""

    def test_non_downloadable_library_excluded(self) -> None:
        library = LibraryDescriptor(name="a:b:1", downloadable=False)
        assert should_download_library(library, LINUX) is False
        assert is_library_included(library, LINUX) is False

    def test_downloaded_but_not_on_classpath(self) -> None:
        library = LibraryDescriptor(name="a:b:1", include_in_classpath=False)
        assert should_download_library(library, LINUX) is True
        assert is_library_included(library, LINUX) is False

    def test_rules_apply_to_library(self) -> None:
        library = LibraryDescriptor(name="a:natives-osx:1", rules=[allow_osx])
        assert is_library_included(library, MAC_INTEL) is True
        assert is_library_included(library, LINUX) is False
