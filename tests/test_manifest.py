"""Tests for version manifest parsing."""

import pytest

from launcher_core.models import RuleAction
from launcher_core.services.errors import ValidationError
from launcher_core.services.manifest import LEGACY_JVM_ARGUMENTS, parse_manifest

MODERN = {
    "id": "1.20.1",
    "mainClass": "net.minecraft.client.main.Main",
    "type": "release",
    "assetIndex": {"id": "5"},
    "arguments": {
        "game": [
            "--username",
            "${auth_player_name}",
            {"rules": [{"action": "allow", "features": {"is_demo_user": True}}], "value": "--demo"},
        ],
        "jvm": [
            {"rules": [{"action": "allow", "os": {"name": "osx"}}], "value": ["-XstartOnFirstThread"]},
            "-cp",
            "${classpath}",
        ],
    },
    "libraries": [
        {
            "name": "org.lwjgl:lwjgl:3.3.1:natives-linux",
            "downloads": {"artifact": {
                "path": "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar",
                "url": "https://libraries.example/org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar",
                "sha1": "abc",
                "size": 10,
            }},
            "rules": [{"action": "allow", "os": {"name": "linux"}}],
        },
        {"name": "net.fabricmc:sponge-mixin:0.12.5", "url": "https://maven.fabricmc.net/"},
    ],
}


class TestParseManifest:
    """Decoding of modern and legacy version documents."""

    def test_modern_manifest(self) -> None:
        manifest = parse_manifest(MODERN)
        assert manifest.id == "1.20.1"
        assert manifest.asset_index == "5"
        assert [e.values for e in manifest.game_arguments] == [["--username"], ["${auth_player_name}"], ["--demo"]]
        assert manifest.game_arguments[2].rules[0].features == {"is_demo_user": True}
        assert manifest.jvm_arguments[0].rules[0].os.name == "osx"
        assert manifest.jvm_arguments[0].rules[0].action is RuleAction.ALLOW

    def test_library_artifact_and_repository_url(self) -> None:
        natives, mixin = parse_manifest(MODERN).libraries
        assert natives.path == "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar"
        assert natives.sha1 == "abc"
        assert natives.size == 10
        assert mixin.path is None
        assert mixin.url == "https://maven.fabricmc.net/net/fabricmc/sponge-mixin/0.12.5/sponge-mixin-0.12.5.jar"

    def test_legacy_minecraft_arguments(self) -> None:
        manifest = parse_manifest({
            "id": "1.8.9",
            "mainClass": "net.minecraft.client.main.Main",
            "minecraftArguments": "--username ${auth_player_name} --version ${version_name}",
            "assets": "1.8",
        })
        assert [e.values[0] for e in manifest.jvm_arguments] == LEGACY_JVM_ARGUMENTS
        assert [e.values[0] for e in manifest.game_arguments] == [
            "--username", "${auth_player_name}", "--version", "${version_name}",
        ]
        assert manifest.asset_index == "1.8"

    def test_unknown_rule_action_skipped(self) -> None:
        data = dict(MODERN, libraries=[{"name": "a:b:1", "rules": [{"action": "maybe"}]}])
        assert parse_manifest(data).libraries[0].rules == []

    @pytest.mark.parametrize("missing", ["id", "mainClass"])
    def test_required_fields(self, missing: str) -> None:
        data = {k: v for k, v in MODERN.items() if k != missing}
        with pytest.raises(ValidationError):
            parse_manifest(data)

    def test_library_without_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_manifest(dict(MODERN, libraries=[{"url": "https://x/"}]))
