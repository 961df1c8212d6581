"""Parsing of version manifest JSON into manifest models."""

from typing import Any

import structlog

from ..models import (
    ArgumentEntry,
    LibraryDescriptor,
    OsConstraint,
    Rule,
    RuleAction,
    VersionManifest,
)
from .classpath import maven_coordinate_to_relative_path
from .errors import ValidationError

log = structlog.stdlib.get_logger()

# JVM arguments implied by manifests that predate the "arguments" object
LEGACY_JVM_ARGUMENTS = [
    "-Djava.library.path=${natives_directory}",
    "-cp",
    "${classpath}",
]


def parse_rules(raw_rules: Any) -> list[Rule]:
    if not isinstance(raw_rules, list):
        return []

    rules: list[Rule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            continue
        try:
            action = RuleAction(raw.get("action", "allow"))
        except ValueError:
            log.warning("Skipping rule with unknown action", action=raw.get("action"))
            continue

        os_constraint = None
        raw_os = raw.get("os")
        if isinstance(raw_os, dict):
            os_constraint = OsConstraint(
                name=raw_os.get("name"),
                version=raw_os.get("version"),
                arch=raw_os.get("arch"),
            )

        features = raw.get("features")
        rules.append(Rule(
            action=action,
            os=os_constraint,
            features={str(k): bool(v) for k, v in features.items()} if isinstance(features, dict) else {},
        ))
    return rules


def parse_library(raw: dict[str, Any]) -> LibraryDescriptor:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ValidationError("Library entry has no name", field="libraries.name", value=raw)

    artifact = (raw.get("downloads") or {}).get("artifact") or {}
    path = artifact.get("path")
    url = artifact.get("url")
    if url is None and isinstance(raw.get("url"), str):
        # Loader manifests give a repository root instead of a full artifact URL
        relative = maven_coordinate_to_relative_path(name)
        if relative is not None:
            url = raw["url"].rstrip("/") + "/" + relative

    return LibraryDescriptor(
        name=name,
        path=path,
        url=url,
        sha1=artifact.get("sha1") or raw.get("sha1"),
        size=int(artifact.get("size") or raw.get("size") or 0),
        rules=parse_rules(raw.get("rules")),
        downloadable=bool(raw.get("downloadable", True)),
        include_in_classpath=bool(raw.get("includeInClasspath", True)),
    )


def parse_arguments(raw_arguments: Any) -> list[ArgumentEntry]:
    """Parse an argument list whose items are strings or rule-conditioned objects."""
    if not isinstance(raw_arguments, list):
        return []

    entries: list[ArgumentEntry] = []
    for raw in raw_arguments:
        if isinstance(raw, str):
            entries.append(ArgumentEntry(values=[raw]))
        elif isinstance(raw, dict):
            value = raw.get("value")
            if isinstance(value, str):
                values = [value]
            elif isinstance(value, list):
                values = [str(v) for v in value]
            else:
                continue
            entries.append(ArgumentEntry(values=values, rules=parse_rules(raw.get("rules"))))
    return entries


def parse_manifest(data: dict[str, Any]) -> VersionManifest:
    """Build a VersionManifest from a decoded version JSON document.

    Raises:
        ValidationError: If the id or main class is missing
    """
    version_id = data.get("id")
    main_class = data.get("mainClass")
    if not isinstance(version_id, str) or not version_id:
        raise ValidationError("Version manifest has no id", field="id")
    if not isinstance(main_class, str) or not main_class:
        raise ValidationError("Version manifest has no main class", field="mainClass", value=version_id)

    arguments = data.get("arguments")
    if isinstance(arguments, dict):
        jvm_arguments = parse_arguments(arguments.get("jvm"))
        game_arguments = parse_arguments(arguments.get("game"))
    else:
        legacy = data.get("minecraftArguments", "")
        jvm_arguments = [ArgumentEntry(values=[arg]) for arg in LEGACY_JVM_ARGUMENTS]
        game_arguments = [ArgumentEntry(values=[arg]) for arg in str(legacy).split()]

    asset_index = data.get("assetIndex")
    libraries = [parse_library(raw) for raw in data.get("libraries", []) if isinstance(raw, dict)]

    manifest = VersionManifest(
        id=version_id,
        main_class=main_class,
        libraries=libraries,
        jvm_arguments=jvm_arguments,
        game_arguments=game_arguments,
        asset_index=asset_index.get("id", "") if isinstance(asset_index, dict) else str(data.get("assets", "")),
        type=str(data.get("type", "release")),
    )
    log.debug(
        "Version manifest parsed",
        version=manifest.id,
        libraries=len(manifest.libraries),
        jvm_arguments=len(manifest.jvm_arguments),
        game_arguments=len(manifest.game_arguments),
    )
    return manifest
