"""Loading and validation of YAML retry-policy profiles."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError

from proxyprobe.core.decode import load_schema_validator
from proxyprobe.core.errors import PolicyLoadError, PolicyValidationError
from proxyprobe.core.model import AttemptFailureMode, RetryPolicy

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise PolicyValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedPolicies:
    policies: dict[str, RetryPolicy]
    warnings: tuple[str, ...]


def _policy_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "proxyprobe/policies", xdg_data / "proxyprobe/policies"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyLoadError(f"Could not read policy file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise PolicyValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise PolicyValidationError(f"Policy file {path} must contain a mapping at root")
    return loaded


def build_policy(doc: dict[str, Any], source: Path | Traversable | str) -> tuple[str, RetryPolicy]:
    validator = load_schema_validator("policy")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise PolicyValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    try:
        policy = RetryPolicy(
            interval_s=float(doc["interval_s"]),
            max_attempts=doc.get("max_attempts", RetryPolicy.max_attempts),
            max_duration_s=doc.get("max_duration_s", RetryPolicy.max_duration_s),
            on_attempt_failure=AttemptFailureMode(
                doc.get("on_attempt_failure", AttemptFailureMode.ABORT.value)
            ),
        )
    except PolicyValidationError as exc:
        raise PolicyValidationError(f"Invalid policy '{doc['id']}' in {source}: {exc}") from exc
    return doc["id"], policy


def _iter_packaged_policy_paths() -> list[Traversable]:
    policy_root = resources.files("proxyprobe.policies")
    return [item for item in policy_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_policy_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _policy_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_policies() -> LoadedPolicies:
    policies: dict[str, RetryPolicy] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_policy_paths(), key=lambda p: p.name):
        policy_id, policy = build_policy(_read_yaml(path), path)
        policies[policy_id] = policy

    for path in _iter_user_policy_paths():
        policy_id, policy = build_policy(_read_yaml(path), path)
        if policy_id in policies:
            warning = f"User policy '{policy_id}' overrides packaged policy"
            LOGGER.warning(warning)
            warnings.append(warning)
        policies[policy_id] = policy

    return LoadedPolicies(policies=policies, warnings=tuple(warnings))
