"""Decoding of proxy admin responses into core models."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import ValidationError, validators

from proxyprobe.core.errors import DecodeError
from proxyprobe.core.model import ConfigSection, ConfigSnapshot, ServerInfo

SERVER_INFO_RESOURCE = "server_info"
CONFIG_DUMP_RESOURCE = "config_dump"


@lru_cache(maxsize=None)
def load_schema_validator(name: str) -> Any:
    schema_text = resources.files("proxyprobe.schemas").joinpath(f"{name}.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _load_document(text: str, *, resource: str, schema: str) -> dict[str, Any]:
    if not text.strip():
        raise DecodeError(resource, "empty response", text)

    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(resource, f"invalid JSON: {exc}", text) from exc

    if not isinstance(doc, dict):
        raise DecodeError(resource, "response must be a JSON object at root", text)

    try:
        load_schema_validator(schema).validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.absolute_path)
        where = f" ({path})" if path else ""
        raise DecodeError(resource, f"schema validation failed{where}: {exc.message}", text) from exc
    return doc


def decode_server_info(text: str, *, resource: str = SERVER_INFO_RESOURCE) -> ServerInfo:
    doc = _load_document(text, resource=resource, schema="server_info")
    return ServerInfo(
        version=doc["version"],
        state=doc["state"],
        uptime_current_epoch=doc.get("uptime_current_epoch"),
        uptime_all_epochs=doc.get("uptime_all_epochs"),
        hot_restart_version=doc.get("hot_restart_version"),
        command_line_options=doc.get("command_line_options"),
        node=doc.get("node"),
    )


def decode_config_snapshot(text: str, *, resource: str = CONFIG_DUMP_RESOURCE) -> ConfigSnapshot:
    doc = _load_document(text, resource=resource, schema="config_dump")
    sections = []
    for entry in doc["configs"]:
        body = {key: value for key, value in entry.items() if key != "@type"}
        sections.append(ConfigSection(type_url=entry["@type"], body=body))
    return ConfigSnapshot(sections=tuple(sections))
