"""
Configuration Loader (``quote_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml`` table: settings record defaults,
onboarding starter options, customer-facing message templates and
document labels.

Architecture position
---------------------
**Config layer**. Consumed by ``quote_config.upgrade`` and by the
composition adapter. No dependency on services.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing section  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import copy
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=1)
def _defaults_table() -> dict[str, Any]:
    return load_yaml_file(DEFAULTS_PATH)


def default_schema_version() -> int:
    return int(_defaults_table()["schema_version"])


def record_defaults() -> dict[str, Any]:
    """Fresh copy of the record defaults; callers may mutate it."""
    return copy.deepcopy(_defaults_table()["record_defaults"])


def starter_options() -> dict[str, list[dict[str, str]]]:
    return copy.deepcopy(_defaults_table()["starter_options"])


def message_templates() -> dict[str, str]:
    return dict(_defaults_table()["messages"])


def document_labels() -> dict[str, str]:
    return dict(_defaults_table()["labels"])
