"""
Billing error registry.

registry.yaml is the single source of truth for every ``BIL-*`` code the
service can return: its HTTP status, the message callers see, and whether
the raising site's detail may replace that message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from app.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("registry.yaml")

# API: request shape, USR: user lookup, PRV: Asaas / billing creation
VALID_DOMAINS = {"API", "USR", "PRV"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
REQUIRED_FIELDS = frozenset(
    {"code", "domain", "title", "severity", "retryable", "user_action_required", "http_status", "safe_message"}
)


class RegistryValidationError(Exception):
    """registry.yaml is malformed."""


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    user_action_required: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    expose_detail: bool = False
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_raw(cls, idx: int, raw: Dict[str, Any]) -> "ErrorEntry":
        if not isinstance(raw, dict):
            raise RegistryValidationError(f"Entry {idx}: expected a mapping")

        missing = REQUIRED_FIELDS - raw.keys()
        if missing:
            raise RegistryValidationError(
                f"Entry {idx} ({raw.get('code', '?')}): missing fields {sorted(missing)}"
            )

        code = raw["code"]
        if not CODE_PATTERN.match(code):
            raise RegistryValidationError(f"Entry {idx}: invalid code {code!r}")

        domain = raw["domain"]
        if code.split("-")[1] != domain:
            raise RegistryValidationError(f"{code}: domain {domain!r} does not match the code")
        if domain not in VALID_DOMAINS:
            raise RegistryValidationError(f"{code}: unknown domain {domain!r}")
        if raw["severity"] not in VALID_SEVERITIES:
            raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

        return cls(
            code=code,
            domain=domain,
            title=raw["title"],
            severity=raw["severity"],
            retryable=bool(raw["retryable"]),
            user_action_required=bool(raw["user_action_required"]),
            http_status=int(raw["http_status"]),
            safe_message=raw["safe_message"],
            remediation=list(raw.get("remediation") or []),
            expose_detail=bool(raw.get("expose_detail", False)),
            tags=list(raw.get("tags") or []),
        )

    def message_for(self, detail: Optional[str]) -> str:
        """Caller-facing message: the detail when this entry exposes it."""
        if self.expose_detail and detail:
            return detail
        return self.safe_message

    def body(self, detail: Optional[str] = None) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "title": self.title,
                "message": self.message_for(detail),
                "retryable": self.retryable,
                "user_action_required": self.user_action_required,
                "remediation": list(self.remediation),
            }
        }


class ErrorRegistry:
    """In-memory index of registry.yaml, keyed by code."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: str | Path | None = None) -> None:
        path = Path(path) if path else DEFAULT_REGISTRY_PATH
        data = yaml.safe_load(path.read_text()) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(raw_entries):
            entry = ErrorEntry.from_raw(idx, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = int(data.get("schema_version", 0))
        logger.info("Loaded %d billing error codes from %s", len(entries), path.name)

    def get(self, code: str) -> ErrorEntry | None:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        entry = self._entries.get(code)
        if entry is None:
            raise KeyError(f"Unknown error code: {code!r}")
        return entry

    def all_codes(self) -> list[str]:
        return sorted(self._entries)

    def codes_for_domain(self, domain: str) -> list[str]:
        return sorted(code for code, entry in self._entries.items() if entry.domain == domain)

    def __len__(self) -> int:
        return len(self._entries)


error_registry = ErrorRegistry()
