"""
ConfigLoader: raw bytes -> typed, immutable document for one domain.

Pure with respect to its input. Fetching bytes is the caller's job so the
startup path, the reload path, and tests share the same parsing.
"""

from __future__ import annotations

import json
from typing import Any

import yaml
from pydantic import ValidationError

from liveconf.documents import DOCUMENT_MODELS, DocumentModel
from liveconf.domains import Domain
from liveconf.errors import ParseError, SourceMissing

SUPPORTED_FORMATS = ("json", "yaml")


def _decode(domain: Domain, raw: bytes, fmt: str) -> dict[str, Any]:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(domain, f"source is not valid UTF-8: {e}") from e
    try:
        data = json.loads(text) if fmt == "json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(domain, f"malformed {fmt}: {e}") from e
    if data is None and fmt == "yaml":
        data = {}
    if not isinstance(data, dict):
        raise ParseError(domain, f"top level must be an object, got {type(data).__name__}")
    return data


def _summarize(exc: ValidationError) -> str:
    """First few validation problems as 'path: message'."""
    parts = []
    for err in exc.errors()[:3]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}")
    more = exc.error_count() - len(parts)
    if more > 0:
        parts.append(f"(+{more} more)")
    return "; ".join(parts)


class ConfigLoader:
    """Parses a domain's raw source into its document model."""

    def __init__(self, fmt: str = "json"):
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"fmt must be one of {SUPPORTED_FORMATS}, got {fmt!r}")
        self.fmt = fmt

    def load(self, domain: Domain, raw: bytes | None) -> DocumentModel:
        """
        Decode and validate one document.

        Args:
            domain: Which document shape to validate against.
            raw: Source bytes; None when the source could not be located.

        Raises:
            SourceMissing: raw is None.
            ParseError: Bytes are not decodable or do not fit the domain model.
        """
        if raw is None:
            raise SourceMissing(domain, "source not found")
        data = _decode(domain, raw, self.fmt)
        try:
            return DOCUMENT_MODELS[domain].model_validate(data)
        except ValidationError as e:
            raise ParseError(domain, _summarize(e)) from e
