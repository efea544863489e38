#!/usr/bin/env python3
"""
Bundle → TimelineSnapshot engine.

Entry points:
    summarize_bundle_str(bundle_json, config)    JSON text
    summarize_bundle_value(bundle, config)       already-parsed JSON value
    summarize_bundle(bundle, config)             either of the above

Flow:
1. validate the bundle envelope (resourceType == "Bundle", entry array)
2. compute the anchor: latest timestamp found in any resource
3. one pass over the entries, dispatching each resource by resourceType
4. finalize the aggregate into the snapshot

Design:
- Deterministic apart from generated_at
- Pure function of (bundle, config); the whole pass succeeds or raises
- Unknown resource kinds are ignored
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Iterator, List, Optional, Union

from edtimeline.core.errors import BundleParseError, MissingDataError
from edtimeline.core.model import TimelineConfig, TimelineSnapshot
from edtimeline.fhir.aggregate import AggregateData
from edtimeline.fhir.extractors import resource_timestamp
from edtimeline.fhir.handlers import RESOURCE_HANDLERS

logger = logging.getLogger(__name__)


def iter_resources(entries: Iterable[Any]) -> Iterator[dict]:
    """Embedded resource objects of the entries, in bundle order."""
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        resource = entry.get("resource")
        if isinstance(resource, dict):
            yield resource


def compute_anchor(entries: List[Any]) -> Optional[datetime]:
    """Latest timestamp extractable from any resource, or None."""
    stamps = [ts for ts in (resource_timestamp(r) for r in iter_resources(entries)) if ts is not None]
    return max(stamps) if stamps else None


def _bundle_entries(bundle: Any) -> List[Any]:
    """Validate the envelope and return the entry array."""
    bundle_type = bundle.get("resourceType") if isinstance(bundle, dict) else None
    if not isinstance(bundle_type, str):
        logger.warning("Input has no resourceType; refusing to summarize")
        raise MissingDataError("Bundle is missing its resourceType", field="resourceType")

    if bundle_type != "Bundle":
        logger.warning("Expected a Bundle, got resourceType=%s", bundle_type)
        raise BundleParseError(
            f"expected resourceType Bundle, got {bundle_type}",
            details={"resourceType": bundle_type},
        )

    entries = bundle.get("entry")
    if not isinstance(entries, list):
        logger.warning("Bundle %s has no entry array", bundle.get("id"))
        raise MissingDataError("Bundle is missing its entry array", field="entry")
    return entries


def aggregate_entries(
    entries: List[Any],
    config: TimelineConfig,
    anchor: Optional[datetime] = None,
) -> AggregateData:
    """
    Run the handlers over a list of entries.

    anchor must be the anchor of the whole bundle when entries is only a slice
    of it; per-slice aggregates are combined with AggregateData.merge().
    """
    aggregate = AggregateData.with_anchor(anchor)

    for resource in iter_resources(entries):
        resource_type = resource.get("resourceType")
        handler = RESOURCE_HANDLERS.get(resource_type) if isinstance(resource_type, str) else None
        if handler is None:
            logger.debug("Ignoring unsupported resourceType=%s", resource_type)
            continue
        handler(resource, aggregate, config)

    return aggregate


def summarize_bundle_value(bundle: Any, config: Optional[TimelineConfig] = None) -> TimelineSnapshot:
    """
    Summarize an already-parsed bundle.

    Raises:
        MissingDataError: resourceType or entry array absent
        BundleParseError: resourceType is not "Bundle"
    """
    config = config or TimelineConfig()
    entries = _bundle_entries(bundle)

    anchor = compute_anchor(entries)
    aggregate = aggregate_entries(entries, config, anchor=anchor)
    snapshot = aggregate.finalize(config)

    logger.info(
        "Summarized bundle %s: %d entries, anchor=%s, %d events, %d vitals",
        bundle.get("id", "-"),
        len(entries),
        anchor.isoformat() if anchor else "none",
        len(snapshot.events),
        len(snapshot.critical.recent_vitals),
    )
    return snapshot


def summarize_bundle_str(bundle_json: Union[str, bytes], config: Optional[TimelineConfig] = None) -> TimelineSnapshot:
    """Parse JSON text, then summarize it."""
    try:
        value = json.loads(bundle_json)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as e:
        logger.warning("Bundle JSON could not be parsed: %s", e)
        raise BundleParseError(str(e)) from e
    return summarize_bundle_value(value, config)


def summarize_bundle(bundle: Any, config: Optional[TimelineConfig] = None) -> TimelineSnapshot:
    """Summarize a bundle given as JSON text/bytes or as a parsed value."""
    if isinstance(bundle, (str, bytes, bytearray)):
        return summarize_bundle_str(bundle, config)
    return summarize_bundle_value(bundle, config)
