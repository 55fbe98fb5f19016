"""Stable content hashes used to attribute events to a catalog version."""

from __future__ import annotations

import hashlib
import json
from typing import Mapping

from formulify.formulas.catalog import NamedExpression


def canonical_json(catalog: Mapping[str, NamedExpression]) -> bytes:
    """Serialise *catalog* as compact, key-sorted ``{name: formula}`` JSON."""
    entries = {name: expr.formula for name, expr in catalog.items()}
    return json.dumps(entries, sort_keys=True, separators=(",", ":")).encode("utf-8")


def catalog_hash(catalog: Mapping[str, NamedExpression]) -> str:
    """SHA-256 hex digest of ``canonical_json(catalog)``.

    Entry order does not affect the hash; any formula edit does.
    """
    return hashlib.sha256(canonical_json(catalog)).hexdigest()
