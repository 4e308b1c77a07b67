"""Cached raw solver responses, keyed by the hash of the query text.

Enables a two-phase workflow: a first run exports the queries nothing could
answer, they are solved elsewhere, and a second run reads the answers back.

File format (JSON):

    {"version": 1, "responses": {"<sha256 hex>": "unsat\\n", ...}}
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Union


logger = logging.getLogger(__name__)

RESPONSES_VERSION = 1


def query_hash(text: str) -> str:
    """SHA-256 hex digest of a full SMT-LIB2 query."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def load_responses(path: Union[str, Path]) -> dict[str, str]:
    """Read a response file; a missing or malformed file yields no responses."""
    path = Path(path)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("ignoring unreadable response file %s: %s", path, e)
        return {}
    responses = data.get("responses", data) if isinstance(data, dict) else {}
    if not isinstance(responses, dict):
        return {}
    return {str(k): str(v) for k, v in responses.items()}


def save_responses(path: Union[str, Path], responses: dict[str, str]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": RESPONSES_VERSION, "responses": dict(sorted(responses.items()))}
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def answer_queries(queries: list[str], answer: str) -> dict[str, str]:
    """Responses mapping every query in `queries` to the same raw answer."""
    return {query_hash(q): answer for q in queries}
