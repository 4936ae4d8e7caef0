# src/trigger/webhook.py — v1
"""Turn source-control push webhooks into TriggerEvents.

Understands the GitHub/Gitea/GitLab push payload shape:
    {"ref": "refs/heads/main", "after": "<sha>", "deleted": false, ...}
Optionally verifies GitHub's X-Hub-Signature-256 HMAC.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any

from pydantic import ValidationError

from shipflow.core.models import TriggerEvent

logger = logging.getLogger(__name__)

_ZERO_SHA = "0" * 40
_BRANCH_PREFIX = "refs/heads/"
_TAG_PREFIX = "refs/tags/"


class WebhookError(ValueError):
    """Raised for payloads that cannot start a run."""


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check an ``X-Hub-Signature-256: sha256=<hex>`` header."""
    if not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.removeprefix("sha256="))


def parse_push_event(
    payload: dict[str, Any] | bytes | str,
    source_path: str = ".",
) -> TriggerEvent | None:
    """Build a TriggerEvent from a push payload.

    Returns:
        None for pushes that should not trigger a run (branch deletion).

    Raises:
        WebhookError: Payload is malformed.
    """
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise WebhookError(f"Invalid JSON payload: {e}") from e
    if not isinstance(payload, dict):
        raise WebhookError("Push payload must be a JSON object")

    ref = payload.get("ref")
    revision = payload.get("after") or payload.get("checkout_sha")
    if not ref or not revision:
        raise WebhookError("Push payload needs 'ref' and 'after'")

    if payload.get("deleted") or revision == _ZERO_SHA:
        logger.info("Ignoring deletion of %s", ref)
        return None

    if ref.startswith(_BRANCH_PREFIX):
        branch = ref.removeprefix(_BRANCH_PREFIX)
    elif ref.startswith(_TAG_PREFIX):
        # Tag pushes promote from the repository's default branch
        repo = payload.get("repository") or {}
        branch = repo.get("default_branch") or "main"
    else:
        raise WebhookError(f"Unsupported ref: {ref}")

    try:
        return TriggerEvent(revision=revision, branch=branch, ref=ref, source_path=source_path)
    except ValidationError as e:
        raise WebhookError(f"Invalid revision {revision!r}") from e
