# src/core/tagging.py — v1
"""Deterministic image tag derivation.

Tags are derived from the trigger alone, so a rerun for the same revision
always targets the same tag. The "sha" rule keeps a prefix of the commit id
(12 characters by default); two revisions sharing that prefix map to one
tag. The publisher never overwrites a tag, so such a collision surfaces as
a PublishConflict; tag_length=40 keeps the whole commit id and rules it out.
"""

from __future__ import annotations

import re
from typing import Literal

from shipflow.core.models import TriggerEvent

TagRule = Literal["sha", "semver"]

DEFAULT_TAG_LENGTH = 12

_OCI_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_SEMVER_REF_RE = re.compile(
    r"^(?:refs/tags/)?v?"
    r"(?P<version>(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)


class TagDerivationError(ValueError):
    """Raised when no valid tag can be derived from a trigger."""


def is_valid_tag(tag: str) -> bool:
    return bool(_OCI_TAG_RE.match(tag))


def derive_tag(
    trigger: TriggerEvent,
    rule: TagRule = "sha",
    tag_length: int = DEFAULT_TAG_LENGTH,
) -> str:
    """Derive the image tag for a trigger.

    Args:
        trigger: Source change event.
        rule: "sha" uses the commit id, "semver" the version of a tag ref.
        tag_length: Commit id prefix length for the "sha" rule.

    Raises:
        TagDerivationError: Rule cannot be applied or result is not a valid OCI tag.
    """
    if rule == "sha":
        tag = trigger.revision[:tag_length]
    elif rule == "semver":
        match = _SEMVER_REF_RE.match(trigger.ref or "")
        if match is None:
            raise TagDerivationError(
                f"semver tag rule needs a version tag ref, got {trigger.ref!r}"
            )
        # OCI tags forbid '+'
        tag = match.group("version").replace("+", "_")
    else:
        raise TagDerivationError(f"Unknown tag rule: {rule!r}")

    if not is_valid_tag(tag):
        raise TagDerivationError(f"Derived tag {tag!r} is not a valid OCI tag")
    return tag
