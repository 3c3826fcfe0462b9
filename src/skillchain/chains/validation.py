"""Guard logic for chain definitions.

Pure checks shared by the authoring service (on every write) and by
``publish_chain`` (whole-graph check).  Every failure is an
:class:`InvalidArgumentError` naming the offending field.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from skillchain.chains.models import FailureTransition, Link, SuccessTransition
from skillchain.core.errors import InvalidArgumentError

CHAIN_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


def validate_scope(organization_id: str | None, project_id: str | None) -> None:
    """Exactly one of organization or project must own a chain."""
    if bool(organization_id) == bool(project_id):
        raise InvalidArgumentError(
            "Exactly one of organization_id or project_id must be specified",
            field="scope",
        )


def validate_chain_fields(
    *,
    chain_key: str | None = None,
    name: str | None = None,
    max_total_failures: int | None = None,
) -> None:
    """Check the chain-level fields that are present (``None`` = not given)."""
    if chain_key is not None and not CHAIN_KEY_PATTERN.match(chain_key):
        raise InvalidArgumentError(
            f"Invalid chain key '{chain_key}': use letters, digits, '.', '_' or '-'",
            field="chain_key",
        )
    if name is not None and not name.strip():
        raise InvalidArgumentError("Chain name must not be empty", field="name")
    if max_total_failures is not None and max_total_failures < 1:
        raise InvalidArgumentError(
            f"max_total_failures must be >= 1, got {max_total_failures}",
            field="max_total_failures",
        )


def validate_link(link: Link, chain_link_ids: Iterable[str]) -> None:
    """Check one link against the ids of the chain it belongs to.

    ``chain_link_ids`` must include the link's own id.
    """
    if not link.name or not link.name.strip():
        raise InvalidArgumentError("Link name must not be empty", field="name")
    if not link.skill_id:
        raise InvalidArgumentError("Link skill_id is required", field="skill_id")
    if link.max_retries < 1:
        raise InvalidArgumentError(
            f"max_retries must be >= 1, got {link.max_retries}", field="max_retries"
        )
    if link.position < 1:
        raise InvalidArgumentError(
            f"Link position must be >= 1, got {link.position}", field="position"
        )

    known = set(chain_link_ids)
    _check_target(
        link,
        wants_target=link.on_success_transition == SuccessTransition.GO_TO_LINK,
        target=link.on_success_target_link_id,
        known=known,
        field="on_success_target_link_id",
    )
    _check_target(
        link,
        wants_target=link.on_failure_transition == FailureTransition.GO_TO_LINK,
        target=link.on_failure_target_link_id,
        known=known,
        field="on_failure_target_link_id",
    )


def _check_target(
    link: Link,
    *,
    wants_target: bool,
    target: str | None,
    known: set[str],
    field: str,
) -> None:
    if not wants_target:
        if target is not None:
            raise InvalidArgumentError(
                f"{field} is only allowed with a GoToLink transition", field=field
            )
        return
    if not target:
        raise InvalidArgumentError(
            f"GoToLink transition on link '{link.name}' requires {field}", field=field
        )
    if target == link.id:
        raise InvalidArgumentError(
            f"Link '{link.name}' cannot target itself", field=field
        )
    if target not in known:
        raise InvalidArgumentError(
            f"Target link '{target}' does not belong to this chain", field=field
        )


def validate_links(links: Iterable[Link]) -> None:
    """Whole-graph check: unique positions and every link valid."""
    links = list(links)
    duplicates = [pos for pos, n in Counter(l.position for l in links).items() if n > 1]
    if duplicates:
        raise InvalidArgumentError(
            f"Duplicate link positions: {sorted(duplicates)}", field="position"
        )
    ids = {link.id for link in links}
    for link in links:
        validate_link(link, ids)


__all__ = [
    "CHAIN_KEY_PATTERN",
    "validate_scope",
    "validate_chain_fields",
    "validate_link",
    "validate_links",
]
