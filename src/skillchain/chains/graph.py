"""Arena of links keyed by id.

A ``ChainGraph`` is the read-only view the resolver and the controller use
to navigate a chain: lookups by id, NextLink by position, and membership
tests for jump targets.  Links refer to each other only through ids, so a
cyclic GoToLink graph is ordinary data here.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from skillchain.chains.models import Chain, Link
from skillchain.core.errors import NotFoundError


@dataclass(frozen=True)
class ChainGraph:
    """Immutable link index for one chain (or one run's pinned snapshot)."""

    chain_id: str
    chain_key: str
    name: str
    max_total_failures: int
    links: tuple[Link, ...] = ()
    _by_id: dict[str, Link] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.links, key=lambda link: link.position))
        object.__setattr__(self, "links", ordered)
        object.__setattr__(self, "_by_id", {link.id: link for link in ordered})

    # -- construction ----------------------------------------------------------

    @classmethod
    def from_chain(cls, chain: Chain) -> ChainGraph:
        return cls(
            chain_id=chain.id,
            chain_key=chain.chain_key,
            name=chain.name,
            max_total_failures=chain.max_total_failures,
            links=tuple(chain.links),
        )

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> ChainGraph:
        """Rebuild from the ``definition`` pinned on an execution."""
        return cls(
            chain_id=snapshot["chain_id"],
            chain_key=snapshot["chain_key"],
            name=snapshot["name"],
            max_total_failures=snapshot["max_total_failures"],
            links=tuple(Link.from_dict(data) for data in snapshot.get("links", [])),
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "chain_key": self.chain_key,
            "name": self.name,
            "max_total_failures": self.max_total_failures,
            "links": [link.to_dict() for link in self.links],
        }

    # -- navigation ------------------------------------------------------------

    def __contains__(self, link_id: object) -> bool:
        return link_id in self._by_id

    def __iter__(self) -> Iterator[Link]:
        return iter(self.links)

    def __len__(self) -> int:
        return len(self.links)

    @property
    def first(self) -> Link | None:
        return self.links[0] if self.links else None

    def get(self, link_id: str) -> Link:
        """Return the link with *link_id*.

        Raises:
            NotFoundError: If the id is not part of this chain.
        """
        try:
            return self._by_id[link_id]
        except KeyError:
            raise NotFoundError(
                f"Link '{link_id}' is not part of chain '{self.chain_key}'"
            ).with_context(chain_id=self.chain_id, link_id=link_id) from None

    def next_after(self, link: Link) -> Link | None:
        """The link at the next higher position, or ``None`` at the end."""
        for candidate in self.links:
            if candidate.position > link.position:
                return candidate
        return None

    def ids(self) -> frozenset[str]:
        return frozenset(self._by_id)
