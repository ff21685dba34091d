"""
Log reconstruction from an unordered set of restored blocks.

Entries link to their predecessors through `next`. Inverting those links
gives, for every referenced CID, the entry that named it; the heads are
the entries nobody names. This works on any subset of the log: a partial
snapshot yields a superset of the true heads, never a subset.
"""

from typing import Any, Iterable, Mapping, Optional

from logbridge import cids
from logbridge.classify import classify_block
from logbridge.errors import AmbiguousRootDescriptor, NoRootDescriptorFound
from logbridge.log import debug, log
from logbridge.models import BlockCategory


def compute_heads(successors: Mapping[str, Iterable[str]]) -> list[str]:
    """Entries never named by another entry's next list, in input order."""
    named_by: dict[str, str] = {}
    for cid, parents in successors.items():
        for parent in parents:
            named_by.setdefault(parent, cid)
    return [cid for cid in successors if cid not in named_by]


class ReconstructionSession:
    """Classification state for a single restore call. Not shared between calls."""

    def __init__(self):
        self.categories: dict[str, BlockCategory] = {}
        self.log_entries: dict[str, dict[str, Any]] = {}
        self.next_links: dict[str, list[str]] = {}
        self.roots: list[str] = []

    def add(self, cid: str, data: bytes) -> BlockCategory:
        classified = classify_block(cid, data)
        self.categories[cid] = classified.category

        if classified.category == BlockCategory.LOG_ENTRY:
            content = classified.content
            self.log_entries[cid] = content
            self.next_links[cid] = [n for n in (cids.link(x) for x in content.get("next") or []) if n]
        elif classified.category == BlockCategory.ROOT_DESCRIPTOR:
            self.roots.append(cid)

        debug(f"   {cid}: {classified.category.value}")
        return classified.category

    def category_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for category in self.categories.values():
            counts[category.value] = counts.get(category.value, 0) + 1
        return counts

    def entries_for(self, address: Optional[str] = None) -> dict[str, dict[str, Any]]:
        """
        Log entries belonging to address, which may also be a bare root CID.

        Entries are matched on the root CID their id names, whatever the
        address scheme. Entries without an id are kept.
        """
        if address is None:
            return dict(self.log_entries)
        root = _root_named_by(address)
        return {
            cid: content
            for cid, content in self.log_entries.items()
            if not content.get("id") or _root_named_by(content.get("id")) == root
        }

    def addresses_of(self, root_cid: str) -> list[str]:
        """Distinct database ids carried by the entries of root_cid."""
        found: list[str] = []
        for content in self.entries_for(root_cid).values():
            address = content.get("id")
            if isinstance(address, str) and address and address not in found:
                found.append(address)
        return found

    def heads(self, address: Optional[str] = None) -> list[str]:
        entries = self.entries_for(address)
        return compute_heads({cid: self.next_links.get(cid, []) for cid in entries})

    def select_root(self, root_cid: Optional[str] = None) -> str:
        """
        Pick the root descriptor to rebuild.

        An explicit root_cid wins when it was restored. Otherwise a single
        restored root is used. With several, the one named by the entries'
        database id is used if exactly one is named.
        """
        if root_cid:
            wanted = cids.to_local_form(root_cid)
            for root in self.roots:
                if cids.same_block(root, wanted):
                    return root
            raise NoRootDescriptorFound(
                f"Root descriptor {root_cid} was not among the restored blocks",
                cid=root_cid,
            )

        if not self.roots:
            raise NoRootDescriptorFound("No root descriptor found among the restored blocks")

        if len(self.roots) == 1:
            return self.roots[0]

        referenced = {_root_named_by(content.get("id")) for content in self.log_entries.values()}
        named = [root for root in self.roots if root in referenced]
        log(f"   {len(self.roots)} root descriptors restored, {len(named)} named by log entries")
        if len(named) == 1:
            return named[0]
        raise AmbiguousRootDescriptor(named or list(self.roots))


def _root_named_by(address: Any) -> Optional[str]:
    if not isinstance(address, str) or not address.strip():
        return None
    return address.strip().rstrip("/").split("/")[-1]
