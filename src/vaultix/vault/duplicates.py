"""Duplicate detection over the live catalog.

Two kinds of groups:

- ``exact``: identical plaintext content (SHA-256 of the decrypted payload).
  Keeping one copy saves the size of the others.
- ``name``: the same normalized name but different content. Nothing can be
  saved, the group is reported for review only.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Callable, Dict, List

from .models import VaultFile

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class DuplicateGroup:
    id: str
    kind: str
    file_ids: List[str]
    total_size: int
    potential_savings: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "file_ids": list(self.file_ids),
            "total_size": self.total_size,
            "potential_savings": self.potential_savings,
        }


def normalize_name(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


def find_duplicates(
    files: List[VaultFile], read_plaintext: Callable[[VaultFile], bytes]
) -> List[DuplicateGroup]:
    """Group duplicate files. Exact groups come first."""
    digests: Dict[str, str] = {}
    by_hash: Dict[str, List[VaultFile]] = {}
    for f in files:
        digest = hashlib.sha256(read_plaintext(f)).hexdigest()
        digests[f.id] = digest
        by_hash.setdefault(digest, []).append(f)

    groups: List[DuplicateGroup] = []
    for members in by_hash.values():
        if len(members) > 1:
            total = sum(f.size for f in members)
            groups.append(DuplicateGroup(
                id=f"exact_{len(groups) + 1}",
                kind="exact",
                file_ids=[f.id for f in members],
                total_size=total,
                potential_savings=total - members[0].size,
            ))

    by_name: Dict[str, List[VaultFile]] = {}
    for f in files:
        by_name.setdefault(normalize_name(f.name), []).append(f)

    name_count = 0
    for members in by_name.values():
        if len(members) > 1 and len({digests[f.id] for f in members}) > 1:
            name_count += 1
            groups.append(DuplicateGroup(
                id=f"name_{name_count}",
                kind="name",
                file_ids=[f.id for f in members],
                total_size=sum(f.size for f in members),
                potential_savings=0,
            ))
    return groups


def total_savings(groups: List[DuplicateGroup]) -> int:
    return sum(g.potential_savings for g in groups)
