# src/Services/duplicate_grouper.py

"""
Canonical duplicate detection for fence geometry.

Two fences are the same shape when their canonical keys match. The key is
computed by a fixed pipeline; changing the order changes every key:

    1. repair          (ST_MakeValid)
    2. snap to grid    (tolerance, default 1e-6 degrees)
    3. normalize       (ring start point, winding, part order)
    4. serialize       (2-D WKB)
    5. hash            (md5)

Fences sharing a key form a Duplicate Group. The canonical member is the
smallest id in the group, so the choice does not depend on read order and
repeated deduplication runs always keep the same fence.

A fence whose geometry cannot be repaired gets no key. It is reported with
duplicate_group_size = 1 and is_duplicate = False, exactly like a unique
fence, and is told apart only by group_state = "ungroupable".
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from src.Services.fence_store import FenceRecord
from src.Services.geometry_engine import GeometryEngine, GeometryParseError, RawGeometry


GROUP_UNIQUE = "unique"
GROUP_UNGROUPABLE = "ungroupable"
GROUP_MEMBER = "member"


@dataclass(frozen=True)
class DuplicateGroup:
    key: str
    member_ids: tuple

    @property
    def canonical_id(self) -> int:
        return self.member_ids[0]

    @property
    def size(self) -> int:
        return len(self.member_ids)

    @property
    def non_canonical_ids(self) -> tuple:
        return self.member_ids[1:]


@dataclass(frozen=True)
class DuplicateMembership:
    fence_id: int
    group_size: int = 1
    duplicate_of_id: Optional[int] = None
    group_state: str = GROUP_UNIQUE
    key: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.group_size > 1


@dataclass
class DuplicateIndex:
    """Membership for every grouped fence plus the groups with size > 1."""
    memberships: Dict[int, DuplicateMembership] = field(default_factory=dict)
    groups: List[DuplicateGroup] = field(default_factory=list)

    def membership(self, fence_id: int) -> DuplicateMembership:
        found = self.memberships.get(fence_id)
        if found is None:
            return DuplicateMembership(fence_id=fence_id, group_state=GROUP_UNGROUPABLE)
        return found

    def non_canonical_ids(self) -> List[int]:
        ids: List[int] = []
        for group in self.groups:
            ids.extend(group.non_canonical_ids)
        return sorted(ids)


def canonical_key(
    geometry: RawGeometry,
    engine: GeometryEngine,
    tolerance: float
) -> Optional[str]:
    """
    Hash of the repaired, snapped and normalized geometry.

    Returns None when the geometry cannot be parsed, repaired, or collapses
    to nothing on the grid. GeometryEngineError propagates.
    """
    try:
        parsed = engine.parse(geometry)
    except GeometryParseError:
        return None

    repaired = engine.repair(parsed)
    if repaired is None:
        return None

    canonical = engine.canonicalize(repaired, tolerance)
    if canonical is None:
        return None

    return engine.hash(engine.serialize_deterministic(canonical))


def group_duplicates(
    records: Iterable[FenceRecord],
    engine: GeometryEngine,
    tolerance: float
) -> DuplicateIndex:
    """
    Group fences by canonical key.

    Records with null geometry are ignored entirely; records whose key
    cannot be computed are indexed as ungroupable.
    """
    by_key: Dict[str, List[int]] = defaultdict(list)
    index = DuplicateIndex()

    for record in records:
        if record.geometry is None:
            continue
        key = canonical_key(record.geometry, engine, tolerance)
        if key is None:
            index.memberships[record.id] = DuplicateMembership(
                fence_id=record.id,
                group_state=GROUP_UNGROUPABLE
            )
            continue
        by_key[key].append(record.id)

    for key in sorted(by_key):
        member_ids = tuple(sorted(set(by_key[key])))
        group = DuplicateGroup(key=key, member_ids=member_ids)

        if group.size == 1:
            index.memberships[group.canonical_id] = DuplicateMembership(
                fence_id=group.canonical_id,
                key=key
            )
            continue

        index.groups.append(group)
        for fence_id in member_ids:
            index.memberships[fence_id] = DuplicateMembership(
                fence_id=fence_id,
                group_size=group.size,
                duplicate_of_id=None if fence_id == group.canonical_id else group.canonical_id,
                group_state=GROUP_MEMBER,
                key=key
            )

    index.groups.sort(key=lambda g: g.canonical_id)

    if index.groups:
        print(f"[DEDUPE] {len(index.groups)} duplicate group(s), "
              f"{len(index.non_canonical_ids())} non-canonical fence(s)")

    return index
