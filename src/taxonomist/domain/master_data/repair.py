"""Mechanical repair of reciprocal edges and flat name indexes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from taxonomist.domain.master_data.editor import SnapshotEditor
from taxonomist.domain.model import EntityType

if TYPE_CHECKING:
    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot


@dataclass(frozen=True, slots=True)
class RepairResult:
    snapshot: MasterDataSnapshot
    actions: tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.actions)


def repair_snapshot(snapshot: MasterDataSnapshot) -> RepairResult:
    """Add every missing half of a category/range edge and re-index names.

    Business-unit roster mismatches are left alone: choosing the right unit is
    an editorial decision, not a mechanical one.
    """

    editor = SnapshotEditor(snapshot)
    for category, ranges in snapshot.category_to_ranges.items():
        for range_ in ranges:
            editor.add_reverse_edge(category, range_)
    for range_, categories in snapshot.range_to_categories.items():
        for category in categories:
            editor.add_forward_edge(category, range_)

    for category in sorted(snapshot.all_category_names):
        editor.ensure_indexed(EntityType.CATEGORY, category)
    for range_ in sorted(snapshot.all_range_names):
        editor.ensure_indexed(EntityType.RANGE, range_)
    for campaign in sorted(snapshot.all_campaign_names):
        editor.ensure_indexed(EntityType.CAMPAIGN, campaign)

    actions = tuple(editor.changes)
    if not actions:
        return RepairResult(snapshot=snapshot, actions=())
    return RepairResult(snapshot=editor.build(), actions=actions)
