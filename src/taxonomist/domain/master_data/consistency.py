"""Structural checks over a master data snapshot.

The checker walks the snapshot itself, never input rows, and returns an
ordered list of violations. It is pure: it is the gate every master data edit
passes before it becomes the current version, and the body of the scheduled
``taxonomist check`` health run.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from taxonomist.domain.model import EntityStatus, EntityType, Severity, normalize_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot

log = logging.getLogger(__name__)


class ViolationType(StrEnum):
    MAPPING_INCONSISTENCY = "MAPPING_INCONSISTENCY"
    ORPHANED_RANGE = "ORPHANED_RANGE"
    BUSINESS_UNIT_MISMATCH = "BUSINESS_UNIT_MISMATCH"
    MISSING_FROM_ARRAY = "MISSING_FROM_ARRAY"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    MISSING_PROVENANCE = "MISSING_PROVENANCE"


@dataclass(frozen=True, slots=True, kw_only=True)
class Violation:
    type: ViolationType
    message: str
    severity: Severity
    subject: tuple[str, ...] = ()

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "message": self.message, "severity": self.severity.value}


@dataclass(frozen=True, slots=True)
class ConsistencySummary:
    critical: int
    warning: int

    @property
    def total(self) -> int:
        return self.critical + self.warning


@dataclass(frozen=True, slots=True)
class SnapshotStatistics:
    categories: int
    ranges: int
    campaigns: int
    ranges_with_campaigns: int
    pending_review: int


def check_consistency(snapshot: MasterDataSnapshot) -> list[Violation]:
    violations: list[Violation] = []
    violations.extend(_check_reciprocal_edges(snapshot))
    violations.extend(_check_orphaned_ranges(snapshot))
    violations.extend(_check_business_unit_rosters(snapshot))
    violations.extend(_check_flat_indexes(snapshot))
    violations.extend(_check_duplicate_names(snapshot))
    violations.extend(_check_provenance(snapshot))
    if violations:
        summary = summarize(violations)
        log.debug(
            "Consistency check on version %s: critical=%s warning=%s",
            snapshot.version,
            summary.critical,
            summary.warning,
        )
    return violations


def _check_reciprocal_edges(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    for category in sorted(snapshot.category_to_ranges):
        for range_ in sorted(snapshot.category_to_ranges[category]):
            if category not in snapshot.range_to_categories.get(range_, frozenset()):
                yield Violation(
                    type=ViolationType.MAPPING_INCONSISTENCY,
                    severity=Severity.CRITICAL,
                    subject=(category, range_),
                    message=(
                        f'Category "{category}" maps to range "{range_}", '
                        f'but range "{range_}" doesn\'t map back to category "{category}"'
                    ),
                )
    for range_ in sorted(snapshot.range_to_categories):
        for category in sorted(snapshot.range_to_categories[range_]):
            if range_ not in snapshot.category_to_ranges.get(category, frozenset()):
                yield Violation(
                    type=ViolationType.MAPPING_INCONSISTENCY,
                    severity=Severity.CRITICAL,
                    subject=(category, range_),
                    message=(
                        f'Range "{range_}" maps to category "{category}", '
                        f'but category "{category}" doesn\'t include range "{range_}"'
                    ),
                )


def _check_orphaned_ranges(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    for range_ in sorted(snapshot.range_to_campaigns):
        if not snapshot.range_to_campaigns[range_]:
            continue
        if snapshot.range_to_categories.get(range_):
            continue
        yield Violation(
            type=ViolationType.ORPHANED_RANGE,
            severity=Severity.WARNING,
            subject=(range_,),
            message=f'Range "{range_}" has campaigns but is not mapped to any category',
        )


def _check_business_unit_rosters(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    for unit in sorted(snapshot.business_unit_rosters):
        for category in sorted(snapshot.business_unit_rosters[unit]):
            declared = snapshot.category_to_business_unit.get(category)
            if declared is None:
                yield Violation(
                    type=ViolationType.BUSINESS_UNIT_MISMATCH,
                    severity=Severity.CRITICAL,
                    subject=(unit, category),
                    message=(
                        f'Category "{category}" is in the {unit} roster '
                        "but has no business unit assigned"
                    ),
                )
            elif normalize_name(declared) != normalize_name(unit):
                yield Violation(
                    type=ViolationType.BUSINESS_UNIT_MISMATCH,
                    severity=Severity.CRITICAL,
                    subject=(unit, category),
                    message=(
                        f'Category "{category}" is in the {unit} roster '
                        f'but maps to "{declared}" business unit, not "{unit}"'
                    ),
                )


def _check_flat_indexes(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    indexed_categories = set(snapshot.categories)
    referenced_categories = set(snapshot.category_to_ranges) | set(
        snapshot.category_to_business_unit
    )
    for members in snapshot.range_to_categories.values():
        referenced_categories.update(members)
    for category in sorted(referenced_categories - indexed_categories):
        yield Violation(
            type=ViolationType.MISSING_FROM_ARRAY,
            severity=Severity.WARNING,
            subject=(category,),
            message=f'Category "{category}" is used in mappings but missing from categories list',
        )

    indexed_ranges = set(snapshot.ranges)
    referenced_ranges = set(snapshot.range_to_categories) | set(snapshot.range_to_campaigns)
    for members in snapshot.category_to_ranges.values():
        referenced_ranges.update(members)
    for range_ in sorted(referenced_ranges - indexed_ranges):
        yield Violation(
            type=ViolationType.MISSING_FROM_ARRAY,
            severity=Severity.WARNING,
            subject=(range_,),
            message=f'Range "{range_}" is used in mappings but missing from ranges list',
        )


def _check_duplicate_names(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    populations = (
        (EntityType.RANGE, snapshot.all_range_names),
        (EntityType.CAMPAIGN, snapshot.all_campaign_names),
    )
    for entity_type, names in populations:
        live = [name for name in names if snapshot.is_live(entity_type, name)]
        counts = Counter(normalize_name(name) for name in live)
        for key in sorted(key for key, count in counts.items() if count > 1):
            spellings = sorted(name for name in live if normalize_name(name) == key)
            quoted = ", ".join(f'"{name}"' for name in spellings)
            yield Violation(
                type=ViolationType.DUPLICATE_NAME,
                severity=Severity.CRITICAL,
                subject=tuple(spellings),
                message=f"Duplicate {entity_type} names differing only by case: {quoted}",
            )


def _check_provenance(snapshot: MasterDataSnapshot) -> Iterable[Violation]:
    for entity_type, nodes in (
        (EntityType.RANGE, snapshot.range_nodes),
        (EntityType.CAMPAIGN, snapshot.campaign_nodes),
    ):
        for name in sorted(nodes):
            node = nodes[name]
            if node.status is EntityStatus.PENDING_REVIEW and node.provenance is None:
                yield Violation(
                    type=ViolationType.MISSING_PROVENANCE,
                    severity=Severity.WARNING,
                    subject=(name,),
                    message=(
                        f'{entity_type.capitalize()} "{name}" is pending review '
                        "but carries no import provenance"
                    ),
                )


def summarize(violations: Iterable[Violation]) -> ConsistencySummary:
    critical = 0
    warning = 0
    for violation in violations:
        if violation.is_critical:
            critical += 1
        else:
            warning += 1
    return ConsistencySummary(critical=critical, warning=warning)


def exit_code(violations: Iterable[Violation]) -> int:
    """Process exit status for a standalone run: 0 iff no critical violations."""
    return 1 if summarize(violations).critical else 0


def new_violations(
    before: Sequence[Violation],
    after: Sequence[Violation],
) -> list[Violation]:
    """Violations present in ``after`` that ``before`` did not already report."""
    known = {(violation.type, violation.subject) for violation in before}
    return [violation for violation in after if (violation.type, violation.subject) not in known]


def snapshot_statistics(snapshot: MasterDataSnapshot) -> SnapshotStatistics:
    pending = sum(
        1
        for nodes in (snapshot.range_nodes, snapshot.campaign_nodes)
        for node in nodes.values()
        if node.status is EntityStatus.PENDING_REVIEW
    )
    return SnapshotStatistics(
        categories=len(snapshot.all_category_names),
        ranges=len(snapshot.all_range_names),
        campaigns=len(snapshot.all_campaign_names),
        ranges_with_campaigns=sum(1 for members in snapshot.range_to_campaigns.values() if members),
        pending_review=pending,
    )
