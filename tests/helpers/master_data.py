"""Builders for master data snapshots and import rows used across tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from taxonomist.domain.master_data import SnapshotEditor, seed_master_data
from taxonomist.domain.model import EntityStatus, Provenance

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.domain.master_data import MasterDataSnapshot
    from taxonomist.domain.ports.unit_of_work import TaxonomyUnitOfWork

FIXED_TIME = datetime(2025, 3, 1, 9, 30, tzinfo=UTC)


def make_snapshot(*, version: int = 1) -> MasterDataSnapshot:
    """Two business units, a shared range and one compatible campaign.

    Derma: Acne -> {Acne, Dermopure}, Body Milk -> {Cellular, Hydro Boost}
    Nivea: Face Care -> {Cellular}
    """

    editor = SnapshotEditor()
    editor.add_category("Acne", business_unit="Derma")
    editor.add_category("Body Milk", business_unit="Derma")
    editor.add_category("Face Care", business_unit="Nivea")
    editor.add_range("Acne", categories=["Acne"])
    editor.add_range("Dermopure", categories=["Acne"])
    editor.add_range("Hydro Boost", categories=["Body Milk"])
    editor.add_range("Cellular", categories=["Body Milk", "Face Care"])
    editor.add_campaign("Clear Skin", range_="Dermopure")
    editor.add_campaign("Summer Glow", range_="Hydro Boost")
    editor.add_campaign("Night Repair", range_="Cellular")
    editor.add_compatibility("Summer Glow", "Cellular")
    return editor.build(version=version)


def make_derma_snapshot(*, version: int = 1) -> MasterDataSnapshot:
    """Derma with Category "Acne" linked only to Range "Acne"."""

    editor = SnapshotEditor()
    editor.add_category("Acne", business_unit="Derma")
    editor.add_range("Acne", categories=["Acne"])
    editor.add_campaign("Blemish Control", range_="Acne")
    return editor.build(version=version)


def make_provenance(session_id: str = "session-1", name: str = "Dermopure RL") -> Provenance:
    return Provenance.for_auto_create(
        session_id=session_id,
        original_name=name,
        created_at=FIXED_TIME,
    )


def with_pending_range(
    snapshot: MasterDataSnapshot,
    name: str,
    *,
    category: str,
    provenance: Provenance | None = None,
) -> MasterDataSnapshot:
    editor = SnapshotEditor(snapshot)
    editor.add_range(
        name,
        categories=[category],
        status=EntityStatus.PENDING_REVIEW,
        provenance=provenance,
    )
    return editor.build()


def media_row(
    category: str,
    range_: str,
    campaign: str,
    *,
    budget: str = "1,000",
) -> dict[str, str]:
    return {
        "Category": category,
        "Range": range_,
        "Campaign": campaign,
        "Total Budget": budget,
        "Total TRPs": "120",
        "Total R1+ (%)": "45.5",
        "Total R3+ (%)": "",
        "Total WOA": "4",
        "Total WOFF": "-",
    }


def sov_row(category: str, company: str, *, investment: str = "2,500") -> dict[str, str]:
    return {
        "Category": category,
        "Company": company,
        "Total TV Investment": investment,
        "Total TV TRPs": "80",
    }


def seed_store(
    unit_of_work_factory: Callable[[], TaxonomyUnitOfWork],
    snapshot: MasterDataSnapshot | None = None,
) -> MasterDataSnapshot:
    seeded = snapshot or make_snapshot()
    seed_master_data(seeded, unit_of_work_factory=unit_of_work_factory)
    return seeded
