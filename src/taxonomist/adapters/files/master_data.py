"""Master data JSON document <-> snapshot.

The document keeps every projection exactly as written (forward and reverse
maps are read separately) so the consistency checker sees drift between them
instead of having it papered over on load. Older documents spell some maps
differently (``campaignToRangeMap``, ``campaignCompatibilityMap``) and list
business-unit rosters as ``<unit>Categories`` keys (``niveaCategories``);
both shapes are accepted.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, ClassVar, Final, cast

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from taxonomist.domain.master_data.snapshot import (
    MalformedSnapshotError,
    MasterDataSnapshot,
    TaxonomyNode,
    freeze_links,
    freeze_map,
)
from taxonomist.domain.model import EntityStatus, Provenance

log = logging.getLogger(__name__)

_ROSTER_SUFFIX: Final[str] = "Categories"
_LEGACY_ALIASES: Final[Mapping[str, str]] = {
    "campaignToRangeMap": "campaignToRange",
    "campaignCompatibilityMap": "campaignCompatibility",
    "rangeToCampaignsMap": "rangeToCampaigns",
    "rangeToCategoriesMap": "rangeToCategories",
}
# keys the original tooling wrote that carry no taxonomy
_IGNORED_KEYS: Final[frozenset[str]] = frozenset(
    {
        "lastUpdated",
        "businessUnits",
        "countries",
        "subRegions",
        "countryToSubRegionMap",
        "mediaTypes",
        "mediaSubTypes",
        "mediaSubtypes",
        "mediaToSubtypes",
        "pmTypes",
        "rangeToBusinessUnit",
        "campaignToBusinessUnit",
        "rangeCompatibleCampaigns",
        "categoryToCampaignsMap",
    }
)


class MasterDataBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.warning(
            "Master data %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class ProvenanceDocument(MasterDataBaseModel):
    source_session_id: str = Field(alias="sourceSessionId")
    created_at: datetime = Field(alias="createdAt")
    created_by: str = Field(default="import_auto", alias="createdBy")
    original_name: str | None = Field(default=None, alias="originalName")
    notes: str | None = None

    def to_domain(self) -> Provenance:
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return Provenance(
            source_session_id=self.source_session_id,
            created_at=created_at,
            created_by=self.created_by,
            original_name=self.original_name,
            notes=self.notes,
        )

    @classmethod
    def from_domain(cls, provenance: Provenance) -> ProvenanceDocument:
        return cls.model_validate(provenance.to_payload())


class NodeDocument(MasterDataBaseModel):
    status: EntityStatus = EntityStatus.ACTIVE
    provenance: ProvenanceDocument | None = None


class MasterDataDocument(MasterDataBaseModel):
    version: int | None = None
    categories: list[str] = Field(default_factory=list[str])
    ranges: list[str] = Field(default_factory=list[str])
    campaigns: list[str] = Field(default_factory=list[str])
    category_to_ranges: dict[str, list[str]] = Field(
        default_factory=dict[str, list[str]], alias="categoryToRanges"
    )
    range_to_categories: dict[str, list[str]] = Field(
        default_factory=dict[str, list[str]], alias="rangeToCategories"
    )
    range_to_campaigns: dict[str, list[str]] = Field(
        default_factory=dict[str, list[str]], alias="rangeToCampaigns"
    )
    campaign_to_range: dict[str, str] = Field(
        default_factory=dict[str, str], alias="campaignToRange"
    )
    category_to_business_unit: dict[str, str] = Field(
        default_factory=dict[str, str], alias="categoryToBusinessUnit"
    )
    business_unit_categories: dict[str, list[str]] = Field(
        default_factory=dict[str, list[str]], alias="businessUnitCategories"
    )
    campaign_compatibility: dict[str, list[str]] = Field(
        default_factory=dict[str, list[str]], alias="campaignCompatibility"
    )
    range_nodes: dict[str, NodeDocument] = Field(
        default_factory=dict[str, NodeDocument], alias="rangeNodes"
    )
    campaign_nodes: dict[str, NodeDocument] = Field(
        default_factory=dict[str, NodeDocument], alias="campaignNodes"
    )

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_keys(cls, value: object) -> object:
        if not isinstance(value, Mapping):
            return value
        raw = cast(Mapping[str, object], value)
        known = {info.alias or name for name, info in cls.model_fields.items()}
        data: dict[str, object] = {}
        rosters: dict[str, object] = {}
        for key, item in raw.items():
            if key in _IGNORED_KEYS:
                continue
            canonical = _LEGACY_ALIASES.get(key)
            if canonical is not None:
                data.setdefault(canonical, item)
            elif key in known or not _is_roster_key(key):
                data[key] = item
            else:
                rosters[_unit_from_roster_key(key)] = item
        if rosters:
            declared = cast(Mapping[str, object], data.get("businessUnitCategories") or {})
            merged = dict(declared)
            for unit, members in rosters.items():
                merged.setdefault(unit, members)
            data["businessUnitCategories"] = merged
        return data


def _is_roster_key(key: str) -> bool:
    return key.endswith(_ROSTER_SUFFIX) and key[:1].islower()


def _unit_from_roster_key(key: str) -> str:
    stem = key[: -len(_ROSTER_SUFFIX)]
    return stem[:1].upper() + stem[1:]


def _unit_spelling(unit: str, declared: Mapping[str, str]) -> str:
    """Reuse the spelling ``categoryToBusinessUnit`` uses for a roster name."""
    for spelling in declared.values():
        if spelling.casefold() == unit.casefold():
            return spelling
    return unit


# Conversion -----------------------------------------------------------------------


def document_to_snapshot(
    document: MasterDataDocument,
    *,
    version: int | None = None,
) -> MasterDataSnapshot:
    declared = document.category_to_business_unit
    rosters = {
        _unit_spelling(unit, declared): members
        for unit, members in document.business_unit_categories.items()
    }
    for unit in set(declared.values()):
        rosters.setdefault(unit, [])
    return MasterDataSnapshot(
        version=version if version is not None else (document.version or 0),
        categories=tuple(dict.fromkeys(document.categories)),
        ranges=tuple(dict.fromkeys(document.ranges)),
        campaigns=tuple(dict.fromkeys(document.campaigns)),
        category_to_ranges=freeze_links(document.category_to_ranges),
        range_to_categories=freeze_links(document.range_to_categories),
        range_to_campaigns=freeze_links(document.range_to_campaigns),
        campaign_to_range=freeze_map(document.campaign_to_range),
        category_to_business_unit=freeze_map(declared),
        business_unit_rosters=freeze_links(rosters),
        campaign_compatibility=freeze_links(document.campaign_compatibility),
        range_nodes=freeze_map(_nodes(document.range_nodes)),
        campaign_nodes=freeze_map(_nodes(document.campaign_nodes)),
    )


def _nodes(documents: Mapping[str, NodeDocument]) -> dict[str, TaxonomyNode]:
    return {
        name: TaxonomyNode(
            name=name,
            status=node.status,
            provenance=node.provenance.to_domain() if node.provenance is not None else None,
        )
        for name, node in documents.items()
    }


def snapshot_to_document(snapshot: MasterDataSnapshot) -> MasterDataDocument:
    def links(mapping: Mapping[str, frozenset[str]]) -> dict[str, list[str]]:
        return {key: sorted(values) for key, values in sorted(mapping.items())}

    def nodes(mapping: Mapping[str, TaxonomyNode]) -> dict[str, NodeDocument]:
        return {
            name: NodeDocument(
                status=node.status,
                provenance=(
                    ProvenanceDocument.from_domain(node.provenance)
                    if node.provenance is not None
                    else None
                ),
            )
            for name, node in sorted(mapping.items())
        }

    return MasterDataDocument(
        version=snapshot.version,
        categories=list(snapshot.categories),
        ranges=list(snapshot.ranges),
        campaigns=list(snapshot.campaigns),
        category_to_ranges=links(snapshot.category_to_ranges),
        range_to_categories=links(snapshot.range_to_categories),
        range_to_campaigns=links(snapshot.range_to_campaigns),
        campaign_to_range=dict(sorted(snapshot.campaign_to_range.items())),
        category_to_business_unit=dict(sorted(snapshot.category_to_business_unit.items())),
        business_unit_categories=links(snapshot.business_unit_rosters),
        campaign_compatibility=links(snapshot.campaign_compatibility),
        range_nodes=nodes(snapshot.range_nodes),
        campaign_nodes=nodes(snapshot.campaign_nodes),
    )


def snapshot_to_payload(snapshot: MasterDataSnapshot) -> dict[str, Any]:
    return snapshot_to_document(snapshot).model_dump(
        mode="json",
        by_alias=True,
        exclude_none=True,
    )


def snapshot_from_payload(
    payload: Mapping[str, object],
    *,
    version: int | None = None,
) -> MasterDataSnapshot:
    try:
        document = MasterDataDocument.model_validate(payload)
    except ValidationError as exc:
        raise MalformedSnapshotError(f"Invalid master data document: {exc}") from exc
    return document_to_snapshot(document, version=version)


# Files ----------------------------------------------------------------------------


def read_master_data(path: Path) -> MasterDataSnapshot:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise MalformedSnapshotError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedSnapshotError(f"{path} must contain a JSON object")
    snapshot = snapshot_from_payload(cast(dict[str, object], payload))
    log.info("Loaded master data version %s from %s", snapshot.version, path)
    return snapshot


def write_master_data(path: Path, snapshot: MasterDataSnapshot) -> None:
    payload = snapshot_to_payload(snapshot)
    payload["lastUpdated"] = datetime.now(tz=UTC).isoformat()
    write_json_atomic(path, payload)
    log.info("Wrote master data version %s to %s", snapshot.version, path)


def write_json_atomic(path: Path, payload: object) -> None:
    """Write ``payload`` to a sibling temp file, then rename it over ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    handle, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as temp_file:
            json.dump(payload, temp_file, indent=2, ensure_ascii=False)
            temp_file.write("\n")
        Path(temp_name).replace(path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
