from __future__ import annotations

from collections.abc import Mapping

from taxonomist.domain.model import Severity
from taxonomist.domain.validation import (
    MEDIA_SUFFICIENCY,
    SHARE_OF_VOICE_TV,
    IssueResolution,
    RecordSchema,
    RuleType,
    ValidationContext,
    ValidationResult,
    map_rows,
    validate_batch,
)
from tests.helpers.master_data import make_snapshot, media_row, sov_row


def _validate(
    rows: list[Mapping[str, object]],
    *,
    business_unit: str = "Derma",
    schema: RecordSchema = MEDIA_SUFFICIENCY,
    auto_create: bool = False,
) -> ValidationResult:
    context = ValidationContext(
        snapshot=make_snapshot(),
        business_unit=business_unit,
        schema=schema,
        auto_create=auto_create,
    )
    return validate_batch(map_rows(rows, schema), context)


def test_known_combination_has_no_issues() -> None:
    result = _validate([media_row("Acne", "Dermopure", "Clear Skin")])

    assert result.issues == ()
    assert result.can_import


def test_names_resolve_case_insensitively() -> None:
    result = _validate([media_row("acne", "DERMOPURE", "clear skin")])

    assert result.issues == ()


def test_missing_required_value_is_critical() -> None:
    result = _validate([media_row("Acne", "Dermopure", "")])

    (issue,) = result.issues
    assert issue.rule is RuleType.REQUIRED
    assert issue.column_name == "Campaign"
    assert issue.severity is Severity.CRITICAL
    assert issue.message == "Campaign is required"
    assert not result.can_import


def test_malformed_metric_is_only_a_warning() -> None:
    result = _validate([media_row("Acne", "Dermopure", "Clear Skin", budget="lots")])

    (issue,) = result.issues
    assert issue.rule is RuleType.FORMAT
    assert issue.severity is Severity.WARNING
    assert issue.message == "Total Budget must be a number (got 'lots')"
    assert result.can_import


def test_category_outside_business_unit_lists_valid_categories() -> None:
    result = _validate([media_row("Face Care", "Cellular", "Night Repair")])

    (issue,) = result.issues
    assert issue.column_name == "Category"
    assert issue.message == (
        "Category 'Face Care' is not valid for Derma business unit. "
        "Valid categories: Acne, Body Milk"
    )


def test_unknown_range_blocks_without_auto_create() -> None:
    result = _validate([media_row("Acne", "Dermopure RL", "Triple Effect")])

    range_issue, campaign_issue = result.issues
    assert range_issue.column_name == "Range"
    assert range_issue.message == (
        "Range 'Dermopure RL' is not valid for Derma business unit. Valid ranges: Acne, Dermopure"
    )
    assert range_issue.resolution is None
    assert campaign_issue.column_name == "Campaign"
    assert campaign_issue.resolution is None
    assert result.summary.blocking == 2


def test_unknown_range_and_campaign_are_resolved_by_auto_create() -> None:
    result = _validate([media_row("Acne", "Dermopure RL", "Triple Effect")], auto_create=True)

    range_issue, campaign_issue = result.issues
    assert range_issue.severity is Severity.CRITICAL
    assert range_issue.resolution is IssueResolution.AUTO_CREATE
    assert range_issue.message.endswith(". Range will be auto-created for review")
    assert campaign_issue.resolution is IssueResolution.AUTO_CREATE
    assert campaign_issue.message == (
        "Campaign 'Triple Effect' is not valid for Derma business unit. "
        "Valid campaigns: Clear Skin, Night Repair, Summer Glow. "
        "Campaign will be auto-created for review"
    )
    assert result.summary.critical == 2
    assert result.summary.blocking == 0
    assert result.can_import


def test_existing_range_under_wrong_category_is_never_auto_created() -> None:
    result = _validate([media_row("Acne", "Hydro Boost", "Summer Glow")], auto_create=True)

    (issue,) = result.issues
    assert issue.message == (
        "Range 'Hydro Boost' is not valid for Category 'Acne'. Valid ranges: Acne, Dermopure"
    )
    assert issue.resolution is None
    assert not result.can_import


def test_existing_campaign_is_not_moved_under_an_auto_created_range() -> None:
    result = _validate([media_row("Acne", "Dermopure RL", "Clear Skin")], auto_create=True)

    range_issue, campaign_issue = result.issues
    assert range_issue.resolution is IssueResolution.AUTO_CREATE
    assert campaign_issue.message == (
        "Campaign 'Clear Skin' is not valid for Range 'Dermopure RL'. Valid campaigns: none"
    )
    assert campaign_issue.resolution is None
    assert result.summary.blocking == 1
    assert not result.can_import


def test_range_of_another_business_unit_is_rejected() -> None:
    result = _validate([media_row("Face Care", "Dermopure", "Clear Skin")], business_unit="Nivea")

    (issue,) = result.issues
    assert issue.message == (
        "Range 'Dermopure' is not valid for Nivea business unit. Valid ranges: Cellular"
    )


def test_campaign_may_be_reported_under_compatible_range() -> None:
    result = _validate([media_row("Body Milk", "Cellular", "Summer Glow")])

    assert result.issues == ()


def test_campaign_under_incompatible_range_lists_the_range_campaigns() -> None:
    result = _validate([media_row("Body Milk", "Cellular", "Clear Skin")])

    (issue,) = result.issues
    assert issue.column_name == "Campaign"
    assert issue.message == (
        "Campaign 'Clear Skin' is not valid for Range 'Cellular'. Valid campaigns: Night Repair"
    )


def test_duplicates_reference_each_other() -> None:
    rows: list[Mapping[str, object]] = [
        media_row("Acne", "Dermopure", "Clear Skin"),
        media_row("Body Milk", "Hydro Boost", "Summer Glow"),
        media_row("acne", " dermopure ", "CLEAR SKIN"),
    ]

    result = _validate(rows)

    first, second = result.by_rule(RuleType.UNIQUENESS)
    assert (first.row_index, second.row_index) == (0, 2)
    assert first.severity is Severity.CRITICAL
    assert first.column_name == "Category + Range + Campaign"
    assert first.message == (
        "Duplicate combination: same Category and Range and Campaign combination already "
        "exists in this upload. Found duplicates at rows: 3"
    )
    assert second.message.endswith("Found duplicates at rows: 1")
    assert result.issues_for_row(1) == ()


def test_brand_presence_flags_first_row_of_category_without_brand() -> None:
    rows: list[Mapping[str, object]] = [
        sov_row("Acne", "Derma"),
        sov_row("Acne", "Competitor 1"),
        sov_row("Body Milk", "Competitor 2"),
        sov_row("Body Milk", "Competitor 3"),
    ]

    result = _validate(rows, schema=SHARE_OF_VOICE_TV)

    (issue,) = result.by_rule(RuleType.CONSISTENCY)
    assert issue.row_index == 2
    assert issue.severity is Severity.CRITICAL
    assert issue.message.startswith("Category 'Body Milk' has no Derma entry")


def test_company_convention_is_a_suggestion() -> None:
    rows: list[Mapping[str, object]] = [
        sov_row("Acne", "Derma"),
        sov_row("Acne", "Rival Labs"),
        sov_row("Acne", "Nivea"),
        sov_row("Acne", "competitor 5"),
        sov_row("Acne", "Competitor 6"),
    ]

    result = _validate(rows, schema=SHARE_OF_VOICE_TV)

    suggestions = [issue for issue in result.issues if issue.severity is Severity.SUGGESTION]
    assert [issue.row_index for issue in suggestions] == [1, 4]
    assert suggestions[0].message == (
        "Company 'Rival Labs' does not follow the naming convention: use Derma or Competitor 1-5"
    )
    assert result.summary.suggestion == 2
    assert result.can_import
