from __future__ import annotations

import pytest

from matchmaker.domain.errors import ValidationError
from matchmaker.matching.contracts import PriorityEntry
from matchmaker.matching.schemas import PriorityUpdate, SupervisorsBulkImport, TagsBulkImport, parse_payload
from matchmaker.matching.validation import (
    validate_capacity,
    validate_priorities,
    validate_score,
)


def _codes(outcome) -> set[str]:
    return {issue.code for issue in outcome.issues}


def test_priorities_must_be_contiguous_permutation() -> None:
    ok = validate_priorities([PriorityEntry("a", 2), PriorityEntry("b", 1), PriorityEntry("c", 3)])
    assert ok.ok

    gap = validate_priorities([PriorityEntry("a", 1), PriorityEntry("b", 3)])
    assert _codes(gap) == {"PRIORITY_NOT_PERMUTATION"}

    repeated = validate_priorities([PriorityEntry("a", 1), PriorityEntry("b", 1)])
    assert _codes(repeated) == {"PRIORITY_NOT_PERMUTATION"}


def test_priorities_reject_duplicate_tags_and_bad_values() -> None:
    outcome = validate_priorities([PriorityEntry("a", 1), PriorityEntry("a", 2), PriorityEntry("", 0)])
    assert _codes(outcome) == {"TAG_DUPLICATE", "TAG_ID_BLANK", "PRIORITY_INVALID"}
    with pytest.raises(ValidationError):
        outcome.raise_for_issues()


def test_empty_profile_is_valid() -> None:
    assert validate_priorities([]).ok


@pytest.mark.parametrize("value, code", [("0.5", "SCORE_NOT_NUMERIC"), (True, "SCORE_NOT_NUMERIC"), (-0.1, "SCORE_OUT_OF_RANGE"), (float("nan"), "SCORE_OUT_OF_RANGE")])
def test_score_checks(value, code) -> None:
    issues = validate_score(value, field="score")
    assert [issue.code for issue in issues] == [code]


def test_score_bounds_inclusive() -> None:
    assert validate_score(0, field="s") == []
    assert validate_score(1.0, field="s") == []


def test_capacity_checks() -> None:
    assert validate_capacity(3, 3).ok
    assert _codes(validate_capacity(-1)) == {"TOTAL_SPOTS_INVALID"}
    assert _codes(validate_capacity(2, 3)) == {"AVAILABLE_SPOTS_INVALID"}


def test_tags_payload_accepts_aliases_and_normalizes() -> None:
    payload = parse_payload(
        TagsBulkImport,
        {"tags": [" Machine   Learning ", "AI"], "similarities": [{"tagA": "AI", "tagB": "Machine Learning", "score": 0.7}]},
    )
    assert payload.tags == ["Machine Learning", "AI"]
    [row] = payload.similarity_inputs()
    assert (row.field1, row.field2, row.similarity_score) == ("AI", "Machine Learning", 0.7)


def test_priority_update_payload() -> None:
    update = parse_payload(PriorityUpdate, {"userId": "u1", "tags": [{"tagId": "t1", "priority": 1}]})
    assert update.user_id == "u1"
    assert update.entries() == [PriorityEntry("t1", 1)]


def test_payload_errors_become_domain_validation_error() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_payload(SupervisorsBulkImport, {"supervisors": [{"supervisor_id": "s1", "total_spots": -2}]})
    issue = excinfo.value.issues[0]
    assert issue.code == "PAYLOAD_INVALID"
    assert issue.field == "supervisors.0.total_spots"


def test_supervisor_import_rejects_repeated_ids() -> None:
    with pytest.raises(ValidationError):
        parse_payload(
            SupervisorsBulkImport,
            {"supervisors": [{"supervisor_id": "s1", "total_spots": 1}, {"supervisorId": "s1", "totalSpots": 2}]},
        )
