"""Test that the failure payload wire shape doesn't change unintentionally."""

from cacheproof.contracts import FailedStepEntry, FailurePayload, ForbiddenEntry, MachineIssue


def test_failure_payload_fields_stable():
    """Top-level wire names are consumed by external tooling."""
    schema = FailurePayload.model_json_schema(by_alias=True)
    assert set(schema["properties"]) == {"generator", "producedOutput", "forbidden", "failed", "issues"}
    assert set(schema["required"]) == {"generator", "producedOutput"}


def test_entry_fields_stable():
    assert list(ForbiddenEntry.model_fields) == ["step", "type", "path"]
    assert list(FailedStepEntry.model_fields) == ["step", "cached", "unchanged", "modified", "new", "removed"]
    assert list(MachineIssue.model_fields) == ["type", "severity", "step", "count"]


def test_payload_accepts_either_field_name():
    by_alias = FailurePayload(generator="Gen", producedOutput=True)
    by_name = FailurePayload(generator="Gen", produced_output=True)
    assert by_alias == by_name
    assert by_alias.to_wire()["producedOutput"] is True
