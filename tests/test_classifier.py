from __future__ import annotations

import pytest

from prmonitor.classifier import PrOutcome, classify

from .conftest import make_status


@pytest.mark.parametrize(
    "mergeable_state", ["clean", "dirty", "behind", "blocked", "unstable", "unknown", None, "draft"]
)
def test_merged_wins_over_mergeable_state(mergeable_state):
    status = make_status(mergeable_state=mergeable_state, merged=True, merged_at="2024-05-01T10:00:00Z")
    assert classify(status) is PrOutcome.MERGED


def test_merged_at_alone_is_merged():
    status = make_status(mergeable_state="behind", merged=False, merged_at="2024-05-01T10:00:00Z")
    assert classify(status) is PrOutcome.MERGED


@pytest.mark.parametrize(
    ("mergeable_state", "expected"),
    [
        ("behind", PrOutcome.BEHIND),
        ("clean", PrOutcome.UP_TO_DATE),
        ("dirty", PrOutcome.CONFLICTS),
        ("blocked", PrOutcome.BLOCKED),
        ("unknown", PrOutcome.UNKNOWN),
        ("unstable", PrOutcome.UNKNOWN),
    ],
)
def test_mergeable_state_mapping(mergeable_state, expected):
    assert classify(make_status(mergeable_state=mergeable_state)) is expected


@pytest.mark.parametrize("mergeable_state", [None, "", "has_hooks", "draft", "something_new"])
def test_missing_or_unrecognised_state_is_unknown(mergeable_state):
    assert classify(make_status(mergeable_state=mergeable_state)) is PrOutcome.UNKNOWN


def test_mergeable_state_is_case_insensitive():
    assert classify(make_status(mergeable_state="BEHIND")) is PrOutcome.BEHIND
