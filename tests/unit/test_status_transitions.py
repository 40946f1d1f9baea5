import pytest
from models.base import JobStatus, RawDealStatus, DealStatus
from ingestion.promotion import default_deal_status, normalize_ids


@pytest.mark.parametrize("target", [
    RawDealStatus.PROMOTED,
    RawDealStatus.REJECTED,
    RawDealStatus.AUTO_REJECTED,
    RawDealStatus.ERROR,
])
def test_pending_raw_deal_can_leave_pending(target):
    assert RawDealStatus.PENDING.can_transition_to(target)


@pytest.mark.parametrize("terminal", [
    RawDealStatus.PROMOTED,
    RawDealStatus.REJECTED,
    RawDealStatus.AUTO_REJECTED,
    RawDealStatus.ERROR,
])
def test_terminal_raw_deal_statuses_are_final(terminal):
    assert terminal.is_terminal
    for target in RawDealStatus:
        assert not terminal.can_transition_to(target)


def test_job_is_finalized_once():
    assert not JobStatus.RUNNING.is_terminal
    for final in (JobStatus.SUCCEEDED, JobStatus.HAS_ERRORS, JobStatus.FAILED):
        assert JobStatus.RUNNING.can_transition_to(final)
        assert final.is_terminal
        assert not final.can_transition_to(JobStatus.RUNNING)


def test_deal_status_transitions():
    assert DealStatus.PENDING_REVIEW.can_transition_to(DealStatus.ACTIVE)
    assert DealStatus.ACTIVE.can_transition_to(DealStatus.EXPIRED)
    assert DealStatus.INACTIVE.can_transition_to(DealStatus.ACTIVE)
    assert not DealStatus.EXPIRED.can_transition_to(DealStatus.ACTIVE)
    assert not DealStatus.PENDING_REVIEW.can_transition_to(DealStatus.EXPIRED)


def test_default_deal_status_follows_confidence():
    assert default_deal_status(0.75) == DealStatus.ACTIVE
    assert default_deal_status(0.9) == DealStatus.ACTIVE
    assert default_deal_status(0.5) == DealStatus.PENDING_REVIEW
    assert default_deal_status(None) == DealStatus.PENDING_REVIEW


def test_normalize_ids():
    assert normalize_ids([3, "4", 3, "x", None, True, 5.0]) == [3, 4, 5]
    assert normalize_ids(None) == []
