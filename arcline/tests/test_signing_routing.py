from dataclasses import dataclass, field
from itertools import count

import pytest

from arcline.core.signing.routing import (
    TERMINAL_STATUSES,
    all_required_signed,
    next_required_batch,
    pending_prior_signers,
    pick_next_required_request,
)

_ids = count(1)


@dataclass
class Req:
    sequence: int | None = 1
    required: bool | None = True
    status: str = "draft"
    id: int = field(default_factory=lambda: next(_ids))


def test_returns_none_for_empty_list():
    assert pick_next_required_request([]) is None


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES))
def test_returns_none_when_all_terminal(terminal):
    requests = [Req(sequence=1, status=terminal), Req(sequence=2, status="signed")]
    assert pick_next_required_request(requests) is None


def test_returns_lowest_sequence_non_terminal():
    a = Req(sequence=3)
    b = Req(sequence=2)
    c = Req(sequence=1, status="signed")
    assert pick_next_required_request([a, b, c]) is b


def test_ties_keep_input_order():
    first = Req(sequence=2, status="sent")
    second = Req(sequence=2)
    assert pick_next_required_request([first, second]) is first
    assert pick_next_required_request([second, first]) is second


def test_missing_sequence_counts_as_one():
    unsequenced = Req(sequence=None)
    later = Req(sequence=2)
    assert pick_next_required_request([later, unsequenced]) is unsequenced


def test_optional_signers_are_skipped():
    optional = Req(sequence=1, required=False)
    required = Req(sequence=2)
    assert pick_next_required_request([optional, required]) is required


def test_required_none_is_treated_as_required():
    legacy = Req(sequence=1, required=None)
    assert pick_next_required_request([legacy]) is legacy


def test_viewed_and_sent_are_not_terminal():
    viewed = Req(sequence=1, status="viewed")
    assert pick_next_required_request([viewed, Req(sequence=2)]) is viewed


def test_next_batch_groups_shared_sequence():
    a = Req(sequence=2)
    b = Req(sequence=2)
    c = Req(sequence=3)
    done = Req(sequence=1, status="signed")
    optional = Req(sequence=2, required=False)
    assert next_required_batch([c, a, done, optional, b]) == [a, b]
    assert next_required_batch([done]) == []


def test_pending_prior_signers():
    signed = Req(sequence=1, status="signed")
    waiting = Req(sequence=1, status="sent")
    optional = Req(sequence=1, required=False)
    me = Req(sequence=2, status="sent")
    requests = [signed, waiting, optional, me]

    assert pending_prior_signers(requests, 2) == [waiting]
    assert pending_prior_signers(requests, 1) == []


def test_all_required_signed():
    assert all_required_signed([Req(status="signed"), Req(required=False)])
    assert not all_required_signed([Req(status="signed"), Req(status="viewed")])
