"""Signer ordering for sequential co-signing.

Requests carry a ``sequence``; everyone sharing the lowest outstanding
sequence is asked to sign at the same time, and the next sequence only opens
once every required signer before it has signed. These helpers are pure so
they work the same on ORM rows and plain objects.
"""

from collections.abc import Iterable, Sequence
from typing import Protocol, TypeVar

from arcline.common.enums import SigningRequestStatus

TERMINAL_STATUSES = frozenset(
    {
        SigningRequestStatus.SIGNED.value,
        SigningRequestStatus.VOIDED.value,
        SigningRequestStatus.EXPIRED.value,
    }
)


class RoutableRequest(Protocol):
    sequence: int | None
    required: bool | None
    status: str


R = TypeVar("R", bound=RoutableRequest)


def effective_sequence(request: RoutableRequest) -> int:
    return request.sequence if request.sequence is not None else 1


def is_required(request: RoutableRequest) -> bool:
    return request.required is not False


def is_outstanding(request: RoutableRequest) -> bool:
    return is_required(request) and request.status not in TERMINAL_STATUSES


def pick_next_required_request(requests: Iterable[R]) -> R | None:
    # sorted() is stable, so equal sequences keep their incoming order
    for request in sorted(requests, key=effective_sequence):
        if is_outstanding(request):
            return request
    return None


def next_required_batch(requests: Sequence[R]) -> list[R]:
    head = pick_next_required_request(requests)
    if head is None:
        return []
    sequence = effective_sequence(head)
    return [
        r
        for r in sorted(requests, key=effective_sequence)
        if effective_sequence(r) == sequence and is_outstanding(r)
    ]


def pending_prior_signers(requests: Iterable[R], sequence: int) -> list[R]:
    return [
        r
        for r in requests
        if is_required(r)
        and effective_sequence(r) < sequence
        and r.status != SigningRequestStatus.SIGNED.value
    ]


def all_required_signed(requests: Iterable[R]) -> bool:
    return all(r.status == SigningRequestStatus.SIGNED.value for r in requests if is_required(r))
