from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ballots.models import AuditEvent, Ballot, Vote
from ballots.verifiers import load_proof_verifier, verify_proof_with_backend

logger = logging.getLogger(__name__)

REASON_VOTING_CLOSED = "Voting is closed"
REASON_ALREADY_VOTED = "Voter already voted"
REASON_INVALID_PROOF = "Invalid zero knowledge proof"
REASON_ACCEPTED = "Accepted vote"

REASON_VOTING_OPENED = "Voting opened"
REASON_VOTING_CLOSED_BY_OWNER = "Voting closed"
REASON_SUM_PROOF_PUBLISHED = "Sum proof published"
REASON_TERMINATED = "Ballot terminated"
REASON_NOT_OWNER = "Caller is not the owner"

# Storage bounds of Ballot.sum_proof_sum (BigIntegerField).
_SUM_MIN = -(2**63)
_SUM_MAX = 2**63 - 1


class BallotError(Exception):
    pass


class UnauthorizedError(BallotError):
    pass


class OutOfRangeError(BallotError):
    pass


class BallotTerminatedError(BallotError):
    pass


@dataclass(frozen=True)
class VoteResult:
    accepted: bool
    reason: str
    vote: Vote | None = None


@dataclass(frozen=True)
class SumProof:
    sum: int
    ciphertext: str
    proof: str


EMPTY_SUM_PROOF = SumProof(sum=0, ciphertext="", proof="")


def _emit_vote_event(*, ballot: Ballot, caller: str, was_successful: bool, reason: str) -> AuditEvent:
    return AuditEvent.objects.create(
        ballot=ballot,
        kind=AuditEvent.Kind.vote,
        caller=caller,
        was_successful=was_successful,
        reason=reason,
    )


def _emit_change_event(*, ballot: Ballot, caller: str, was_successful: bool, reason: str) -> AuditEvent:
    return AuditEvent.objects.create(
        ballot=ballot,
        kind=AuditEvent.Kind.change,
        caller=caller,
        was_successful=was_successful,
        reason=reason,
    )


def _ensure_not_terminated(ballot: Ballot) -> None:
    if ballot.is_terminated:
        raise BallotTerminatedError("ballot has been terminated")


def _lock_ballot(ballot: Ballot) -> Ballot:
    # State-changing operations on one ballot execute one at a time; the row
    # lock is what serializes them.
    locked = Ballot.objects.select_for_update().get(pk=ballot.pk)
    _ensure_not_terminated(locked)
    return locked


def _sync_instance(target: Ballot, source: Ballot, fields: list[str]) -> None:
    for name in fields:
        setattr(target, name, getattr(source, name))


@transaction.atomic
def create_ballot(*, question: str, owner: str, verifier_backend: str | None = None) -> Ballot:
    if not str(question or "").strip():
        raise BallotError("question is required")
    if not str(owner or "").strip():
        raise BallotError("owner is required")

    backend = str(verifier_backend or settings.PROOF_VERIFIER_BACKEND)
    try:
        load_proof_verifier(backend)
    except (ImportError, TypeError) as exc:
        raise BallotError(f"invalid verifier backend {backend!r}: {exc}") from exc

    ballot = Ballot.objects.create(question=question, owner=owner, verifier_backend=backend)
    logger.info(
        "ballots.ballot.created ballot_id=%s owner=%s verifier=%s",
        ballot.pk,
        owner,
        backend,
        extra={"event": "ballots.ballot.created", "component": "ballots", "ballot_id": ballot.pk},
    )
    return ballot


def require_owner(*, ballot: Ballot, caller: str) -> None:
    if caller != ballot.owner:
        raise UnauthorizedError("caller is not the ballot owner")


def _authorize_admin_action(*, ballot: Ballot, caller: str, action: str) -> None:
    """Run the owner check, recording a failed change event on rejection."""
    _ensure_not_terminated(ballot)
    # The caller's instance may predate a termination.
    if Ballot.objects.filter(pk=ballot.pk, is_terminated=True).exists():
        raise BallotTerminatedError("ballot has been terminated")
    try:
        require_owner(ballot=ballot, caller=caller)
    except UnauthorizedError:
        _emit_change_event(ballot=ballot, caller=caller, was_successful=False, reason=REASON_NOT_OWNER)
        logger.warning(
            "ballots.admin.unauthorized ballot_id=%s action=%s caller=%s",
            ballot.pk,
            action,
            caller,
            extra={"event": "ballots.admin.unauthorized", "component": "ballots", "outcome": "rejected"},
        )
        raise


def _set_voting_phase(*, ballot: Ballot, caller: str, is_open: bool) -> None:
    action = "open" if is_open else "close"
    _authorize_admin_action(ballot=ballot, caller=caller, action=action)

    with transaction.atomic():
        locked = _lock_ballot(ballot)
        locked.voting_is_open = is_open
        locked.save(update_fields=["voting_is_open", "updated_at"])
        _emit_change_event(
            ballot=locked,
            caller=caller,
            was_successful=True,
            reason=REASON_VOTING_OPENED if is_open else REASON_VOTING_CLOSED_BY_OWNER,
        )

    _sync_instance(ballot, locked, ["voting_is_open", "updated_at"])
    logger.info(
        "ballots.phase.changed ballot_id=%s voting_is_open=%s caller=%s",
        ballot.pk,
        is_open,
        caller,
        extra={"event": "ballots.phase.changed", "component": "ballots", "outcome": action},
    )


def open_voting(*, ballot: Ballot, caller: str) -> None:
    _set_voting_phase(ballot=ballot, caller=caller, is_open=True)


def close_voting(*, ballot: Ballot, caller: str) -> None:
    _set_voting_phase(ballot=ballot, caller=caller, is_open=False)


def terminate_ballot(*, ballot: Ballot, caller: str) -> None:
    _authorize_admin_action(ballot=ballot, caller=caller, action="terminate")

    with transaction.atomic():
        locked = _lock_ballot(ballot)
        locked.voting_is_open = False
        locked.is_terminated = True
        locked.terminated_at = timezone.now()
        locked.save(update_fields=["voting_is_open", "is_terminated", "terminated_at", "updated_at"])
        _emit_change_event(ballot=locked, caller=caller, was_successful=True, reason=REASON_TERMINATED)

    _sync_instance(ballot, locked, ["voting_is_open", "is_terminated", "terminated_at", "updated_at"])
    logger.info(
        "ballots.ballot.terminated ballot_id=%s caller=%s",
        ballot.pk,
        caller,
        extra={"event": "ballots.ballot.terminated", "component": "ballots", "outcome": "terminated"},
    )


def set_sum_proof(*, ballot: Ballot, caller: str, sum: int, ciphertext: str, proof: str) -> None:
    """Publish the aggregate result, replacing any previous one.

    The sum is not checked against the ledger; its correctness is what the
    published proof attests to.
    """
    _authorize_admin_action(ballot=ballot, caller=caller, action="set_sum_proof")

    if isinstance(sum, bool) or not isinstance(sum, int):
        raise BallotError("sum must be an integer")
    if not _SUM_MIN <= sum <= _SUM_MAX:
        raise BallotError("sum is out of range")

    with transaction.atomic():
        locked = _lock_ballot(ballot)
        locked.sum_proof_sum = sum
        locked.sum_proof_ciphertext = str(ciphertext)
        locked.sum_proof_proof = str(proof)
        locked.sum_proof_published_at = timezone.now()
        locked.save(
            update_fields=[
                "sum_proof_sum",
                "sum_proof_ciphertext",
                "sum_proof_proof",
                "sum_proof_published_at",
                "updated_at",
            ]
        )
        _emit_change_event(ballot=locked, caller=caller, was_successful=True, reason=REASON_SUM_PROOF_PUBLISHED)

    _sync_instance(
        ballot,
        locked,
        ["sum_proof_sum", "sum_proof_ciphertext", "sum_proof_proof", "sum_proof_published_at", "updated_at"],
    )
    logger.info(
        "ballots.sum_proof.published ballot_id=%s sum=%d caller=%s",
        ballot.pk,
        sum,
        caller,
        extra={"event": "ballots.sum_proof.published", "component": "ballots", "outcome": "published"},
    )


def get_sum_proof(*, ballot: Ballot) -> SumProof:
    _ensure_not_terminated(ballot)
    if ballot.sum_proof_published_at is None:
        return EMPTY_SUM_PROOF
    return SumProof(
        sum=int(ballot.sum_proof_sum),
        ciphertext=str(ballot.sum_proof_ciphertext),
        proof=str(ballot.sum_proof_proof),
    )


def _log_vote_outcome(*, ballot: Ballot, caller: str, result: VoteResult) -> None:
    logger.info(
        "ballots.vote.%s ballot_id=%s caller=%s reason=%r",
        "accepted" if result.accepted else "rejected",
        ballot.pk,
        caller,
        result.reason,
        extra={
            "event": "ballots.vote.submitted",
            "component": "ballots",
            "outcome": "accepted" if result.accepted else "rejected",
            "ballot_id": ballot.pk,
        },
    )


def _admission_rejection(*, ballot: Ballot, caller: str) -> VoteResult | None:
    if not ballot.voting_is_open:
        return VoteResult(accepted=False, reason=REASON_VOTING_CLOSED)
    if Vote.objects.filter(ballot=ballot, voter=caller).exists():
        return VoteResult(accepted=False, reason=REASON_ALREADY_VOTED)
    return None


def submit_vote(*, ballot: Ballot, caller: str, ciphertext: str, proof: str, random: bytes) -> VoteResult:
    """Admit or reject one vote; exactly one vote event is emitted either way.

    Gates run in order: phase, then uniqueness, then proof verification. The
    verifier is consulted outside any transaction so a slow backend never holds
    the ballot row lock; the phase and uniqueness gates are re-checked under
    the lock before the vote is appended.
    """
    current = Ballot.objects.get(pk=ballot.pk)
    _ensure_not_terminated(current)

    result = _admission_rejection(ballot=current, caller=caller)
    if result is None and not verify_proof_with_backend(backend=current.verifier_backend, proof=proof):
        result = VoteResult(accepted=False, reason=REASON_INVALID_PROOF)

    with transaction.atomic():
        locked = _lock_ballot(ballot)
        if result is None:
            result = _admission_rejection(ballot=locked, caller=caller)
        if result is None:
            vote = Vote.objects.create(
                ballot=locked,
                position=locked.nr_voters,
                voter=caller,
                ciphertext=ciphertext,
                proof=proof,
                random=bytes(random),
            )
            locked.nr_voters += 1
            locked.save(update_fields=["nr_voters", "updated_at"])
            result = VoteResult(accepted=True, reason=REASON_ACCEPTED, vote=vote)
        _emit_vote_event(ballot=locked, caller=caller, was_successful=result.accepted, reason=result.reason)

    _sync_instance(ballot, locked, ["voting_is_open", "nr_voters", "updated_at"])
    _log_vote_outcome(ballot=locked, caller=caller, result=result)
    return result


def get_vote(*, ballot: Ballot, index: int) -> Vote:
    _ensure_not_terminated(ballot)
    if index < 0 or index >= ballot.nr_voters:
        raise OutOfRangeError(f"vote index {index} out of range (total votes: {ballot.nr_voters})")
    vote = Vote.objects.filter(ballot=ballot, position=index).first()
    if vote is None:
        raise OutOfRangeError(f"vote index {index} out of range (total votes: {ballot.nr_voters})")
    return vote


def get_total_votes(*, ballot: Ballot) -> int:
    _ensure_not_terminated(ballot)
    return int(ballot.nr_voters)


def get_proposed_question(*, ballot: Ballot) -> str:
    _ensure_not_terminated(ballot)
    return str(ballot.question)


def list_events(*, ballot: Ballot, kind: str | None = None) -> list[AuditEvent]:
    """Return the ballot's audit stream in emission order.

    Readable by anyone and still available after termination.
    """
    qs = AuditEvent.objects.for_ballot(ballot=ballot)
    if kind is not None:
        if kind not in AuditEvent.Kind.values:
            raise BallotError(f"unknown event kind {kind!r}")
        qs = qs.filter(kind=kind)
    return list(qs)


def build_public_votes_export(*, ballot: Ballot) -> dict[str, object]:
    _ensure_not_terminated(ballot)
    votes_payload: list[dict[str, object]] = []
    for vote in Vote.objects.for_ballot(ballot=ballot).only(
        "position", "voter", "ciphertext", "proof", "random"
    ):
        votes_payload.append(
            {
                "index": int(vote.position),
                "voter": str(vote.voter),
                "ciphertext": str(vote.ciphertext),
                "proof": str(vote.proof),
                "random": bytes(vote.random).hex(),
            }
        )

    sum_proof = get_sum_proof(ballot=ballot)
    return {
        "ballot_id": ballot.pk,
        "question": str(ballot.question),
        "total_votes": int(ballot.nr_voters),
        "votes": votes_payload,
        "sum_proof": {
            "sum": sum_proof.sum,
            "ciphertext": sum_proof.ciphertext,
            "proof": sum_proof.proof,
            "published_at": (
                ballot.sum_proof_published_at.isoformat() if ballot.sum_proof_published_at is not None else None
            ),
        },
    }


def build_public_audit_export(*, ballot: Ballot) -> dict[str, object]:
    events_payload: list[dict[str, object]] = []
    for event in list_events(ballot=ballot):
        events_payload.append(
            {
                "timestamp": event.timestamp.isoformat(),
                "kind": str(event.kind),
                "caller": str(event.caller),
                "was_successful": bool(event.was_successful),
                "reason": str(event.reason),
            }
        )

    return {
        "ballot_id": ballot.pk,
        "is_terminated": bool(ballot.is_terminated),
        "events": events_payload,
    }
