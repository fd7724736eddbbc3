from __future__ import annotations

from django.conf import settings
from django.db import models


class BallotQuerySet(models.QuerySet["Ballot"]):
    def active(self) -> BallotQuerySet:
        """Exclude terminated ballots."""
        return self.filter(is_terminated=False)


def _default_verifier_backend() -> str:
    return str(settings.PROOF_VERIFIER_BACKEND)


class Ballot(models.Model):
    """A single-question ballot: phase, vote ledger head and the published sum proof."""

    # Fields that may only be written when the row is created.
    IMMUTABLE_FIELDS: tuple[str, ...] = ("question", "owner", "verifier_backend")

    question = models.TextField()
    owner = models.CharField(max_length=255, db_index=True)
    voting_is_open = models.BooleanField(default=False)

    # Kept equal to the number of Vote rows by submit_vote.
    nr_voters = models.PositiveIntegerField(default=0)

    # Dotted path of the ProofVerifier implementation chosen at construction.
    verifier_backend = models.CharField(max_length=255, default=_default_verifier_backend)

    sum_proof_sum = models.BigIntegerField(default=0)
    sum_proof_ciphertext = models.TextField(blank=True, default="")
    sum_proof_proof = models.TextField(blank=True, default="")
    sum_proof_published_at = models.DateTimeField(blank=True, null=True)

    is_terminated = models.BooleanField(default=False)
    terminated_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BallotQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "id")

    def __str__(self) -> str:
        return f"ballot:{self.pk}:{self.question[:40]}"

    def save(self, *args, **kwargs) -> None:
        if self.pk is not None and not self._state.adding:
            persisted = (
                Ballot.objects.filter(pk=self.pk)
                .values(*self.IMMUTABLE_FIELDS)
                .first()
            )
            if persisted is not None:
                changed = sorted(
                    name for name in self.IMMUTABLE_FIELDS if persisted[name] != getattr(self, name)
                )
                if changed:
                    raise ValueError(f"Ballot fields are immutable after construction: {', '.join(changed)}")
        super().save(*args, **kwargs)


class VoteQuerySet(models.QuerySet["Vote"]):
    def for_ballot(self, *, ballot: Ballot) -> VoteQuerySet:
        return self.filter(ballot=ballot).order_by("position")


class Vote(models.Model):
    ballot = models.ForeignKey(Ballot, on_delete=models.PROTECT, related_name="votes")

    # 0-based index in the ballot's ledger.
    position = models.PositiveIntegerField()
    voter = models.CharField(max_length=255)
    ciphertext = models.TextField()
    proof = models.TextField()

    # Opaque to this application: stored, never interpreted.
    random = models.BinaryField()

    created_at = models.DateTimeField(auto_now_add=True)

    objects = VoteQuerySet.as_manager()

    class Meta:
        ordering = ("ballot", "position")
        constraints = [
            models.UniqueConstraint(
                fields=["ballot", "voter"],
                name="uniq_vote_ballot_voter",
            ),
            models.UniqueConstraint(
                fields=["ballot", "position"],
                name="uniq_vote_ballot_position",
            ),
        ]

    def __str__(self) -> str:
        return f"vote:{self.ballot_id}:{self.position}"

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ValueError("Votes are immutable once appended")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Votes cannot be retracted")


class AuditEventQuerySet(models.QuerySet["AuditEvent"]):
    def for_ballot(self, *, ballot: Ballot) -> AuditEventQuerySet:
        return self.filter(ballot=ballot).order_by("timestamp", "id")

    def votes(self) -> AuditEventQuerySet:
        return self.filter(kind=AuditEvent.Kind.vote)

    def changes(self) -> AuditEventQuerySet:
        return self.filter(kind=AuditEvent.Kind.change)


class AuditEvent(models.Model):
    class Kind(models.TextChoices):
        vote = "vote", "Vote"
        change = "change", "Change"

    ballot = models.ForeignKey(Ballot, on_delete=models.PROTECT, related_name="events")
    timestamp = models.DateTimeField(auto_now_add=True)
    kind = models.CharField(max_length=16, choices=Kind.choices)
    caller = models.CharField(max_length=255)
    was_successful = models.BooleanField()
    reason = models.CharField(max_length=255)

    objects = AuditEventQuerySet.as_manager()

    class Meta:
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["ballot", "timestamp"], name="event_ballot_ts"),
            models.Index(fields=["ballot", "kind"], name="event_ballot_kind"),
        ]

    def __str__(self) -> str:
        outcome = "ok" if self.was_successful else "rejected"
        return f"{self.ballot_id}:{self.kind}:{outcome}"

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ValueError("Audit events are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit events are append-only")
