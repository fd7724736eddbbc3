from django.contrib import admin
from django.http import HttpRequest

from ballots.models import AuditEvent, Ballot, Vote


class _ReadOnlyAdmin(admin.ModelAdmin):
    """Ballot state changes only through ballots.services; the admin is for inspection."""

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(self, request: HttpRequest, obj=None) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(Ballot)
class BallotAdmin(_ReadOnlyAdmin):
    list_display = ("id", "question", "owner", "voting_is_open", "nr_voters", "is_terminated", "created_at")
    list_filter = ("voting_is_open", "is_terminated")
    search_fields = ("question", "owner")


@admin.register(Vote)
class VoteAdmin(_ReadOnlyAdmin):
    list_display = ("ballot", "position", "voter", "created_at")
    list_filter = ("ballot",)
    search_fields = ("voter",)


@admin.register(AuditEvent)
class AuditEventAdmin(_ReadOnlyAdmin):
    list_display = ("ballot", "timestamp", "kind", "caller", "was_successful", "reason")
    list_filter = ("kind", "was_successful")
    search_fields = ("caller", "reason")
