import json
from pathlib import Path
from typing import override

from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from ballots.models import Ballot
from ballots.services import BallotTerminatedError, build_public_audit_export, build_public_votes_export


class Command(BaseCommand):
    help = "Write the public vote ledger or audit event export of a ballot as JSON."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument("ballot_id", type=int)
        parser.add_argument(
            "--kind",
            choices=("votes", "audit"),
            default="votes",
            help="Which export to produce (default: votes).",
        )
        parser.add_argument(
            "--output",
            default="",
            help="Write to this file instead of stdout.",
        )

    @override
    def handle(self, *args, **options) -> None:
        ballot_id: int = int(options["ballot_id"])
        kind: str = str(options["kind"])
        output: str = str(options.get("output") or "").strip()

        ballot = Ballot.objects.filter(pk=ballot_id).first()
        if ballot is None:
            raise CommandError(f"Ballot {ballot_id} does not exist")

        if kind == "audit":
            payload = build_public_audit_export(ballot=ballot)
        else:
            try:
                payload = build_public_votes_export(ballot=ballot)
            except BallotTerminatedError as exc:
                raise CommandError(f"Ballot {ballot_id} has been terminated; only --kind audit is available") from exc

        content = json.dumps(payload, cls=DjangoJSONEncoder, sort_keys=True, indent=2)
        if not output:
            self.stdout.write(content)
            return

        Path(output).write_text(content + "\n", encoding="utf-8")
        self.stdout.write(f"Wrote {kind} export for ballot {ballot_id} to {output}")
