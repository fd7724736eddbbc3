from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models

import ballots.models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Ballot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("question", models.TextField()),
                ("owner", models.CharField(db_index=True, max_length=255)),
                ("voting_is_open", models.BooleanField(default=False)),
                ("nr_voters", models.PositiveIntegerField(default=0)),
                (
                    "verifier_backend",
                    models.CharField(default=ballots.models._default_verifier_backend, max_length=255),
                ),
                ("sum_proof_sum", models.BigIntegerField(default=0)),
                ("sum_proof_ciphertext", models.TextField(blank=True, default="")),
                ("sum_proof_proof", models.TextField(blank=True, default="")),
                ("sum_proof_published_at", models.DateTimeField(blank=True, null=True)),
                ("is_terminated", models.BooleanField(default=False)),
                ("terminated_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("-created_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="Vote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField()),
                ("voter", models.CharField(max_length=255)),
                ("ciphertext", models.TextField()),
                ("proof", models.TextField()),
                ("random", models.BinaryField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "ballot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="ballots.ballot",
                    ),
                ),
            ],
            options={
                "ordering": ("ballot", "position"),
                "constraints": [
                    models.UniqueConstraint(fields=("ballot", "voter"), name="uniq_vote_ballot_voter"),
                    models.UniqueConstraint(fields=("ballot", "position"), name="uniq_vote_ballot_position"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                ("kind", models.CharField(choices=[("vote", "Vote"), ("change", "Change")], max_length=16)),
                ("caller", models.CharField(max_length=255)),
                ("was_successful", models.BooleanField()),
                ("reason", models.CharField(max_length=255)),
                (
                    "ballot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="events",
                        to="ballots.ballot",
                    ),
                ),
            ],
            options={
                "ordering": ("timestamp", "id"),
                "indexes": [
                    models.Index(fields=["ballot", "timestamp"], name="event_ballot_ts"),
                    models.Index(fields=["ballot", "kind"], name="event_ballot_kind"),
                ],
            },
        ),
    ]
