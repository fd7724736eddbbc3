import json

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse

from ballots import services
from ballots.models import AuditEvent, Ballot
from ballots.tests import verifier_doubles


class BallotViewsTestBase(TestCase):
    def setUp(self) -> None:
        user_model = get_user_model()
        self.alice = user_model.objects.create_user(username="alice", password="pw")
        self.bob = user_model.objects.create_user(username="bob", password="pw")
        self.ballot = services.create_ballot(
            question="Adopt the charter?",
            owner="alice",
            verifier_backend=verifier_doubles.PROOF_PREFIX,
        )

    def _post_json(self, url: str, payload: object):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")


@override_settings(PROOF_VERIFIER_BACKEND=verifier_doubles.ACCEPTING)
class BallotCreateViewTests(BallotViewsTestBase):
    def test_create_requires_authentication(self) -> None:
        resp = self._post_json(reverse("ballot-create"), {"question": "Q?"})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json(), {"ok": False, "error": "Authentication required."})

    def test_create_uses_caller_as_owner(self) -> None:
        self.client.force_login(self.bob)
        resp = self._post_json(reverse("ballot-create"), {"question": "New question?", "owner": "alice"})

        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["ballot"]["owner"], "bob")
        self.assertEqual(body["ballot"]["question"], "New question?")
        self.assertFalse(body["ballot"]["voting_is_open"])
        self.assertEqual(body["ballot"]["total_votes"], 0)

        ballot = Ballot.objects.get(pk=body["ballot"]["id"])
        self.assertEqual(ballot.verifier_backend, verifier_doubles.ACCEPTING)

    def test_create_rejects_blank_question_and_bad_body(self) -> None:
        self.client.force_login(self.bob)

        resp = self._post_json(reverse("ballot-create"), {"question": ""})
        self.assertEqual(resp.status_code, 400)

        resp = self._post_json(reverse("ballot-create"), ["not", "an", "object"])
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(reverse("ballot-create"), data="{broken", content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_create_rejects_get(self) -> None:
        self.client.force_login(self.bob)
        resp = self.client.get(reverse("ballot-create"))
        self.assertEqual(resp.status_code, 405)


class BallotAdminViewTests(BallotViewsTestBase):
    def test_owner_opens_and_closes_voting(self) -> None:
        self.client.force_login(self.alice)

        resp = self.client.post(reverse("ballot-open", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {"ok": True, "ballot_id": self.ballot.pk, "voting_is_open": True, "is_terminated": False},
        )

        resp = self.client.post(reverse("ballot-close", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["voting_is_open"])

    def test_non_owner_gets_403_and_attempt_is_audited(self) -> None:
        self.client.force_login(self.bob)

        resp = self.client.post(reverse("ballot-open", args=[self.ballot.pk]))

        self.assertEqual(resp.status_code, 403)
        self.assertFalse(resp.json()["ok"])
        self.ballot.refresh_from_db()
        self.assertFalse(self.ballot.voting_is_open)

        event = AuditEvent.objects.for_ballot(ballot=self.ballot).get()
        self.assertEqual(event.caller, "bob")
        self.assertFalse(event.was_successful)

    def test_admin_actions_require_authentication(self) -> None:
        for name in ("ballot-open", "ballot-close", "ballot-terminate"):
            with self.subTest(name=name):
                resp = self.client.post(reverse(name, args=[self.ballot.pk]))
                self.assertEqual(resp.status_code, 403)

    def test_terminate_hides_the_ballot(self) -> None:
        self.client.force_login(self.alice)

        resp = self.client.post(reverse("ballot-terminate", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["is_terminated"])

        self.assertEqual(self.client.get(reverse("ballot-detail", args=[self.ballot.pk])).status_code, 404)
        self.assertEqual(self.client.post(reverse("ballot-open", args=[self.ballot.pk])).status_code, 404)
        self.assertEqual(self.client.get(reverse("ballot-votes", args=[self.ballot.pk])).status_code, 404)
        self.assertEqual(self.client.get(reverse("ballot-sum-proof", args=[self.ballot.pk])).status_code, 404)

        resp = self.client.get(reverse("ballot-events", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["is_terminated"])
        self.assertEqual(resp.json()["events"][-1]["reason"], "Ballot terminated")

    def test_unknown_ballot_is_404(self) -> None:
        self.client.force_login(self.alice)
        self.assertEqual(self.client.get(reverse("ballot-detail", args=[999999])).status_code, 404)
        self.assertEqual(self.client.post(reverse("ballot-open", args=[999999])).status_code, 404)
        self.assertEqual(self.client.get(reverse("ballot-events", args=[999999])).status_code, 404)


class BallotVoteViewTests(BallotViewsTestBase):
    def setUp(self) -> None:
        super().setUp()
        services.open_voting(ballot=self.ballot, caller="alice")

    def _vote(self, payload: object):
        return self._post_json(reverse("ballot-vote", args=[self.ballot.pk]), payload)

    def test_accepted_vote(self) -> None:
        self.client.force_login(self.bob)

        resp = self._vote({"ciphertext": "C_b", "proof": "valid-b", "random": "00ff"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True, "reason": "Accepted vote", "total_votes": 1, "index": 0})
        vote = services.get_vote(ballot=self.ballot, index=0)
        self.assertEqual(vote.voter, "bob")
        self.assertEqual(bytes(vote.random), b"\x00\xff")

    def test_rejected_vote_is_a_200_result(self) -> None:
        self.client.force_login(self.bob)

        resp = self._vote({"ciphertext": "C_b", "proof": "forged", "random": ""})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {"ok": False, "reason": "Invalid zero knowledge proof", "total_votes": 0},
        )

    def test_vote_requires_authentication(self) -> None:
        resp = self._vote({"ciphertext": "C", "proof": "valid", "random": ""})
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(AuditEvent.objects.for_ballot(ballot=self.ballot).votes().exists())

    def test_malformed_vote_payload_is_400_and_not_audited(self) -> None:
        self.client.force_login(self.bob)

        for payload in (
            {"ciphertext": "C", "proof": "valid"},
            {"ciphertext": 1, "proof": "valid", "random": ""},
            {"ciphertext": "C", "proof": "valid", "random": "zz"},
            ["C", "valid", ""],
        ):
            with self.subTest(payload=payload):
                self.assertEqual(self._vote(payload).status_code, 400)

        self.assertFalse(AuditEvent.objects.for_ballot(ballot=self.ballot).votes().exists())

    def test_vote_listing_and_detail(self) -> None:
        self.client.force_login(self.bob)
        self._vote({"ciphertext": "C_b", "proof": "valid-b", "random": "01"})

        resp = self.client.get(reverse("ballot-votes", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["total_votes"], 1)
        self.assertEqual(resp.json()["votes"][0]["random"], "01")

        resp = self.client.get(reverse("ballot-vote-detail", args=[self.ballot.pk, 0]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "ok": True,
                "vote": {"index": 0, "voter": "bob", "ciphertext": "C_b", "proof": "valid-b", "random": "01"},
            },
        )

        resp = self.client.get(reverse("ballot-vote-detail", args=[self.ballot.pk, 1]))
        self.assertEqual(resp.status_code, 404)
        self.assertFalse(resp.json()["ok"])


class BallotSumProofViewTests(BallotViewsTestBase):
    def test_sum_proof_defaults_to_empty(self) -> None:
        resp = self.client.get(reverse("ballot-sum-proof", args=[self.ballot.pk]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True, "sum_proof": {"sum": 0, "ciphertext": "", "proof": ""}})

    def test_owner_publishes_sum_proof(self) -> None:
        self.client.force_login(self.alice)

        resp = self._post_json(
            reverse("ballot-sum-proof", args=[self.ballot.pk]),
            {"sum": 3, "ciphertext": "S", "proof": "SP"},
        )

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["sum_proof"], {"sum": 3, "ciphertext": "S", "proof": "SP"})
        self.ballot.refresh_from_db()
        self.assertEqual(services.get_sum_proof(ballot=self.ballot).sum, 3)

    def test_non_owner_cannot_publish(self) -> None:
        self.client.force_login(self.bob)

        resp = self._post_json(
            reverse("ballot-sum-proof", args=[self.ballot.pk]),
            {"sum": 3, "ciphertext": "S", "proof": "SP"},
        )

        self.assertEqual(resp.status_code, 403)
        self.ballot.refresh_from_db()
        self.assertIsNone(self.ballot.sum_proof_published_at)

    def test_non_integer_sum_is_400(self) -> None:
        self.client.force_login(self.alice)

        resp = self._post_json(
            reverse("ballot-sum-proof", args=[self.ballot.pk]),
            {"sum": "3", "ciphertext": "S", "proof": "SP"},
        )
        self.assertEqual(resp.status_code, 400)


class BallotEventsViewTests(BallotViewsTestBase):
    def test_events_are_public_and_ordered(self) -> None:
        services.submit_vote(ballot=self.ballot, caller="bob", ciphertext="c", proof="valid", random=b"")
        services.open_voting(ballot=self.ballot, caller="alice")

        resp = self.client.get(reverse("ballot-events", args=[self.ballot.pk]))

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["ballot_id"], self.ballot.pk)
        self.assertFalse(body["is_terminated"])
        self.assertEqual(
            [(e["kind"], e["caller"], e["was_successful"], e["reason"]) for e in body["events"]],
            [
                ("vote", "bob", False, "Voting is closed"),
                ("change", "alice", True, "Voting opened"),
            ],
        )
