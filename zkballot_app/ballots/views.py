"""JSON endpoints for ballots.

The caller identity of every operation is the authenticated Django user.
Vote rejections are results (200 with ``ok: false``); access-control and
range failures map to 403 and 404.
"""

import json
from typing import Any

from django.http import Http404, HttpRequest, JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from ballots import services
from ballots.models import Ballot, Vote
from ballots.services import BallotError, BallotTerminatedError, OutOfRangeError, UnauthorizedError


def _caller(request: HttpRequest) -> str:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return ""
    return str(user.get_username() or "").strip()


def _authentication_required() -> JsonResponse:
    return JsonResponse({"ok": False, "error": "Authentication required."}, status=403)


def _parse_json_body(request: HttpRequest) -> dict[str, Any]:
    raw = request.body.decode("utf-8") if request.body else "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    return data


def _get_active_ballot(ballot_id: int) -> Ballot:
    """Load a non-terminated ballot by PK or raise Http404."""
    ballot = Ballot.objects.active().filter(pk=ballot_id).first()
    if ballot is None:
        raise Http404
    return ballot


def _ballot_summary(ballot: Ballot) -> dict[str, object]:
    return {
        "id": ballot.pk,
        "question": services.get_proposed_question(ballot=ballot),
        "owner": ballot.owner,
        "voting_is_open": bool(ballot.voting_is_open),
        "total_votes": services.get_total_votes(ballot=ballot),
    }


def _vote_payload(vote: Vote) -> dict[str, object]:
    return {
        "index": int(vote.position),
        "voter": vote.voter,
        "ciphertext": vote.ciphertext,
        "proof": vote.proof,
        "random": bytes(vote.random).hex(),
    }


def _run_admin_action(request: HttpRequest, ballot_id: int, action) -> JsonResponse:
    caller = _caller(request)
    if not caller:
        return _authentication_required()

    ballot = _get_active_ballot(ballot_id)
    try:
        action(ballot=ballot, caller=caller)
    except UnauthorizedError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=403)
    except BallotTerminatedError:
        raise Http404
    return JsonResponse(
        {
            "ok": True,
            "ballot_id": ballot.pk,
            "voting_is_open": bool(ballot.voting_is_open),
            "is_terminated": bool(ballot.is_terminated),
        }
    )


@require_POST
def ballot_create(request: HttpRequest) -> JsonResponse:
    caller = _caller(request)
    if not caller:
        return _authentication_required()

    try:
        data = _parse_json_body(request)
    except (ValueError, UnicodeDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    try:
        ballot = services.create_ballot(question=str(data.get("question") or ""), owner=caller)
    except BallotError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    return JsonResponse({"ok": True, "ballot": _ballot_summary(ballot)}, status=201)


@require_GET
def ballot_detail(request: HttpRequest, ballot_id: int) -> JsonResponse:
    ballot = _get_active_ballot(ballot_id)
    return JsonResponse({"ok": True, "ballot": _ballot_summary(ballot)})


@require_POST
def ballot_open(request: HttpRequest, ballot_id: int) -> JsonResponse:
    return _run_admin_action(request, ballot_id, services.open_voting)


@require_POST
def ballot_close(request: HttpRequest, ballot_id: int) -> JsonResponse:
    return _run_admin_action(request, ballot_id, services.close_voting)


@require_POST
def ballot_terminate(request: HttpRequest, ballot_id: int) -> JsonResponse:
    return _run_admin_action(request, ballot_id, services.terminate_ballot)


@require_POST
def ballot_vote(request: HttpRequest, ballot_id: int) -> JsonResponse:
    caller = _caller(request)
    if not caller:
        return _authentication_required()

    ballot = _get_active_ballot(ballot_id)

    try:
        data = _parse_json_body(request)
        ciphertext = data.get("ciphertext")
        proof = data.get("proof")
        random_hex = data.get("random")
        if not isinstance(ciphertext, str) or not isinstance(proof, str) or not isinstance(random_hex, str):
            raise ValueError("ciphertext, proof and random must be strings")
        random = bytes.fromhex(random_hex)
    except (ValueError, UnicodeDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    try:
        result = services.submit_vote(
            ballot=ballot,
            caller=caller,
            ciphertext=ciphertext,
            proof=proof,
            random=random,
        )
    except BallotTerminatedError:
        raise Http404

    body: dict[str, object] = {
        "ok": result.accepted,
        "reason": result.reason,
        "total_votes": int(ballot.nr_voters),
    }
    if result.vote is not None:
        body["index"] = int(result.vote.position)
    return JsonResponse(body)


@require_GET
def ballot_votes(request: HttpRequest, ballot_id: int) -> JsonResponse:
    ballot = _get_active_ballot(ballot_id)
    return JsonResponse(services.build_public_votes_export(ballot=ballot))


@require_GET
def ballot_vote_detail(request: HttpRequest, ballot_id: int, index: int) -> JsonResponse:
    ballot = _get_active_ballot(ballot_id)
    try:
        vote = services.get_vote(ballot=ballot, index=index)
    except OutOfRangeError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=404)
    return JsonResponse({"ok": True, "vote": _vote_payload(vote)})


@require_http_methods(["GET", "POST"])
def ballot_sum_proof(request: HttpRequest, ballot_id: int) -> JsonResponse:
    ballot = _get_active_ballot(ballot_id)

    if request.method == "POST":
        caller = _caller(request)
        if not caller:
            return _authentication_required()

        try:
            data = _parse_json_body(request)
        except (ValueError, UnicodeDecodeError) as exc:
            return JsonResponse({"ok": False, "error": str(exc)}, status=400)

        try:
            services.set_sum_proof(
                ballot=ballot,
                caller=caller,
                sum=data.get("sum"),
                ciphertext=str(data.get("ciphertext") or ""),
                proof=str(data.get("proof") or ""),
            )
        except UnauthorizedError as exc:
            return JsonResponse({"ok": False, "error": str(exc)}, status=403)
        except BallotTerminatedError:
            raise Http404
        except BallotError as exc:
            return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    sum_proof = services.get_sum_proof(ballot=ballot)
    return JsonResponse(
        {
            "ok": True,
            "sum_proof": {
                "sum": sum_proof.sum,
                "ciphertext": sum_proof.ciphertext,
                "proof": sum_proof.proof,
            },
        }
    )


@require_GET
def ballot_events(request: HttpRequest, ballot_id: int) -> JsonResponse:
    # Terminated ballots keep a readable audit trail.
    ballot = Ballot.objects.filter(pk=ballot_id).first()
    if ballot is None:
        raise Http404
    return JsonResponse(services.build_public_audit_export(ballot=ballot))
