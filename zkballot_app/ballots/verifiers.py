"""Zero-knowledge proof verification gateway.

This application performs no cryptography. Proofs are handed to a verifier
backend chosen when the ballot is created; ``verify_proof`` is the only
entry point the vote admission flow uses and it fails closed: a backend that
raises, times out or answers with anything other than ``True`` rejects the
proof.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import requests
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class ProofVerifierUnavailableError(RuntimeError):
    """Raised when a verifier backend cannot produce an answer."""


@runtime_checkable
class ProofVerifier(Protocol):
    def verify(self, proof: str) -> bool: ...


def load_proof_verifier(dotted_path: str) -> ProofVerifier:
    """Import and instantiate the verifier backend at ``dotted_path``."""
    backend_cls = import_string(dotted_path)
    verifier = backend_cls()
    if not isinstance(verifier, ProofVerifier):
        raise TypeError(f"{dotted_path} does not implement verify(proof)")
    return verifier


def verify_proof(*, verifier: ProofVerifier, proof: str) -> bool:
    try:
        result = verifier.verify(proof)
    except Exception:
        logger.exception(
            "ballots.verifier.failed backend=%s",
            type(verifier).__name__,
            extra={"event": "ballots.verifier.failed", "component": "verifier", "outcome": "fail_closed"},
        )
        return False

    if result is not True:
        if result is not False:
            logger.warning(
                "ballots.verifier.non_boolean backend=%s result_type=%s",
                type(verifier).__name__,
                type(result).__name__,
                extra={"event": "ballots.verifier.non_boolean", "component": "verifier", "outcome": "fail_closed"},
            )
        return False
    return True


def verify_proof_with_backend(*, backend: str, proof: str) -> bool:
    """Like ``verify_proof``, but a backend that cannot be loaded also rejects."""
    try:
        verifier = load_proof_verifier(backend)
    except Exception:
        logger.exception(
            "ballots.verifier.unavailable backend=%s",
            backend,
            extra={"event": "ballots.verifier.unavailable", "component": "verifier", "outcome": "fail_closed"},
        )
        return False
    return verify_proof(verifier=verifier, proof=proof)


class HttpProofVerifier:
    """Verifier backend that delegates to an HTTP verification service.

    The service receives ``{"proof": "<proof>"}`` and must answer with a JSON
    object carrying a boolean ``valid`` member. Verification is idempotent, so
    connection errors and timeouts are retried; HTTP errors are not.
    """

    def __init__(
        self,
        *,
        endpoint: str | None = None,
        timeout_seconds: float | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.endpoint = str(endpoint or settings.PROOF_VERIFIER_ENDPOINT)
        self.timeout_seconds = float(
            timeout_seconds if timeout_seconds is not None else settings.PROOF_VERIFIER_TIMEOUT
        )
        self.max_attempts = max(1, int(max_attempts if max_attempts is not None else settings.PROOF_VERIFIER_MAX_ATTEMPTS))

    def verify(self, proof: str) -> bool:
        payload: Any = None
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = requests.post(
                    self.endpoint,
                    json={"proof": proof},
                    headers={"User-Agent": "zkballot-verifier/1.0"},
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                payload = response.json()
                break
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = exc
                logger.warning(
                    "Proof verifier attempt failed endpoint=%s attempt=%d/%d error=%s",
                    self.endpoint,
                    attempt,
                    self.max_attempts,
                    exc,
                )
            except (requests.RequestException, ValueError) as exc:
                raise ProofVerifierUnavailableError(f"proof verifier request failed: {exc}") from exc

        if payload is None:
            raise ProofVerifierUnavailableError(
                f"proof verifier unreachable after {self.max_attempts} attempts: {last_error}"
            )

        valid = payload.get("valid") if isinstance(payload, dict) else None
        if not isinstance(valid, bool):
            raise ProofVerifierUnavailableError("proof verifier answered without a boolean 'valid' member")
        return valid
