"""GitHub push webhook authentication and dispatch."""

import hashlib
import hmac
import json
import logging
from typing import Callable, Iterable

from devjournal.core.errors import (
    AuthenticationError,
    InvalidPayloadError,
    MissingSignatureError,
    SignatureMismatchError,
)
from devjournal.core.models import WebhookOutcome

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="
DEFAULT_TRACKED_REFS = ("refs/heads/main", "refs/heads/master")


def compute_signature(secret: str | bytes, body: bytes) -> str:
    """Signature GitHub sends for ``body``: ``sha256=`` plus the hex HMAC."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    digest = hmac.new(secret, body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: str | bytes, body: bytes, signature: str | None) -> None:
    """Check a signature header against the raw body.

    Raises:
        MissingSignatureError: header absent or empty.
        SignatureMismatchError: header does not match.
    """
    if not signature:
        raise MissingSignatureError()
    expected = compute_signature(secret, body)
    if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        raise SignatureMismatchError()


def parse_ref(body: bytes) -> str | None:
    """Extract the pushed ref from a push event body.

    Returns None when the payload has no string ``ref``.
    """
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayloadError(str(exc)) from exc
    if not isinstance(payload, dict):
        raise InvalidPayloadError("expected a JSON object")
    ref = payload.get("ref")
    return ref if isinstance(ref, str) else None


class WebhookAuthenticator:
    """Turns a raw delivery into a response decision.

    ``schedule`` is called for tracked pushes and must return immediately;
    whatever it returns is attached to the outcome as ``completion``.
    """

    def __init__(
        self,
        secret: str | bytes,
        schedule: Callable[[], object],
        tracked_refs: Iterable[str] = DEFAULT_TRACKED_REFS,
    ):
        self._secret = secret
        self._schedule = schedule
        self.tracked_refs = frozenset(tracked_refs)

    def handle_delivery(self, body: bytes, signature: str | None) -> WebhookOutcome:
        try:
            verify_signature(self._secret, body, signature)
            ref = parse_ref(body)
        except (AuthenticationError, InvalidPayloadError) as exc:
            logger.warning("Rejected webhook delivery: %s", exc)
            return WebhookOutcome(status_code=exc.status_code, message=str(exc))

        if ref not in self.tracked_refs:
            logger.info("Ignoring push to untracked ref %s", ref)
            return WebhookOutcome(
                status_code=200,
                message="Payload received, but not for a tracked branch. Ignoring.",
            )

        logger.info("Webhook validated for %s. Triggering content update...", ref)
        completion = self._schedule()
        return WebhookOutcome(
            status_code=202,
            message="Webhook accepted. Processing update.",
            scheduled=True,
            completion=completion,
        )
