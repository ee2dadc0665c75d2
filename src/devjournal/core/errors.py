"""Exceptions raised by the journal core."""


class JournalError(Exception):
    """Base class for journal errors."""


class AuthenticationError(JournalError):
    """Webhook delivery could not be authenticated."""

    status_code = 400


class MissingSignatureError(AuthenticationError):
    """The signature header was absent or empty."""

    status_code = 400

    def __init__(self) -> None:
        super().__init__("Missing signature")


class SignatureMismatchError(AuthenticationError):
    """The signature header did not match the body."""

    status_code = 403

    def __init__(self) -> None:
        super().__init__("Invalid signature")


class InvalidPayloadError(JournalError):
    """The webhook body is not a JSON object."""

    status_code = 400

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid payload: {reason}")


class TransportError(JournalError):
    """A git command failed to run or exited nonzero."""

    def __init__(self, command: list[str], output: str, returncode: int | None = None) -> None:
        self.command = command
        self.output = output
        self.returncode = returncode
        status = "could not start" if returncode is None else f"exited with {returncode}"
        super().__init__(f"{' '.join(command[:2])} {status}: {output.strip()}")


class WalkError(JournalError):
    """The content tree could not be enumerated."""

    def __init__(self, root, reason: str) -> None:
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot walk content directory {root}: {reason}")


class RegistryError(JournalError):
    """Base class for page registry errors."""


class UpsertError(RegistryError):
    """A single page row could not be written."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Failed to upsert page: {path}")


class PageNotFoundError(RegistryError):
    """No page is registered under the given path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Page not found: {path}")
