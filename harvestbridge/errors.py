from __future__ import annotations
from typing import Iterable, List


class BridgeError(Exception):
    """
    Base class for every error the bridge surfaces to its callers.

    status_code is the HTTP status the gateway answers with when the error
    escapes a request handler.
    """

    status_code = 500


# ---------------------------------------------------------------------------
# Request errors (caller supplied something the bridge cannot serve)
# ---------------------------------------------------------------------------

class InvalidStructureError(BridgeError):
    status_code = 400

    def __init__(self, structure: str) -> None:
        super().__init__(f"Invalid Structure: '{structure}' is not a valid structure")
        self.structure = structure


class UnresolvedParameterError(BridgeError):
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Unable to resolve query parameter: '{name}' was not supplied")
        self.name = name


class DuplicateParameterError(BridgeError):
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Query parameter '{name}' appears more than once")
        self.name = name


class MissingRequiredParameterError(BridgeError):
    status_code = 400

    def __init__(self, structure: str, operation: str, missing: Iterable[str]) -> None:
        self.structure = structure
        self.operation = operation
        self.missing: List[str] = list(missing)
        super().__init__(
            f"{operation} on '{structure}' requires parameter(s): "
            + ", ".join(self.missing)
        )


class UnsupportedOperationError(BridgeError):
    status_code = 400

    def __init__(self, structure: str, operation: str) -> None:
        super().__init__(f"'{structure}' does not support {operation}")
        self.structure = structure
        self.operation = operation


class SortUnsupportedError(BridgeError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Sort order is not supported by the Harvest bridge")


# ---------------------------------------------------------------------------
# Upstream errors (Harvest answered, but not with something usable)
# ---------------------------------------------------------------------------

class MalformedResponseError(BridgeError):
    status_code = 502


class ResourceNotFoundError(BridgeError):
    status_code = 404

    def __init__(self, url: str) -> None:
        super().__init__(f"404 Page not found at {url}")
        self.url = url


class AuthenticationError(BridgeError):
    status_code = 502

    def __init__(self, url: str) -> None:
        super().__init__(f"401 Access token or account id rejected for {url}")
        self.url = url


class RemoteError(BridgeError):
    status_code = 502

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Harvest returned HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body


class TransportError(BridgeError):
    status_code = 504
