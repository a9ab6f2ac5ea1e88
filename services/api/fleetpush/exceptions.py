"""Error taxonomy for the token registry and notification fan-out."""


class FleetPushError(Exception):
    """Base class for errors the HTTP layer maps to a response."""

    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        self.message = message or (self.__doc__ or "").strip()
        super().__init__(self.message)


class ValidationError(FleetPushError):
    """Malformed identity, token or selector."""

    status_code = 400


class NoRecipientError(FleetPushError):
    """No registered tokens for the target identity."""

    status_code = 404


class RegistryUnavailable(FleetPushError):
    """Token registry storage failed or timed out."""

    status_code = 503


class DeliveryUnavailable(FleetPushError):
    """Push gateway call failed or timed out."""

    status_code = 503


TRANSIENT_ERRORS = (RegistryUnavailable, DeliveryUnavailable)
