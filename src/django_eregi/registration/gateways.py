"""Shared pieces of the payment gateway clients."""


class PaymentGatewayError(Exception):
    """A payment gateway rejected a request or could not be reached.

    Attributes:
        provider: ``"toss"`` or ``"nice"``.
        code: The provider's error code (or ``"NETWORK_ERROR"``).
        message: The provider's human-readable message.
        status_code: HTTP status of the provider response, if any.
    """

    def __init__(self, provider: str, code: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{provider} payment error {code}: {message}")
        self.provider = provider
        self.code = code
        self.message = message
        self.status_code = status_code


def obfuscate_key(value: str | None, visible: int = 5) -> str:
    """Return *value* with everything after the first few characters masked."""
    if not value:
        return ""
    return f"{value[:visible]}..."
