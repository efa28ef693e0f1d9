from typing import Any, Mapping, Optional

class WebpayError(RuntimeError):
    """Base class for any Webpay error, signing problem or transport problem."""

    def __init__(self, msg: str, *, response: Optional[Mapping | Any] = None):
        super().__init__(msg)
        self.response = response


class CertificateParseError(WebpayError):
    """Certificate, private key or pinned key could not be loaded."""
    pass


class SigningError(WebpayError):
    """Outbound envelope is malformed or the signature could not be computed."""
    pass


class TransportError(WebpayError):
    """Network, HTTP or SOAP Fault errors."""
    pass


class InvalidSignatureError(WebpayError):
    """Response signature did not verify against the pinned Webpay key."""
    pass
