"""Webpay (Transbank) SOAP SDK with signed requests and verified responses."""
from .config import WebpayConfig
from .errors import (
    CertificateParseError,
    InvalidSignatureError,
    SigningError,
    TransportError,
    WebpayError,
)
from .fees import Fees, calc_fees
from .identity import Identity, load_identity
from .soap import ResponseVerifier, StandardResponseVerifier, WebpaySigner
from .transition import transition_page
from .webpay_client import OneClick, OneClickMall, WebpayClient
from importlib.metadata import version as _v, PackageNotFoundError
try:
    __version__ = _v("webpay-soap")
except PackageNotFoundError:
    __version__ = "0.0.0+editable"

__all__ = [
    # client
    "WebpayConfig",
    "WebpayClient",
    "OneClick",
    "OneClickMall",
    # message security
    "Identity",
    "load_identity",
    "WebpaySigner",
    "ResponseVerifier",
    "StandardResponseVerifier",
    # helpers
    "Fees",
    "calc_fees",
    "transition_page",
    # errors
    "WebpayError",
    "CertificateParseError",
    "SigningError",
    "TransportError",
    "InvalidSignatureError",
]
