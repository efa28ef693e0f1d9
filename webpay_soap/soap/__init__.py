from .client import SoapClient, SoapReply
from .verify import ResponseVerifier, StandardResponseVerifier
from .wsse import WebpaySignature, WebpaySigner

__all__ = [
    "SoapClient",
    "SoapReply",
    "ResponseVerifier",
    "StandardResponseVerifier",
    "WebpaySignature",
    "WebpaySigner",
]
