"""Merchant identity: private key plus the certificate fields Webpay expects
inside the WS-Security header.

Webpay matches the issuer/serial pair against its own records using a
hand-rolled encoding, so both are rendered here exactly the way the service
produces them rather than the RFC 4514 / plain-integer forms.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .errors import CertificateParseError
from .utils_crypto import load_certificate, load_pem_bytes, load_private_key

logger = logging.getLogger(__name__)

_PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
_PEM_END = "-----END CERTIFICATE-----"

# Longest serial openssl still prints as a decimal integer (fits a signed long).
_MAX_DECIMAL_SERIAL = 2**63 - 1


@dataclass(frozen=True)
class Identity:
    """Signing identity, built once per client and never mutated."""

    private_key: rsa.RSAPrivateKey
    certificate_b64: str
    issuer_name: str
    serial_number: str


def strip_pem(text: str) -> str:
    """Bare base64 body of a PEM certificate, no markers and no line breaks."""
    return (
        text.replace(_PEM_BEGIN, "")
        .replace(_PEM_END, "")
        .replace("\r", "")
        .replace("\n", "")
    )


def serial_number_text(serial: int) -> str:
    """Render a serial the way ``openssl x509 -text`` prints it.

    Serials that fit in a signed long come out as ``"4660 (0x1234)"``; longer
    ones as colon-separated hex bytes (``"0f:a3:..."``).
    """
    magnitude = abs(serial)
    sign = "-" if serial < 0 else ""
    length = max(1, (magnitude.bit_length() + 7) // 8)
    if length <= 8 and magnitude <= _MAX_DECIMAL_SERIAL:
        return f"{sign}{magnitude} ({sign}0x{magnitude:x})"
    return ":".join(f"{byte:02x}" for byte in magnitude.to_bytes(length, "big"))


def decode_serial_number(text: str) -> str:
    """Convert an openssl serial string into the decimal form Webpay expects.

    A decimal serial is returned as-is. A colon-hex serial is NOT converted
    as one integer: each byte is converted on its own and the decimal strings
    are concatenated (``"1A:2B"`` -> ``"26" + "43"``).
    """
    text = text.strip()
    first = text.split(" ")[0]
    if ":" not in text and _is_integer(first):
        return first
    try:
        return "".join(str(int(token, 16)) for token in text.split(":"))
    except ValueError as exc:
        raise CertificateParseError(f"Unrecognised certificate serial: {text!r}") from exc


def _is_integer(value: str) -> bool:
    try:
        int(value, 10)
    except ValueError:
        return False
    return True


def format_issuer_name(
    country: str,
    state: str,
    organization: str,
    locality: str,
    common_name: str,
    organizational_unit: str,
    email: str,
) -> str:
    return (
        f"C={country},ST={state},O={organization},L={locality},"
        f"CN={common_name},OU={organizational_unit},emailAddress={email}"
    )


def _name_attr(name: x509.Name, oid, label: str) -> str:
    values = name.get_attributes_for_oid(oid)
    if not values:
        raise CertificateParseError(f"Certificate is missing the {label} field")
    return str(values[0].value)


def issuer_name_for(cert: x509.Certificate) -> str:
    # C/ST/O/L come from the issuer, CN/OU/emailAddress from the subject.
    # Webpay certificates are self-signed, so both halves describe the merchant.
    return format_issuer_name(
        country=_name_attr(cert.issuer, NameOID.COUNTRY_NAME, "issuer country"),
        state=_name_attr(cert.issuer, NameOID.STATE_OR_PROVINCE_NAME, "issuer state"),
        organization=_name_attr(cert.issuer, NameOID.ORGANIZATION_NAME, "issuer organization"),
        locality=_name_attr(cert.issuer, NameOID.LOCALITY_NAME, "issuer locality"),
        common_name=_name_attr(cert.subject, NameOID.COMMON_NAME, "common name"),
        organizational_unit=_name_attr(cert.subject, NameOID.ORGANIZATIONAL_UNIT_NAME, "organizational unit"),
        email=_name_attr(cert.subject, NameOID.EMAIL_ADDRESS, "email address"),
    )


def load_identity(certificate, private_key, *, password: Optional[bytes] = None) -> Identity:
    """Build the signing :class:`Identity` from a PEM certificate and its key."""
    cert = load_certificate(certificate)
    cert_bytes = load_pem_bytes(certificate)
    if _PEM_BEGIN.encode("ascii") in cert_bytes:
        cert_pem = cert_bytes.decode("ascii", errors="ignore")
        # Only the first certificate of a bundle is embedded
        cert_pem = cert_pem[cert_pem.index(_PEM_BEGIN):cert_pem.index(_PEM_END) + len(_PEM_END)]
    else:
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    identity = Identity(
        private_key=load_private_key(private_key, password),
        certificate_b64=strip_pem(cert_pem),
        issuer_name=issuer_name_for(cert),
        serial_number=decode_serial_number(serial_number_text(cert.serial_number)),
    )
    logger.debug(
        "Loaded merchant identity issuer=%s serial=%s",
        identity.issuer_name,
        identity.serial_number,
    )
    return identity
