import base64
from pathlib import Path
from typing import Optional, Union
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.backends import default_backend

from .errors import CertificateParseError

DS_NS = "http://www.w3.org/2000/09/xmldsig#"

# Signature method name -> (XML-DSig URI, hash)
SIGNATURE_METHODS = {
    "rsa-sha1": ("http://www.w3.org/2000/09/xmldsig#rsa-sha1", hashes.SHA1),
    "rsa-sha256": ("http://www.w3.org/2001/04/xmldsig-more#rsa-sha256", hashes.SHA256),
    "rsa-sha512": ("http://www.w3.org/2001/04/xmldsig-more#rsa-sha512", hashes.SHA512),
}

DIGEST_METHODS = {
    "sha1": ("http://www.w3.org/2000/09/xmldsig#sha1", hashes.SHA1),
    "sha256": ("http://www.w3.org/2001/04/xmlenc#sha256", hashes.SHA256),
    "sha512": ("http://www.w3.org/2001/04/xmlenc#sha512", hashes.SHA512),
}

SIGNATURE_HASH_BY_URI = {uri: algo for uri, algo in SIGNATURE_METHODS.values()}
DIGEST_HASH_BY_URI = {uri: algo for uri, algo in DIGEST_METHODS.values()}


def load_pem_bytes(source: Union[Path, str, bytes]) -> bytes:
    """Accepts PEM text, raw bytes or a path to a file holding either."""
    if isinstance(source, Path):
        return source.read_bytes()
    if isinstance(source, str):
        if "-----BEGIN" in source:
            return source.encode("utf-8")
        return Path(source).read_bytes()
    return source


def b64_digest(data: bytes, algorithm: type[hashes.HashAlgorithm]) -> str:
    digest = hashes.Hash(algorithm())
    digest.update(data)
    return base64.b64encode(digest.finalize()).decode("ascii")


def load_private_key(source, password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    key_bytes = load_pem_bytes(source)
    try:
        if b"-----BEGIN" in key_bytes:
            key = serialization.load_pem_private_key(key_bytes, password=password, backend=default_backend())
        else:
            key = serialization.load_der_private_key(key_bytes, password=password, backend=default_backend())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CertificateParseError("Could not load private key") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateParseError("Private key must be an RSA key")
    return key


def load_certificate(source) -> x509.Certificate:
    cert_bytes = load_pem_bytes(source)
    try:
        if b"-----BEGIN CERTIFICATE-----" in cert_bytes:
            return x509.load_pem_x509_certificate(cert_bytes, default_backend())
        return x509.load_der_x509_certificate(cert_bytes, default_backend())
    except ValueError as exc:
        raise CertificateParseError("Could not parse X.509 certificate") from exc


def load_trusted_key(source) -> rsa.RSAPublicKey:
    """Pinned Webpay key, given either as a certificate or as a bare public key."""
    key_bytes = load_pem_bytes(source)
    if b"-----BEGIN CERTIFICATE-----" in key_bytes:
        public_key = load_certificate(key_bytes).public_key()
    else:
        try:
            public_key = serialization.load_pem_public_key(key_bytes, backend=default_backend())
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise CertificateParseError("Could not load Webpay public key") from exc
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise CertificateParseError("Webpay public key must be an RSA key")
    return public_key
