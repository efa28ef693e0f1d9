import base64
import logging

from cryptography.hazmat.primitives.asymmetric import padding
from lxml import etree
from lxml.etree import QName
from zeep.utils import detect_soap_env

from ..errors import SigningError
from ..identity import Identity
from ..utils_crypto import DIGEST_METHODS, DS_NS, SIGNATURE_METHODS, b64_digest

logger = logging.getLogger(__name__)

WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
WSU_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd"
EXC_C14N = "http://www.w3.org/2001/10/xml-exc-c14n#"
ENVELOPED_SIGNATURE = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"

# Id given to an unidentified Body; matches what Webpay's reference SDKs emit
BODY_ID = "_0"
_ID_ATTRIBUTES = ("Id", QName(WSU_NS, "Id").text, "ID", "id")


class WebpaySigner:
    """Signs outbound SOAP envelopes the way Webpay wants them signed.

    Webpay does not accept a standard WS-Security header. It wants:

    * ``wsse:Security`` carrying an unqualified ``KeyInfo/X509Data`` block
      with the merchant issuer/serial and certificate, and
    * an enveloped XML-DSig ``Signature`` over the SOAP Body whose
      ``KeyInfo`` is a ``wsse:SecurityTokenReference`` wrapping that same
      ``X509Data`` instead of a plain ``ds:X509Data``.

    The output is a pure function of the identity and the envelope content.
    """

    def __init__(
        self,
        identity: Identity,
        *,
        signature_algorithm: str = "rsa-sha1",
        digest_algorithm: str = "sha1",
    ):
        try:
            self._signature_uri, self._signature_hash = SIGNATURE_METHODS[signature_algorithm.lower()]
        except KeyError:
            raise ValueError(f"Unsupported signature algorithm: {signature_algorithm!r}") from None
        try:
            self._digest_uri, self._digest_hash = DIGEST_METHODS[digest_algorithm.lower()]
        except KeyError:
            raise ValueError(f"Unsupported digest algorithm: {digest_algorithm!r}") from None
        self.identity = identity

    def sign(self, envelope_xml: str | bytes) -> str:
        """Return ``envelope_xml`` with the WS-Security header and Signature added."""
        if isinstance(envelope_xml, str):
            envelope_xml = envelope_xml.encode("utf-8")
        try:
            envelope = etree.fromstring(envelope_xml)
        except etree.XMLSyntaxError as exc:
            raise SigningError("Envelope is not well-formed XML") from exc
        self.sign_envelope(envelope)
        return etree.tostring(envelope, encoding="unicode")

    def sign_envelope(self, envelope: etree._Element) -> etree._Element:
        """Sign ``envelope`` in place and return it."""
        soap_env = detect_soap_env(envelope)
        header = envelope.find(QName(soap_env, "Header")) if soap_env else None
        body = envelope.find(QName(soap_env, "Body")) if soap_env else None
        if header is None or body is None:
            raise SigningError("Envelope has no SOAP Header/Body to sign")

        security = self._append_security_header(header)
        body_id = _ensure_id(body)

        signature = etree.SubElement(security, QName(DS_NS, "Signature"), nsmap={None: DS_NS})
        signed_info = etree.SubElement(signature, QName(DS_NS, "SignedInfo"))
        etree.SubElement(signed_info, QName(DS_NS, "CanonicalizationMethod"), Algorithm=EXC_C14N)
        etree.SubElement(signed_info, QName(DS_NS, "SignatureMethod"), Algorithm=self._signature_uri)
        reference = etree.SubElement(signed_info, QName(DS_NS, "Reference"), URI=f"#{body_id}")
        transforms = etree.SubElement(reference, QName(DS_NS, "Transforms"))
        # Order matters: enveloped-signature first, then exclusive c14n
        etree.SubElement(transforms, QName(DS_NS, "Transform"), Algorithm=ENVELOPED_SIGNATURE)
        etree.SubElement(transforms, QName(DS_NS, "Transform"), Algorithm=EXC_C14N)
        etree.SubElement(reference, QName(DS_NS, "DigestMethod"), Algorithm=self._digest_uri)
        digest_value = etree.SubElement(reference, QName(DS_NS, "DigestValue"))
        signature_value = etree.SubElement(signature, QName(DS_NS, "SignatureValue"))
        key_info = etree.SubElement(signature, QName(DS_NS, "KeyInfo"))
        token_ref = etree.SubElement(key_info, QName(WSSE_NS, "SecurityTokenReference"))
        self._append_x509_data(token_ref, DS_NS)

        try:
            # The Signature sits in the Header, so the enveloped transform leaves the Body as is.
            body_c14n = etree.tostring(body, method="c14n", exclusive=True, with_comments=False)
            digest_value.text = b64_digest(body_c14n, self._digest_hash)

            signed_info_c14n = etree.tostring(
                signed_info, method="c14n", exclusive=True, with_comments=False
            )
            sig_bytes = self.identity.private_key.sign(
                signed_info_c14n, padding.PKCS1v15(), self._signature_hash()
            )
        except (etree.LxmlError, ValueError, TypeError) as exc:
            raise SigningError("Could not compute envelope signature") from exc
        signature_value.text = base64.b64encode(sig_bytes).decode("ascii")
        logger.debug("Signed SOAP Body #%s with %s", body_id, self._signature_uri)
        return envelope

    def _append_security_header(self, header: etree._Element) -> etree._Element:
        security = etree.SubElement(header, QName(WSSE_NS, "Security"), nsmap={"wsse": WSSE_NS})
        security.set(QName(WSSE_NS, "mustUnderstand"), "1")
        key_info = etree.SubElement(security, "KeyInfo")
        self._append_x509_data(key_info, None)
        return security

    def _append_x509_data(self, parent: etree._Element, namespace: str | None) -> None:
        def tag(name):
            return QName(namespace, name) if namespace else name

        x509_data = etree.SubElement(parent, tag("X509Data"))
        issuer_serial = etree.SubElement(x509_data, tag("X509IssuerSerial"))
        etree.SubElement(issuer_serial, tag("X509IssuerName")).text = self.identity.issuer_name
        etree.SubElement(issuer_serial, tag("X509SerialNumber")).text = self.identity.serial_number
        etree.SubElement(x509_data, tag("X509Certificate")).text = self.identity.certificate_b64


def _ensure_id(node: etree._Element) -> str:
    for attr in _ID_ATTRIBUTES:
        value = node.get(attr)
        if value:
            return value
    node.set("Id", BODY_ID)
    return BODY_ID


class WebpaySignature:
    """zeep ``wsse`` plug-in that runs every outbound envelope through :class:`WebpaySigner`.

    Responses are verified on their raw bytes by the operation layer, so
    :meth:`verify` hands the parsed envelope back untouched.
    """

    def __init__(self, signer: WebpaySigner):
        self.signer = signer

    def apply(self, envelope, headers):
        soap_env = detect_soap_env(envelope)
        header = envelope.find(QName(soap_env, "Header"))
        if header is None:
            # zeep leaves the Header out when the operation declares no headers
            header = etree.Element(QName(soap_env, "Header"))
            envelope.insert(0, header)
        self.signer.sign_envelope(envelope)
        return envelope, headers

    def verify(self, envelope):
        return envelope
