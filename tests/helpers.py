import base64
import copy
import datetime as dt
from datetime import timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from lxml import etree
from lxml.etree import QName

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
WSU_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd"
EXC_C14N = "http://www.w3.org/2001/10/xml-exc-c14n#"
RSA_SHA1 = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
SHA1 = "http://www.w3.org/2000/09/xmldsig#sha1"
RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
RSA_SHA512 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512"
SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"
SHA512 = "http://www.w3.org/2001/04/xmlenc#sha512"
EXC_C14N_COMMENTS = EXC_C14N + "WithComments"
C14N = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
C14N_COMMENTS = C14N + "#WithComments"
ENVELOPED = DS_NS + "enveloped-signature"
WEBPAY_NS = "http://service.wswebpay.webpay.transbank.com/"

MERCHANT_NAME = [
    x509.NameAttribute(NameOID.COUNTRY_NAME, "CL"),
    x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, "RM"),
    x509.NameAttribute(NameOID.LOCALITY_NAME, "Santiago"),
    x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme"),
    x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "IT"),
    x509.NameAttribute(NameOID.COMMON_NAME, "acme.cl"),
    x509.NameAttribute(NameOID.EMAIL_ADDRESS, "a@acme.cl"),
]
MERCHANT_ISSUER_NAME = "C=CL,ST=RM,O=Acme,L=Santiago,CN=acme.cl,OU=IT,emailAddress=a@acme.cl"


def self_signed(*, serial=None, subject=None, issuer=None, key=None):
    key = key or rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = x509.Name(subject or MERCHANT_NAME)
    issuer = x509.Name(issuer) if issuer else subject
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(serial or x509.random_serial_number())
        .not_valid_before(dt.datetime.now(timezone.utc) - dt.timedelta(days=1))
        .not_valid_after(dt.datetime.now(timezone.utc) + dt.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def key_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def cert_pem(cert) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def soap_envelope(payload: str, *, header: bool = True) -> str:
    head = "<soapenv:Header/>" if header else ""
    return (
        f'<soapenv:Envelope xmlns:soapenv="{SOAP_NS}">{head}'
        f"<soapenv:Body>{payload}</soapenv:Body></soapenv:Envelope>"
    )


def webpay_response(key, payload: str, *, cert=None, patched: bool = True, body_id: str = "id-1") -> bytes:
    """Response signed the way the Webpay service signs it.

    The signature value covers the canonical SignedInfo with the extra
    ``xmlns:soap`` declaration Webpay adds, unless ``patched`` is false.
    """
    envelope = etree.Element(QName(SOAP_NS, "Envelope"), nsmap={"soap": SOAP_NS})
    header = etree.SubElement(envelope, QName(SOAP_NS, "Header"))
    body = etree.SubElement(envelope, QName(SOAP_NS, "Body"), nsmap={"wsu": WSU_NS})
    body.set(QName(WSU_NS, "Id"), body_id)
    body.append(etree.fromstring(payload))

    security = etree.SubElement(header, QName(WSSE_NS, "Security"), nsmap={"wsse": WSSE_NS})
    security.set(QName(SOAP_NS, "mustUnderstand"), "1")
    signature = etree.SubElement(security, QName(DS_NS, "Signature"), nsmap={"ds": DS_NS})
    signed_info = etree.SubElement(signature, QName(DS_NS, "SignedInfo"))
    etree.SubElement(signed_info, QName(DS_NS, "CanonicalizationMethod"), Algorithm=EXC_C14N)
    etree.SubElement(signed_info, QName(DS_NS, "SignatureMethod"), Algorithm=RSA_SHA1)
    reference = etree.SubElement(signed_info, QName(DS_NS, "Reference"), URI=f"#{body_id}")
    transforms = etree.SubElement(reference, QName(DS_NS, "Transforms"))
    etree.SubElement(transforms, QName(DS_NS, "Transform"), Algorithm=EXC_C14N)
    etree.SubElement(reference, QName(DS_NS, "DigestMethod"), Algorithm=SHA1)
    digest_value = etree.SubElement(reference, QName(DS_NS, "DigestValue"))
    signature_value = etree.SubElement(signature, QName(DS_NS, "SignatureValue"))
    if cert is not None:
        key_info = etree.SubElement(signature, QName(DS_NS, "KeyInfo"))
        token_ref = etree.SubElement(key_info, QName(WSSE_NS, "SecurityTokenReference"))
        x509_data = etree.SubElement(token_ref, QName(DS_NS, "X509Data"))
        der = cert.public_bytes(serialization.Encoding.DER)
        etree.SubElement(x509_data, QName(DS_NS, "X509Certificate")).text = base64.b64encode(der).decode()

    digest = hashes.Hash(hashes.SHA1())
    digest.update(etree.tostring(body, method="c14n", exclusive=True))
    digest_value.text = base64.b64encode(digest.finalize()).decode()

    canonical = etree.tostring(signed_info, method="c14n", exclusive=True)
    if patched:
        canonical = canonical.replace(
            f'xmlns:ds="{DS_NS}"'.encode(),
            f'xmlns:ds="{DS_NS}" xmlns:soap="{SOAP_NS}"'.encode(),
            1,
        )
    signature_value.text = base64.b64encode(
        key.sign(canonical, padding.PKCS1v15(), hashes.SHA1())
    ).decode()
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


_C14N_FLAGS = {
    EXC_C14N: (True, False),
    EXC_C14N_COMMENTS: (True, True),
    C14N: (False, False),
    C14N_COMMENTS: (False, True),
}
_HASHES = {
    RSA_SHA1: hashes.SHA1,
    RSA_SHA256: hashes.SHA256,
    RSA_SHA512: hashes.SHA512,
    SHA1: hashes.SHA1,
    SHA256: hashes.SHA256,
    SHA512: hashes.SHA512,
}


def _c14n(node, algorithm, prefixes=None) -> bytes:
    exclusive, with_comments = _C14N_FLAGS.get(algorithm, (True, False))
    return etree.tostring(
        node,
        method="c14n",
        exclusive=exclusive,
        with_comments=with_comments,
        inclusive_ns_prefixes=prefixes if exclusive else None,
    )


def signed_envelope(
    key,
    payload: str,
    *,
    c14n: str = EXC_C14N,
    signature_method: str = RSA_SHA1,
    digest_method: str = SHA1,
    transforms=(ENVELOPED, EXC_C14N),
    uri: str = "#id-1",
    prefix_list=None,
    extra_nsmap=None,
) -> bytes:
    """Standards-compliant signed envelope with a configurable algorithm suite.

    Unknown algorithm URIs are written as given; the digest and signature
    then fall back to sha1 and exc-c14n so only that one URI is wrong.
    """
    envelope = etree.Element(QName(SOAP_NS, "Envelope"), nsmap={"soap": SOAP_NS, **(extra_nsmap or {})})
    header = etree.SubElement(envelope, QName(SOAP_NS, "Header"))
    body = etree.SubElement(envelope, QName(SOAP_NS, "Body"), nsmap={"wsu": WSU_NS})
    body.set(QName(WSU_NS, "Id"), "id-1")
    body.append(etree.fromstring(payload))

    security = etree.SubElement(header, QName(WSSE_NS, "Security"), nsmap={"wsse": WSSE_NS})
    signature = etree.SubElement(security, QName(DS_NS, "Signature"), nsmap={"ds": DS_NS})
    signed_info = etree.SubElement(signature, QName(DS_NS, "SignedInfo"))
    etree.SubElement(signed_info, QName(DS_NS, "CanonicalizationMethod"), Algorithm=c14n)
    etree.SubElement(signed_info, QName(DS_NS, "SignatureMethod"), Algorithm=signature_method)
    reference = etree.SubElement(signed_info, QName(DS_NS, "Reference"), URI=uri)
    transforms_node = etree.SubElement(reference, QName(DS_NS, "Transforms"))
    for algorithm in transforms:
        transform = etree.SubElement(transforms_node, QName(DS_NS, "Transform"), Algorithm=algorithm)
        if prefix_list is not None and algorithm.startswith(EXC_C14N):
            inclusive = etree.SubElement(transform, QName(EXC_C14N, "InclusiveNamespaces"), nsmap={"ec": EXC_C14N})
            inclusive.set("PrefixList", prefix_list)
    etree.SubElement(reference, QName(DS_NS, "DigestMethod"), Algorithm=digest_method)
    etree.SubElement(reference, QName(DS_NS, "DigestValue"))
    etree.SubElement(signature, QName(DS_NS, "SignatureValue"))

    # lxml only honours inclusive prefixes known to a parsed document
    envelope = etree.fromstring(etree.tostring(envelope))
    ns = {"soap": SOAP_NS, "ds": DS_NS}
    signed_info = envelope.find(".//ds:SignedInfo", namespaces=ns)

    work = copy.deepcopy(envelope)
    target = work if uri == "" else work.find("soap:Body", namespaces=ns)
    canonical = None
    for algorithm in transforms:
        if algorithm == ENVELOPED and uri == "":
            enveloped = work.find(".//ds:Signature", namespaces=ns)
            enveloped.getparent().remove(enveloped)
        elif algorithm in _C14N_FLAGS:
            canonical = _c14n(target, algorithm, prefix_list.split() if prefix_list else None)
    if canonical is None:
        canonical = _c14n(target, C14N)
    digest = hashes.Hash(_HASHES.get(digest_method, hashes.SHA1)())
    digest.update(canonical)
    signed_info.find("ds:Reference/ds:DigestValue", namespaces=ns).text = base64.b64encode(digest.finalize()).decode()

    signature_value = envelope.find(".//ds:SignatureValue", namespaces=ns)
    signature_value.text = base64.b64encode(
        key.sign(_c14n(signed_info, c14n), padding.PKCS1v15(), _HASHES.get(signature_method, hashes.SHA1)())
    ).decode()
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")
