"""Verification of signed Webpay responses.

Webpay signs its responses with a canonicalizer that drops the SOAP
namespace declaration from ``SignedInfo``. A standards-compliant verifier
therefore rejects every genuine response. :class:`ResponseVerifier`
reproduces the service's canonical form by patching that declaration back
in before checking the signature value. The patch is isolated in
:meth:`ResponseVerifier.patch_signed_info`; :class:`StandardResponseVerifier`
is the compliant variant.

The signature is always checked against the pinned Webpay key given at
construction. Any certificate embedded in the response is ignored. The
``Signature`` must sit in the SOAP Header and one of its references must
resolve to the envelope's own Body (or the whole document), so a signed
Body moved elsewhere next to a forged one is rejected.
"""
import base64
import binascii
import copy
import hmac
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from lxml import etree
from lxml.etree import QName

from ..errors import InvalidSignatureError
from ..utils_crypto import (
    DIGEST_HASH_BY_URI,
    DS_NS,
    SIGNATURE_HASH_BY_URI,
    b64_digest,
    load_trusted_key,
)
from .wsse import ENVELOPED_SIGNATURE

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
EXC_C14N_NS = "http://www.w3.org/2001/10/xml-exc-c14n#"

# algorithm URI -> (exclusive, with_comments)
C14N_METHODS = {
    "http://www.w3.org/2001/10/xml-exc-c14n#": (True, False),
    "http://www.w3.org/2001/10/xml-exc-c14n#WithComments": (True, True),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315": (False, False),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315#WithComments": (False, True),
}
DEFAULT_C14N = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"

_ID_XPATH = "//*[@*[local-name()='Id' or local-name()='ID' or local-name()='id'] = $id]"


def canonicalize(node: etree._Element, algorithm: str, method_node: etree._Element | None = None) -> bytes:
    try:
        exclusive, with_comments = C14N_METHODS[algorithm]
    except KeyError:
        raise InvalidSignatureError(f"unsupported canonicalization algorithm {algorithm!r}") from None
    prefixes = None
    if exclusive and method_node is not None:
        inclusive = method_node.find(QName(EXC_C14N_NS, "InclusiveNamespaces"))
        if inclusive is not None:
            prefixes = inclusive.get("PrefixList", "").split() or None
            # lxml only passes through prefixes declared in the document
            if prefixes and "#default" in prefixes:
                raise InvalidSignatureError("InclusiveNamespaces PrefixList '#default' is not supported")
    return etree.tostring(
        node,
        method="c14n",
        exclusive=exclusive,
        with_comments=with_comments,
        inclusive_ns_prefixes=prefixes,
    )


def _algorithm(parent: etree._Element, name: str) -> tuple[str, etree._Element]:
    node = parent.find(QName(DS_NS, name))
    if node is None or not node.get("Algorithm"):
        raise InvalidSignatureError(f"{name} is missing from the signature")
    return node.get("Algorithm"), node


def _index_path(node: etree._Element) -> list[int]:
    path = []
    parent = node.getparent()
    while parent is not None:
        path.append(parent.index(node))
        node, parent = parent, parent.getparent()
    path.reverse()
    return path


def _follow(root: etree._Element, path: list[int]) -> etree._Element:
    node = root
    for index in path:
        node = node[index]
    return node


def _detach(node: etree._Element) -> None:
    """Remove ``node`` but keep its tail text in the document."""
    parent = node.getparent()
    if node.tail:
        previous = node.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + node.tail
        else:
            parent.text = (parent.text or "") + node.tail
    parent.remove(node)


class ResponseVerifier:
    """Checks the XML-DSig signature of a raw Webpay SOAP response."""

    # Webpay's canonical SignedInfo also declares the SOAP envelope namespace.
    _DS_DECLARATION = f'xmlns:ds="{DS_NS}"'.encode("ascii")
    _PATCHED_DECLARATION = f'xmlns:ds="{DS_NS}" xmlns:soap="{SOAP_ENV_NS}"'.encode("ascii")

    def __init__(self, trusted_key):
        if isinstance(trusted_key, rsa.RSAPublicKey):
            self._trusted_key = trusted_key
        else:
            self._trusted_key = load_trusted_key(trusted_key)

    def verify(self, raw_xml: str | bytes) -> bool:
        """``True`` only when the response is signed by the pinned key."""
        try:
            self.validate(raw_xml)
        except InvalidSignatureError as exc:
            logger.warning("Rejected Webpay response signature: %s", exc)
            return False
        return True

    def validate(self, raw_xml: str | bytes) -> None:
        """Raise :class:`InvalidSignatureError` unless the response verifies."""
        try:
            self._validate(raw_xml)
        except InvalidSignatureError:
            raise
        except (etree.LxmlError, ValueError, TypeError) as exc:
            raise InvalidSignatureError(f"could not verify response: {exc}") from exc

    def canonicalize_signed_info(self, signed_info: etree._Element, algorithm: str, method_node=None) -> bytes:
        """Canonical bytes the signature value is checked against."""
        return self.patch_signed_info(canonicalize(signed_info, algorithm, method_node))

    def patch_signed_info(self, canonical: bytes) -> bytes:
        return canonical.replace(self._DS_DECLARATION, self._PATCHED_DECLARATION, 1)

    def _validate(self, raw_xml):
        if isinstance(raw_xml, str):
            raw_xml = raw_xml.encode("utf-8")
        if not raw_xml:
            raise InvalidSignatureError("empty response")
        parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
        try:
            root = etree.fromstring(raw_xml, parser=parser)
        except etree.XMLSyntaxError as exc:
            raise InvalidSignatureError("response is not well-formed XML") from exc

        if root.tag != QName(SOAP_ENV_NS, "Envelope").text:
            raise InvalidSignatureError("response is not a SOAP envelope")
        bodies = root.findall(QName(SOAP_ENV_NS, "Body"))
        if len(bodies) != 1:
            raise InvalidSignatureError("SOAP envelope must have exactly one Body")
        body = bodies[0]
        header = root.find(QName(SOAP_ENV_NS, "Header"))

        signatures = root.xpath("//ds:Signature", namespaces={"ds": DS_NS})
        if not signatures:
            raise InvalidSignatureError("no XML-DSig Signature element in the message")
        signature = signatures[0]
        if header is None or not any(a is header for a in signature.iterancestors()):
            raise InvalidSignatureError("Signature must be inside the SOAP Header")
        signed_info = signature.find(QName(DS_NS, "SignedInfo"))
        if signed_info is None:
            raise InvalidSignatureError("could not find SignedInfo element in the message")

        c14n_uri, c14n_node = _algorithm(signed_info, "CanonicalizationMethod")
        signature_uri, _ = _algorithm(signed_info, "SignatureMethod")
        canonical = self.canonicalize_signed_info(signed_info, c14n_uri, c14n_node)
        self._check_signature_value(signature, canonical, signature_uri)

        references = signed_info.findall(QName(DS_NS, "Reference"))
        if not references:
            raise InvalidSignatureError("signature has no Reference")
        targets = [self._check_reference(root, signature, reference) for reference in references]
        # the digest has to cover the Body zeep parses, not a copy moved elsewhere
        if not any(target is body or target is root for target in targets):
            raise InvalidSignatureError("signature does not cover the SOAP Body")

    def _check_signature_value(self, signature, canonical: bytes, signature_uri: str) -> None:
        hash_cls = SIGNATURE_HASH_BY_URI.get(signature_uri)
        if hash_cls is None:
            raise InvalidSignatureError(f"unsupported signature algorithm {signature_uri!r}")
        value_node = signature.find(QName(DS_NS, "SignatureValue"))
        value_text = "".join((value_node.text or "").split()) if value_node is not None else ""
        if not value_text:
            raise InvalidSignatureError("SignatureValue is missing")
        try:
            value = base64.b64decode(value_text, validate=True)
        except binascii.Error as exc:
            raise InvalidSignatureError("SignatureValue is not base64") from exc
        try:
            self._trusted_key.verify(value, canonical, padding.PKCS1v15(), hash_cls())
        except InvalidSignature:
            raise InvalidSignatureError(
                f"invalid signature: the signature value {value_text} is incorrect"
            ) from None

    def _check_reference(self, root, signature, reference) -> etree._Element:
        uri = reference.get("URI", "")
        if uri == "":
            target = root
        elif uri.startswith("#"):
            matches = root.xpath(_ID_XPATH, id=uri[1:])
            if len(matches) != 1:
                raise InvalidSignatureError(f"reference {uri!r} does not match exactly one element")
            target = matches[0]
        else:
            raise InvalidSignatureError(f"unsupported reference URI {uri!r}")

        # Transforms run on a copy so the enveloped-signature step never
        # touches the parsed response.
        root_copy = copy.deepcopy(root)
        node = _follow(root_copy, _index_path(target))
        signature_copy = _follow(root_copy, _index_path(signature))

        canonical = None
        transforms = reference.find(QName(DS_NS, "Transforms"))
        for transform in (transforms if transforms is not None else ()):
            if not isinstance(transform.tag, str):
                continue
            algorithm = transform.get("Algorithm")
            if algorithm == ENVELOPED_SIGNATURE:
                if signature_copy is node:
                    raise InvalidSignatureError("reference points at its own signature")
                if any(ancestor is node for ancestor in signature_copy.iterancestors()):
                    _detach(signature_copy)
            elif algorithm in C14N_METHODS:
                canonical = canonicalize(node, algorithm, transform)
            else:
                raise InvalidSignatureError(f"unsupported transform {algorithm!r}")
        if canonical is None:
            canonical = canonicalize(node, DEFAULT_C14N)

        digest_uri, _ = _algorithm(reference, "DigestMethod")
        hash_cls = DIGEST_HASH_BY_URI.get(digest_uri)
        if hash_cls is None:
            raise InvalidSignatureError(f"unsupported digest algorithm {digest_uri!r}")
        expected_node = reference.find(QName(DS_NS, "DigestValue"))
        expected = "".join((expected_node.text or "").split()) if expected_node is not None else ""
        actual = b64_digest(canonical, hash_cls)
        if not hmac.compare_digest(expected.encode("ascii", "replace"), actual.encode("ascii")):
            raise InvalidSignatureError(f"invalid digest for reference {uri!r}")
        return target


class StandardResponseVerifier(ResponseVerifier):
    """Verifier for a service that canonicalizes ``SignedInfo`` by the book."""

    def patch_signed_info(self, canonical: bytes) -> bytes:
        return canonical
