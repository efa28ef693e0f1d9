import logging
from typing import Any, Mapping

from zeep.helpers import serialize_object

from ..errors import InvalidSignatureError
from ..soap.client import SoapClient
from ..soap.verify import ResponseVerifier

logger = logging.getLogger(__name__)


def unwrap_return(data: Any) -> Any:
    """Strip the ``return`` wrapper Webpay puts around every result."""
    if isinstance(data, Mapping) and list(data) == ["return"]:
        return data["return"]
    return data


async def call_verified(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    endpoint: str,
    operation: str,
    **payload,
) -> Any:
    """Call ``operation`` and return its result only if Webpay signed it."""
    logger.debug("%s:parameters %s", operation, payload)
    reply = await soap_client.call(endpoint, operation, **payload)
    try:
        verifier.validate(reply.content)
    except InvalidSignatureError as exc:
        logger.warning("%s: result doesn't have a valid signature (%s)", operation, exc)
        raise InvalidSignatureError(
            f"Invalid signature on Webpay {operation} response"
        ) from exc
    result = unwrap_return(serialize_object(reply.parse(), dict))
    logger.debug("%s:result %s", operation, result)
    return result
