"""Webpay Plus standard flow: init, result, acknowledge, nullify, capture."""
from decimal import Decimal
from typing import Any, Mapping, Optional

from ..config import COMMERCE_INTEGRATION, TRANSACTION, WebpayConfig
from ..soap.client import SoapClient
from ..soap.verify import ResponseVerifier
from .invoke import call_verified


async def init_transaction(
    cfg: WebpayConfig,
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    buy_order: str,
    session_id: Optional[str],
    return_url: str,
    final_url: str,
    amount: int | Decimal,
    transaction_type: str = "TR_NORMAL_WS",
) -> Mapping[str, Any]:
    """Start a transaction. Returns ``{token, url}``; POST ``token_ws`` to ``url``."""
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "wSTransactionType": transaction_type,
        "sessionId": session_id,
        "returnURL": return_url,
        "finalURL": final_url,
        "buyOrder": str(buy_order),
        "transactionDetails": [
            {
                "amount": amount,
                "buyOrder": str(buy_order),
                "commerceCode": str(cfg.commerce_code),
            }
        ],
    }
    return await call_verified(
        soap_client, verifier, TRANSACTION, "initTransaction", wsInitTransactionInput=payload
    )


async def get_transaction_result(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    token: str,
) -> Mapping[str, Any]:
    """Fetch the authorization outcome for ``token``.

    ``detailOutput`` is flattened to its first (and, for a normal
    transaction, only) entry.
    """
    if not token:
        raise ValueError("token is required")
    result = await call_verified(
        soap_client, verifier, TRANSACTION, "getTransactionResult", tokenInput=token
    )
    if isinstance(result, dict):
        details = result.get("detailOutput")
        if isinstance(details, list):
            result["detailOutput"] = details[0] if details else None
    return result


async def acknowledge_transaction(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    token: str,
) -> Any:
    """Confirm receipt of the result.

    Webpay reverses the transaction unless this arrives within 30 seconds
    of :func:`get_transaction_result`; the deadline is the caller's to keep.
    """
    if not token:
        raise ValueError("token is required")
    return await call_verified(
        soap_client, verifier, TRANSACTION, "acknowledgeTransaction", tokenInput=token
    )


async def nullify(
    cfg: WebpayConfig,
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    authorization_code: str,
    authorized_amount: int | Decimal,
    buy_order: str,
    nullify_amount: int | Decimal,
    commerce_id: Optional[int | str] = None,
) -> Mapping[str, Any]:
    """Nullify (fully or partially) an authorized transaction."""
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "authorizationCode": authorization_code,
        "authorizedAmount": authorized_amount,
        "buyOrder": str(buy_order),
        "commerceId": commerce_id or cfg.commerce_code,
        "nullifyAmount": nullify_amount,
    }
    return await call_verified(
        soap_client, verifier, COMMERCE_INTEGRATION, "nullify", nullificationInput=payload
    )


async def capture(
    cfg: WebpayConfig,
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    authorization_code: str,
    buy_order: str,
    capture_amount: int | Decimal,
    commerce_id: Optional[int | str] = None,
) -> Mapping[str, Any]:
    """Capture a deferred-capture authorization."""
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "authorizationCode": authorization_code,
        "buyOrder": str(buy_order),
        "commerceId": commerce_id or cfg.commerce_code,
        "captureAmount": capture_amount,
    }
    return await call_verified(
        soap_client, verifier, COMMERCE_INTEGRATION, "capture", captureInput=payload
    )
