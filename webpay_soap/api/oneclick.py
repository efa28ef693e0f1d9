"""One Click: card enrollment and card-on-file payments."""
from decimal import Decimal
from typing import Any, Mapping

from ..config import ONECLICK
from ..soap.client import SoapClient
from ..soap.verify import ResponseVerifier
from .invoke import call_verified

# Authorize response codes, as worded by Webpay
AUTHORIZE_RESPONSE_CODES = {
    "0": "Aprobado.",
    "-1": "La transacción ha sido rechazada.",
    "-2": "La transacción ha sido rechazada, por favor intente nuevamente.",
    "-3": "Ha ocurrido un error al hacer la transacción.",
    "-4": "La transacción ha sido rechazada.",
    "-5": "La transacción ha sido rechazada porque la tasa es inválida.",
    "-6": "Ha alcanzado el límite de transacciones mensuales.",
    "-7": "Ha alcanzado el límite de transacciones diarias.",
    "-8": "La transacción ha sido rechazada, el rubro es inválido.",
    "-97": "Ha alcanzado el máximo monto diario de pagos.",
    "-98": "La transacción ha sido rechazada porque ha excedido el máximo monto de pago.",
    "-99": "La transacción ha sido rechazada porque ha excedido la máxima cantidad de pagos diarias.",
}


def describe_response_code(code: Any) -> str | None:
    if code is None:
        return None
    return AUTHORIZE_RESPONSE_CODES.get(str(code))


async def init_inscription(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    username: str,
    email: str,
    response_url: str,
) -> Mapping[str, Any]:
    """Start card enrollment. Returns ``{token, urlWebpay}``; POST ``TBK_TOKEN`` there."""
    payload = {"username": username, "email": email, "responseURL": response_url}
    return await call_verified(soap_client, verifier, ONECLICK, "initInscription", arg0=payload)


async def finish_inscription(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    token: str,
) -> Mapping[str, Any]:
    """Complete enrollment; the result carries the ``tbkUser`` used for payments."""
    if not token:
        raise ValueError("token is required")
    return await call_verified(
        soap_client, verifier, ONECLICK, "finishInscription", arg0={"token": token}
    )


async def remove_user(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    tbk_user: str,
    username: str,
) -> Any:
    payload = {"tbkUser": tbk_user, "username": username}
    return await call_verified(soap_client, verifier, ONECLICK, "removeUser", arg0=payload)


async def authorize(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    amount: int | Decimal,
    tbk_user: str,
    username: str,
    buy_order: int | str,
) -> Mapping[str, Any]:
    """Charge an enrolled card."""
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "amount": amount,
        "tbkUser": tbk_user,
        "username": username,
        "buyOrder": buy_order,
    }
    result = await call_verified(soap_client, verifier, ONECLICK, "authorize", arg0=payload)
    if isinstance(result, dict):
        result["responseCodeDescription"] = describe_response_code(result.get("responseCode"))
    return result


async def reverse(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    buy_order: int | str,
) -> Mapping[str, Any]:
    """Reverse an authorization by buy order."""
    if not buy_order:
        raise ValueError("buy_order is required")
    return await call_verified(
        soap_client, verifier, ONECLICK, "codeReverseOneClick", arg0={"buyorder": buy_order}
    )
