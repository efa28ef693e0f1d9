"""One Click Mall: one enrollment, payments split across several stores."""
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ..config import ONECLICK_MALL
from ..soap.client import SoapClient
from ..soap.verify import ResponseVerifier
from .invoke import call_verified
from .oneclick import describe_response_code


async def init_inscription(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    username: str,
    email: str,
    return_url: str,
) -> Mapping[str, Any]:
    """Returns ``{token, urlInscriptionForm}``."""
    payload = {"username": username, "email": email, "returnUrl": return_url}
    return await call_verified(soap_client, verifier, ONECLICK_MALL, "initInscription", input=payload)


async def finish_inscription(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    token: str,
) -> Mapping[str, Any]:
    if not token:
        raise ValueError("token is required")
    return await call_verified(
        soap_client, verifier, ONECLICK_MALL, "finishInscription", input={"token": token}
    )


async def remove_inscription(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    tbk_user: str,
    username: str,
) -> Any:
    payload = {"tbkUser": tbk_user, "username": username}
    return await call_verified(soap_client, verifier, ONECLICK_MALL, "removeInscription", input=payload)


async def authorize(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    username: str,
    tbk_user: str,
    buy_order: int | str,
    stores: Iterable[Mapping[str, Any]],
) -> Mapping[str, Any]:
    """Charge an enrolled card on behalf of several stores.

    ``stores`` entries are ``{commerceId, buyOrder, amount, sharesNumber}``.
    Every ``storesOutput`` entry of the result gets a ``responseCodeDescription``.
    """
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "username": username,
        "tbkUser": tbk_user,
        "buyOrder": buy_order,
        "storesInput": list(stores),
    }
    result = await call_verified(soap_client, verifier, ONECLICK_MALL, "authorize", input=payload)
    if isinstance(result, dict):
        for store in result.get("storesOutput") or []:
            if isinstance(store, dict):
                store["responseCodeDescription"] = describe_response_code(store.get("responseCode"))
    return result


async def reverse(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    buy_order: int | str,
) -> Mapping[str, Any]:
    if not buy_order:
        raise ValueError("buy_order is required")
    return await call_verified(
        soap_client, verifier, ONECLICK_MALL, "reverse", input={"buyOrder": buy_order}
    )


async def nullify(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    commerce_id: int | str,
    buy_order: int | str,
    authorized_amount: int | Decimal,
    authorization_code: str,
    nullify_amount: int | Decimal,
) -> Mapping[str, Any]:
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "commerceId": commerce_id,
        "buyOrder": buy_order,
        "authorizedAmount": authorized_amount,
        "authorizationCode": authorization_code,
        "nullifyAmount": nullify_amount,
    }
    return await call_verified(soap_client, verifier, ONECLICK_MALL, "nullify", input=payload)


async def reverse_nullification(
    soap_client: SoapClient,
    verifier: ResponseVerifier,
    *,
    buy_order: int | str,
    commerce_id: int | str,
    nullify_amount: int | Decimal,
) -> Mapping[str, Any]:
    if not buy_order:
        raise ValueError("buy_order is required")
    payload = {
        "buyOrder": buy_order,
        "commerceId": commerce_id,
        "nullifyAmount": nullify_amount,
    }
    return await call_verified(
        soap_client, verifier, ONECLICK_MALL, "reverseNullification", input=payload
    )
