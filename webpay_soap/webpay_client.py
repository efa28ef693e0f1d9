import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

import httpx

from .api import oneclick, oneclick_mall, transaction
from .config import WebpayConfig
from .fees import Fees, calc_fees
from .identity import load_identity
from .soap.client import SoapClient
from .soap.verify import ResponseVerifier
from .soap.wsse import WebpaySigner
from .transition import transition_page

logger = logging.getLogger(__name__)


class WebpayClient:
    """Async client for the Webpay SOAP services, with signed requests and verified responses."""

    def __init__(
        self,
        cfg: WebpayConfig,
        *,
        soap_client: Optional[SoapClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        wsdl_client: Optional[httpx.Client] = None,
    ):
        self.cfg = cfg
        self.environment = cfg.environment_name
        self.identity = load_identity(
            cfg.certificate, cfg.private_key, password=cfg.private_key_password
        )
        self.signer = WebpaySigner(
            self.identity,
            signature_algorithm=cfg.signature_algorithm,
            digest_algorithm=cfg.digest_algorithm,
        )
        self.verifier = ResponseVerifier(cfg.webpay_certificate)
        self.soap_client = soap_client or SoapClient(
            cfg, self.signer, http_client=http_client, wsdl_client=wsdl_client
        )
        self.oneclick = OneClick(self)
        self.oneclick_mall = OneClickMall(self)
        logger.info(
            "Initialized Webpay client for commerce %s (%s)", cfg.commerce_code, self.environment
        )

    async def __aenter__(self) -> "WebpayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.soap_client.aclose()

    # ------------------------------------------------------------------
    # Webpay Plus
    # ------------------------------------------------------------------

    async def init_transaction(
        self,
        *,
        buy_order: str,
        session_id: Optional[str],
        return_url: str,
        final_url: str,
        amount: int | Decimal,
        transaction_type: str = "TR_NORMAL_WS",
    ) -> Mapping[str, Any]:
        return await transaction.init_transaction(
            self.cfg,
            self.soap_client,
            self.verifier,
            buy_order=buy_order,
            session_id=session_id,
            return_url=return_url,
            final_url=final_url,
            amount=amount,
            transaction_type=transaction_type,
        )

    async def get_transaction_result(self, token: str) -> Mapping[str, Any]:
        return await transaction.get_transaction_result(self.soap_client, self.verifier, token)

    async def acknowledge_transaction(self, token: str) -> Any:
        return await transaction.acknowledge_transaction(self.soap_client, self.verifier, token)

    async def nullify(
        self,
        *,
        authorization_code: str,
        authorized_amount: int | Decimal,
        buy_order: str,
        nullify_amount: int | Decimal,
        commerce_id: Optional[int | str] = None,
    ) -> Mapping[str, Any]:
        return await transaction.nullify(
            self.cfg,
            self.soap_client,
            self.verifier,
            authorization_code=authorization_code,
            authorized_amount=authorized_amount,
            buy_order=buy_order,
            nullify_amount=nullify_amount,
            commerce_id=commerce_id,
        )

    async def capture(
        self,
        *,
        authorization_code: str,
        buy_order: str,
        capture_amount: int | Decimal,
        commerce_id: Optional[int | str] = None,
    ) -> Mapping[str, Any]:
        return await transaction.capture(
            self.cfg,
            self.soap_client,
            self.verifier,
            authorization_code=authorization_code,
            buy_order=buy_order,
            capture_amount=capture_amount,
            commerce_id=commerce_id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def calc_fees(self, amount, payment_type_code: str, no_iva_below_180: bool = False) -> Fees:
        return calc_fees(
            amount,
            payment_type_code,
            credit_fee_percent=self.cfg.credit_fee_percent,
            debit_fee_percent=self.cfg.debit_fee_percent,
            iva_factor=self.cfg.iva_factor,
            no_iva_below_180=no_iva_below_180,
        )

    transition_page = staticmethod(transition_page)


class OneClick:
    """One Click operations, sharing the parent client's transport and keys."""

    def __init__(self, webpay: WebpayClient):
        self.webpay = webpay

    async def init_inscription(self, *, username: str, email: str, response_url: str) -> Mapping[str, Any]:
        return await oneclick.init_inscription(
            self.webpay.soap_client,
            self.webpay.verifier,
            username=username,
            email=email,
            response_url=response_url,
        )

    async def finish_inscription(self, token: str) -> Mapping[str, Any]:
        return await oneclick.finish_inscription(self.webpay.soap_client, self.webpay.verifier, token)

    async def remove_user(self, *, tbk_user: str, username: str) -> Any:
        return await oneclick.remove_user(
            self.webpay.soap_client, self.webpay.verifier, tbk_user=tbk_user, username=username
        )

    async def authorize(
        self, *, amount: int | Decimal, tbk_user: str, username: str, buy_order: int | str
    ) -> Mapping[str, Any]:
        return await oneclick.authorize(
            self.webpay.soap_client,
            self.webpay.verifier,
            amount=amount,
            tbk_user=tbk_user,
            username=username,
            buy_order=buy_order,
        )

    async def reverse(self, buy_order: int | str) -> Mapping[str, Any]:
        return await oneclick.reverse(self.webpay.soap_client, self.webpay.verifier, buy_order)


class OneClickMall:
    """One Click Mall operations, sharing the parent client's transport and keys."""

    def __init__(self, webpay: WebpayClient):
        self.webpay = webpay

    async def init_inscription(self, *, username: str, email: str, return_url: str) -> Mapping[str, Any]:
        return await oneclick_mall.init_inscription(
            self.webpay.soap_client,
            self.webpay.verifier,
            username=username,
            email=email,
            return_url=return_url,
        )

    async def finish_inscription(self, token: str) -> Mapping[str, Any]:
        return await oneclick_mall.finish_inscription(self.webpay.soap_client, self.webpay.verifier, token)

    async def remove_inscription(self, *, tbk_user: str, username: str) -> Any:
        return await oneclick_mall.remove_inscription(
            self.webpay.soap_client, self.webpay.verifier, tbk_user=tbk_user, username=username
        )

    async def authorize(
        self,
        *,
        username: str,
        tbk_user: str,
        buy_order: int | str,
        stores: Iterable[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        return await oneclick_mall.authorize(
            self.webpay.soap_client,
            self.webpay.verifier,
            username=username,
            tbk_user=tbk_user,
            buy_order=buy_order,
            stores=stores,
        )

    async def reverse(self, buy_order: int | str) -> Mapping[str, Any]:
        return await oneclick_mall.reverse(self.webpay.soap_client, self.webpay.verifier, buy_order)

    async def nullify(
        self,
        *,
        commerce_id: int | str,
        buy_order: int | str,
        authorized_amount: int | Decimal,
        authorization_code: str,
        nullify_amount: int | Decimal,
    ) -> Mapping[str, Any]:
        return await oneclick_mall.nullify(
            self.webpay.soap_client,
            self.webpay.verifier,
            commerce_id=commerce_id,
            buy_order=buy_order,
            authorized_amount=authorized_amount,
            authorization_code=authorization_code,
            nullify_amount=nullify_amount,
        )

    async def reverse_nullification(
        self, *, buy_order: int | str, commerce_id: int | str, nullify_amount: int | Decimal
    ) -> Mapping[str, Any]:
        return await oneclick_mall.reverse_nullification(
            self.webpay.soap_client,
            self.webpay.verifier,
            buy_order=buy_order,
            commerce_id=commerce_id,
            nullify_amount=nullify_amount,
        )
