import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from zeep import AsyncClient, Settings
from zeep import exceptions as zeep_exceptions
from zeep.transports import AsyncTransport

from ..config import WebpayConfig
from ..errors import TransportError
from .wsse import WebpaySignature, WebpaySigner

logger = logging.getLogger(__name__)


@dataclass
class _Endpoint:
    """One loaded WSDL with its bound service proxy."""

    client: AsyncClient
    service: Any
    binding: Any


class SoapReply:
    """Raw response of one call; parsed only on request, after verification."""

    def __init__(self, operation: str, endpoint: _Endpoint, response):
        self.operation = operation
        self._endpoint = endpoint
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def content(self) -> bytes:
        return self._response.content

    def parse(self) -> Any:
        binding = self._endpoint.binding
        try:
            return binding.process_reply(
                self._endpoint.client, binding.get(self.operation), self._response
            )
        except zeep_exceptions.Fault as exc:
            raise TransportError(
                f"Webpay {self.operation} returned a SOAP Fault: {exc.message}",
                response=self.content,
            ) from exc
        except zeep_exceptions.Error as exc:
            raise TransportError(
                f"Could not parse Webpay {self.operation} response", response=self.content
            ) from exc


class SoapClient:
    """Signed SOAP calls against the Webpay services of one environment.

    Each endpoint's WSDL is loaded lazily, at most once per instance: the
    loading task is cached before anything is awaited, so concurrent first
    calls wait on the same task. A failed load is dropped from the cache and
    retried by the next call.
    """

    def __init__(
        self,
        cfg: WebpayConfig,
        signer: WebpaySigner,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        wsdl_client: Optional[httpx.Client] = None,
    ):
        self.cfg = cfg
        self._wsse = WebpaySignature(signer)
        self._owns_http_client = http_client is None
        self._owns_wsdl_client = wsdl_client is None
        self._http_client = http_client or httpx.AsyncClient(verify=cfg.verify_ssl, timeout=cfg.timeout)
        self._wsdl_client = wsdl_client or httpx.Client(verify=cfg.verify_ssl, timeout=cfg.timeout)
        self._endpoints: Dict[str, asyncio.Task] = {}

    async def call(self, endpoint: str, operation: str, **payload) -> SoapReply:
        """Invoke ``operation`` on ``endpoint``. No retries."""
        handle = await asyncio.shield(self._endpoint(endpoint))
        logger.debug("POST %s.%s", endpoint, operation)
        try:
            response = await handle.service[operation](**payload)
        except (httpx.HTTPError, zeep_exceptions.Error) as exc:
            raise TransportError(f"Webpay {operation} call failed") from exc

        reply = SoapReply(operation, handle, response)
        if reply.status_code != 200:
            # zeep raises the Fault carried by the body, if any
            reply.parse()
            raise TransportError(
                f"Webpay {operation} returned HTTP {reply.status_code}", response=reply.content
            )
        return reply

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
        if self._owns_wsdl_client:
            self._wsdl_client.close()

    # ------------------------------------------------------------------
    # Endpoint cache
    # ------------------------------------------------------------------

    def _endpoint(self, endpoint: str) -> "asyncio.Task[_Endpoint]":
        task = self._endpoints.get(endpoint)
        if task is None:
            wsdl_url = self.cfg.wsdl_url(endpoint)
            task = asyncio.ensure_future(self._create_endpoint(endpoint, wsdl_url))
            task.add_done_callback(functools.partial(self._forget_failed, endpoint))
            self._endpoints[endpoint] = task
        return task

    def _forget_failed(self, endpoint: str, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._endpoints.get(endpoint) is task:
                del self._endpoints[endpoint]

    async def _create_endpoint(self, endpoint: str, wsdl_url: str) -> _Endpoint:
        try:
            # zeep loads WSDL documents synchronously
            handle = await asyncio.to_thread(self._load_endpoint, endpoint, wsdl_url)
        except (httpx.HTTPError, zeep_exceptions.Error, OSError) as exc:
            raise TransportError(f"Could not load Webpay {endpoint} WSDL @ {wsdl_url}") from exc
        logger.info("Initialized Webpay %s SOAP client @ %s", endpoint, wsdl_url)
        return handle

    def _load_endpoint(self, endpoint: str, wsdl_url: str) -> _Endpoint:
        # Timeouts and TLS settings live on the shared httpx clients
        transport = AsyncTransport(client=self._http_client, wsdl_client=self._wsdl_client)
        # raw_response: responses come back unparsed so they can be verified first
        settings = Settings(strict=False, xml_huge_tree=True, raw_response=True)
        client = AsyncClient(wsdl_url, transport=transport, wsse=self._wsse, settings=settings)

        service = next(iter(client.wsdl.services.values()))
        port = next(iter(service.ports.values()))
        address = self.cfg.service_address(endpoint)
        if not address.startswith(("http://", "https://")):
            # Local WSDL override: keep the address the WSDL declares
            address = port.binding_options["address"]
        proxy = client.create_service(port.binding.name.text, address)
        return _Endpoint(client=client, service=proxy, binding=port.binding)
