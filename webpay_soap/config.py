from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional, Union

PemSource = Union[str, bytes, Path]

TRANSACTION = "transaction"
COMMERCE_INTEGRATION = "commerce_integration"
ONECLICK = "oneclick"
ONECLICK_MALL = "oneclick_mall"

ENDPOINTS = (TRANSACTION, COMMERCE_INTEGRATION, ONECLICK, ONECLICK_MALL)

_INTEGRATION_HOST = "https://webpay3gint.transbank.cl"
_PRODUCTION_HOST = "https://webpay3g.transbank.cl"


def _endpoint_table(host: str) -> Mapping[str, str]:
    return {
        TRANSACTION: f"{host}/WSWebpayTransaction/cxf/WSWebpayService?wsdl",
        COMMERCE_INTEGRATION: f"{host}/WSWebpayTransaction/cxf/WSCommerceIntegrationService?wsdl",
        ONECLICK: f"{host}/webpayserver/wswebpay/OneClickPaymentService?wsdl",
        ONECLICK_MALL: f"{host}/WSWebpayTransaction/cxf/WSOneClickMulticodeService?wsdl",
    }


# Certification runs against the integration hosts.
ENVIRONMENTS: Mapping[str, Mapping[str, str]] = {
    "integration": _endpoint_table(_INTEGRATION_HOST),
    "certification": _endpoint_table(_INTEGRATION_HOST),
    "production": _endpoint_table(_PRODUCTION_HOST),
}

_ENVIRONMENT_ALIASES = {
    "test": "integration",
    "staging": "certification",
    "prod": "production",
}


@dataclass
class WebpayConfig:
    """Merchant credentials, pinned Webpay key and endpoints.

    Args:
        commerce_code: Merchant id assigned by Transbank.
        certificate: Merchant certificate (PEM text, bytes or file path).
        private_key: Private key matching ``certificate`` (PEM or DER).
        webpay_certificate: Webpay's public certificate or public key (PEM).
            Every response is verified against this key and nothing else.
        environment: ``integration``, ``certification`` or ``production``.
    """

    commerce_code: int | str
    certificate: PemSource
    private_key: PemSource
    webpay_certificate: PemSource
    environment: str = "integration"
    private_key_password: Optional[bytes] = None
    # The service historically expects RSA-SHA1; confirm against the target contract.
    signature_algorithm: str = "rsa-sha1"
    digest_algorithm: str = "sha1"
    # Optional per-endpoint WSDL overrides (e.g. a local WSDL copy)
    endpoints: Optional[Mapping[str, str]] = None
    timeout: float = 30
    verify_ssl: bool = True

    # Only used by calc_fees
    credit_fee_percent: Decimal = Decimal("2.95")
    debit_fee_percent: Decimal = Decimal("1.49")
    iva_factor: Decimal = Decimal("0.19")

    @property
    def environment_name(self) -> str:
        name = self.environment.lower()
        name = _ENVIRONMENT_ALIASES.get(name, name)
        if name not in ENVIRONMENTS:
            raise ValueError(f"Unknown Webpay environment: {self.environment!r}")
        return name

    def wsdl_url(self, endpoint: str) -> str:
        if endpoint not in ENDPOINTS:
            raise ValueError(
                f"Invalid endpoint {endpoint!r}; must be one of {', '.join(ENDPOINTS)}"
            )
        if self.endpoints and endpoint in self.endpoints:
            return self.endpoints[endpoint]
        return ENVIRONMENTS[self.environment_name][endpoint]

    def service_address(self, endpoint: str) -> str:
        return self.wsdl_url(endpoint).replace("?wsdl", "")
