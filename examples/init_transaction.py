import asyncio
import logging
import os

from webpay_soap import WebpayClient, WebpayConfig

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("example_init_transaction")


async def main():
    cfg = WebpayConfig(
        commerce_code=os.getenv("WEBPAY_COMMERCE_CODE", "597020000541"),
        certificate=os.getenv("WEBPAY_CERT", "cert/597020000541.crt"),
        private_key=os.getenv("WEBPAY_KEY", "cert/597020000541.key"),
        webpay_certificate=os.getenv("WEBPAY_TBK_CERT", "cert/tbk.pem"),
        environment=os.getenv("WEBPAY_ENV", "integration"),
    )

    async with WebpayClient(cfg) as client:
        try:
            result = await client.init_transaction(
                buy_order="order-0001",
                session_id="session-0001",
                return_url="http://localhost:3000/verificar",
                final_url="http://localhost:3000/comprobante",
                amount=9990,
            )
        except Exception as e:
            logger.error(f"initTransaction failed: {e}")
            return
        logger.info(f"POST token_ws={result['token']} to {result['url']}")


if __name__ == "__main__":
    asyncio.run(main())
