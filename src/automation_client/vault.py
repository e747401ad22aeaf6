"""
Automation Cloud Vault.

The vault stores sensitive data such as payment card numbers (PAN) and
hands back tokens that are safe to pass around as job inputs:

    otp = await client.vault.create_otp()
    pan_token = await client.vault.create_pan_token(pan, otp)
    job = await client.create_job(input={"panToken": pan_token})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .api import create_request

if TYPE_CHECKING:
    from .client import Client


class Vault:
    def __init__(self, client: Client) -> None:
        self.client = client
        self.request = create_request(client.config, client.config.vault_url, logger=client.logger)

    async def close(self) -> None:
        await self.request.close()

    async def create_otp(self) -> str:
        """Create a one-time password for a subsequent vault write."""
        body = await self.request.post("/otp")
        return body["id"]

    async def create_pan_token(self, pan: str, otp: str | None = None) -> str:
        """Exchange a card number for a pan token. An OTP is created when not given."""
        otp = otp or await self.create_otp()
        body = await self.request.post("/pan", body={"otp": otp, "pan": pan})
        return body["panToken"]

    async def create_data_token(self, data: Any, otp: str | None = None) -> dict[str, str]:
        """
        Store ``data`` in the vault.

        Returns:
            ``{"$token": token}``, usable in place of the data inside job inputs
        """
        otp = otp or await self.create_otp()
        body = await self.request.post("/data", body={"otp": otp, "data": data})
        return {"$token": body["token"]}


__all__ = ["Vault"]
