"""
Request signing for the Polymarket CLOB.
L1 headers (EIP-712 wallet signature) derive API keys; L2 headers
(HMAC-SHA256 over the request) authorize order endpoints.
"""

import base64
import hashlib
import hmac
import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data


AUTH_MESSAGE = "This message attests that I control the given wallet"

CLOB_AUTH_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ],
}


def hmac_signature(secret: str, timestamp: str, method: str, path: str, body: str = "") -> str:
    """Base64 HMAC-SHA256 of timestamp + METHOD + path + body."""
    message = timestamp + method.upper() + path + body
    digest = hmac.new(
        base64.urlsafe_b64decode(secret),
        message.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8")


class AuthManager:
    """Holds the wallet and API credentials used to sign requests."""

    def __init__(
        self,
        private_key: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_passphrase: Optional[str] = None,
        chain_id: int = 137,
    ):
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase
        self.chain_id = chain_id

    def get_l1_headers(self, nonce: int = 0, timestamp: Optional[str] = None) -> dict[str, str]:
        """Wallet-signed headers for creating/deriving API credentials."""
        timestamp = timestamp or str(int(time.time()))

        typed_data = {
            "types": CLOB_AUTH_TYPES,
            "primaryType": "ClobAuth",
            "domain": {"name": "ClobAuthDomain", "version": "1", "chainId": self.chain_id},
            "message": {
                "address": self.address,
                "timestamp": timestamp,
                "nonce": nonce,
                "message": AUTH_MESSAGE,
            },
        }
        signed = self.account.sign_message(encode_typed_data(full_message=typed_data))

        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": "0x" + signed.signature.hex().removeprefix("0x"),
            "POLY_TIMESTAMP": timestamp,
            "POLY_NONCE": str(nonce),
        }

    def get_l2_headers(
        self,
        method: str,
        path: str,
        body: str = "",
        timestamp: Optional[str] = None,
    ) -> dict[str, str]:
        """HMAC headers for authenticated order endpoints."""
        if not self.has_l2_credentials():
            raise ValueError("API credentials required for L2 authentication")

        timestamp = timestamp or str(int(time.time()))
        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": hmac_signature(self.api_secret, timestamp, method, path, body),
            "POLY_TIMESTAMP": timestamp,
            "POLY_API_KEY": self.api_key,
            "POLY_PASSPHRASE": self.api_passphrase,
        }

    def set_api_credentials(self, api_key: str, api_secret: str, api_passphrase: str) -> None:
        """Set API credentials after derivation."""
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase

    def has_l2_credentials(self) -> bool:
        return all([self.api_key, self.api_secret, self.api_passphrase])
