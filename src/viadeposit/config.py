"""
Configuration for VIA bridge deposits.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from viadeposit.constants import (
    DEFAULT_DEPOSIT_AMOUNT,
    DEFAULT_DEPOSIT_FEE,
    DEFAULT_SIGNING_MESSAGE,
    ESPLORA_API_URLS,
    EXPLORER_TX_URLS,
    L2_RECEIVER_ADDRESS,
    MAX_DIRECT_PUSH,
    VIA_BRIDGE_ADDRESS_TESTNET,
)
from viadeposit.models import NetworkType


def validate_receiver_id(value: str) -> str:
    """
    Check that the L2 receiver id is hex that fits a single direct push.

    An optional 0x prefix (as in EVM addresses) is stripped.
    """
    value = value.strip()
    if value.lower().startswith("0x"):
        value = value[2:]
    try:
        payload = bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"Receiver id must be hex: {e}") from e
    if len(payload) > MAX_DIRECT_PUSH:
        raise ValueError(
            f"Receiver id is {len(payload)} bytes, OP_RETURN push allows at most {MAX_DIRECT_PUSH}"
        )
    return value


class DepositConfig(BaseModel):
    """Per-deployment deposit parameters, threaded through the pipeline."""

    network: NetworkType = NetworkType.TESTNET
    bridge_address: str = VIA_BRIDGE_ADDRESS_TESTNET
    receiver_id: str = L2_RECEIVER_ADDRESS
    amount_sats: int = Field(default=DEFAULT_DEPOSIT_AMOUNT, gt=0, description="Deposit amount")
    fee_sats: int = Field(default=DEFAULT_DEPOSIT_FEE, ge=0, description="Absolute tx fee")

    esplora_url: str | None = None
    explorer_url: str | None = None
    signing_message: str = DEFAULT_SIGNING_MESSAGE
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("receiver_id")
    @classmethod
    def check_receiver_id(cls, v: str) -> str:
        return validate_receiver_id(v)

    @model_validator(mode="after")
    def set_network_defaults(self) -> DepositConfig:
        """Fill in provider and explorer URLs for the selected network."""
        if self.esplora_url is None:
            object.__setattr__(self, "esplora_url", ESPLORA_API_URLS[self.network.value])
        if self.explorer_url is None:
            object.__setattr__(self, "explorer_url", EXPLORER_TX_URLS[self.network.value])
        return self

    @property
    def receiver_bytes(self) -> bytes:
        return bytes.fromhex(self.receiver_id)

    @property
    def required_total(self) -> int:
        return self.amount_sats + self.fee_sats

    def explorer_link(self, txid: str) -> str | None:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}{txid}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIA_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: NetworkType = NetworkType.TESTNET
    bridge_address: str = VIA_BRIDGE_ADDRESS_TESTNET
    receiver_id: str = L2_RECEIVER_ADDRESS
    amount_sats: int = DEFAULT_DEPOSIT_AMOUNT
    fee_sats: int = DEFAULT_DEPOSIT_FEE

    esplora_url: str | None = None
    explorer_url: str | None = None
    request_timeout: float = 30.0

    log_level: str = "INFO"

    def to_deposit_config(self) -> DepositConfig:
        return DepositConfig(
            network=self.network,
            bridge_address=self.bridge_address,
            receiver_id=self.receiver_id,
            amount_sats=self.amount_sats,
            fee_sats=self.fee_sats,
            esplora_url=self.esplora_url,
            explorer_url=self.explorer_url,
            request_timeout=self.request_timeout,
        )


def get_settings() -> Settings:
    return Settings()
