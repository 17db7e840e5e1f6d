from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. Domain bounds (minimum stake,
rate limits, tier names) are enforced by the staking facade so HTTP and
in-process callers get identical errors.

Write requests carry the caller's nonce and signature(s); see
lockstake.crypto.sig for what is signed.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


TierRef = Union[int, str]


class SignerSignature(_StrictModel):
    signer: str = Field(..., min_length=1, description="Admin signer id")
    sig: str = Field(..., min_length=1, description="ed25519 signature (hex or base64)")


class AccountRequest(_StrictModel):
    account: str = Field(..., min_length=1, description="Caller account id")
    nonce: Optional[int] = Field(default=None, ge=1, description="Strictly increasing per account")
    sig: Optional[str] = Field(default=None, description="ed25519 signature over the canonical request")
    signatures: Optional[List[SignerSignature]] = Field(default=None, description="Admin co-signatures")


class TimedRequest(AccountRequest):
    # Dev/testnet only: override the wall clock for deterministic scripting.
    now_s: Optional[int] = Field(default=None, ge=0, description="Unix seconds (non-prod only)")


class StakeRequest(TimedRequest):
    amount: int = Field(..., description="Amount in base units")
    tier: TierRef = Field(..., description="flex | days_30 | days_90 | days_180 (or 0-3)")


class TierRequest(TimedRequest):
    tier: TierRef = Field(..., description="flex | days_30 | days_90 | days_180 (or 0-3)")


class DepositRequest(AccountRequest):
    amount: int = Field(..., description="Amount in base units")


class RecoverRequest(AccountRequest):
    asset: str = Field(..., min_length=1)
    to: str = Field(..., min_length=1)
    amount: int


class BaseRateRequest(AccountRequest):
    base_rate_bps: int


class MultiplierRequest(AccountRequest):
    tier: TierRef
    multiplier_bps: int


class MinStakeRequest(AccountRequest):
    min_stake_amount: int


class MintRequest(_StrictModel):
    holder: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
