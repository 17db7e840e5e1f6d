"""
lockstake: token collaborator interface

The staking core never owns balances. It consumes a fungible token ledger
through three calls:

  - transfer_in(from, amount)   pull funds from a holder into custody
  - transfer_out(to, amount)    pay funds out of custody
  - balance_of(holder)          read any holder's balance

A transfer either completes exactly as requested or raises; there are no
partial transfers. Failures surface as TokenTransferError so the facade can
abort the enclosing operation.

InMemoryTokenLedger is the reference backend used in dev/testnet mode and in
unit tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Protocol, runtime_checkable

from lockstake.runtime.errors import TokenTransferError

Json = Dict[str, Any]

# Called after a transfer has moved funds: (direction, counterparty, amount).
TransferHook = Callable[[str, str, int], None]


# ---------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------

@runtime_checkable
class TokenLedger(Protocol):
    @property
    def asset_id(self) -> str: ...

    @property
    def custody(self) -> str: ...

    def transfer_in(self, sender: str, amount: int) -> None: ...
    def transfer_out(self, recipient: str, amount: int) -> None: ...
    def balance_of(self, holder: str) -> int: ...


@runtime_checkable
class AdminIdentityCheck(Protocol):
    def is_multi_party_account(self, address: str) -> bool: ...


# ---------------------------------------------------------------------
# In-memory backends
# ---------------------------------------------------------------------

class InMemoryTokenLedger:
    """Minimal in-process token ledger.

    - balances are plain ints keyed by holder id
    - custody is the holder id that represents the staking facility
    - an optional hook runs after every transfer; tests use it to simulate
      a token that calls back into the facility mid-operation
    """

    def __init__(
        self,
        *,
        asset_id: str,
        custody: str,
        balances: Optional[Mapping[str, int]] = None,
        hook: Optional[TransferHook] = None,
    ) -> None:
        self._asset_id = str(asset_id)
        self._custody = str(custody)
        self._balances: Dict[str, int] = {}
        for holder, amt in dict(balances or {}).items():
            self._balances[str(holder)] = int(amt)
        self.hook = hook

    @property
    def asset_id(self) -> str:
        return self._asset_id

    @property
    def custody(self) -> str:
        return self._custody

    def balance_of(self, holder: str) -> int:
        return int(self._balances.get(str(holder), 0))

    def mint(self, holder: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            raise TokenTransferError("mint_amount_must_be_positive", {"amount": amt})
        h = str(holder)
        self._balances[h] = self.balance_of(h) + amt

    def _move(self, src: str, dst: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            raise TokenTransferError("transfer_amount_must_be_positive", {"amount": amt})
        have = self.balance_of(src)
        if have < amt:
            raise TokenTransferError(
                "insufficient_balance",
                {"asset": self._asset_id, "holder": src, "have": have, "need": amt},
            )
        self._balances[src] = have - amt
        self._balances[dst] = self.balance_of(dst) + amt

    def _transfer(self, direction: str, src: str, dst: str, counterparty: str, amount: int) -> None:
        self._move(src, dst, amount)
        if self.hook is None:
            return
        try:
            self.hook(direction, counterparty, int(amount))
        except Exception:
            # A failing callback aborts the whole transfer.
            self._move(dst, src, amount)
            raise

    def transfer_in(self, sender: str, amount: int) -> None:
        s = str(sender)
        self._transfer("in", s, self._custody, s, amount)

    def transfer_out(self, recipient: str, amount: int) -> None:
        r = str(recipient)
        self._transfer("out", self._custody, r, r, amount)

    def to_dict(self) -> Json:
        return {
            "asset_id": self._asset_id,
            "custody": self._custody,
            "balances": {k: int(v) for k, v in sorted(self._balances.items()) if int(v) != 0},
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "InMemoryTokenLedger":
        bal = raw.get("balances")
        return cls(
            asset_id=str(raw.get("asset_id") or ""),
            custody=str(raw.get("custody") or ""),
            balances=bal if isinstance(bal, Mapping) else {},
        )


@dataclass
class MultiPartyRegistry:
    """Static registry of multi-party (k-of-n) accounts.

    An account counts as multi-party when it has at least two distinct
    signers and a threshold of at least two that does not exceed the signer
    count.
    """

    accounts: Dict[str, Json] = field(default_factory=dict)

    def register(self, address: str, *, signers: Iterable[str], threshold: int) -> None:
        uniq = sorted({str(s).strip() for s in signers if str(s).strip()})
        self.accounts[str(address).strip()] = {"signers": uniq, "threshold": int(threshold)}

    def is_multi_party_account(self, address: str) -> bool:
        rec = self.accounts.get(str(address or "").strip())
        if not isinstance(rec, dict):
            return False
        signers = rec.get("signers") or []
        threshold = int(rec.get("threshold") or 0)
        return len(signers) >= 2 and 2 <= threshold <= len(signers)
