# src/lockstake/runtime/sigverify.py

from __future__ import annotations

import os
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from lockstake.crypto.sig import canonical_request_message, verify_ed25519_signature
from lockstake.runtime.errors import Unauthenticated

Json = Dict[str, Any]

_HEX_PUBKEY = re.compile(r"^[0-9a-fA-F]{64}$")


def _unsafe_dev_allows_unsigned(mode: str) -> bool:
    """Allow unsigned requests ONLY in explicit unsafe dev mode.

    Requirements:
      - mode is dev or testnet
      - LOCKSTAKE_UNSAFE_DEV=1
    """
    unsafe = (os.environ.get("LOCKSTAKE_UNSAFE_DEV") or "").strip()
    return bool(str(mode or "").strip().lower() in {"dev", "testnet"} and unsafe == "1")


def _add_pubkey(out: List[str], seen: set, pk: Any) -> None:
    if not isinstance(pk, str):
        return
    pk2 = pk.strip()
    if not pk2 or pk2 in seen:
        return
    seen.add(pk2)
    out.append(pk2)


class RequestVerifier:
    """Authenticates callers of write operations.

    Keys come from the operator's `account_keys` table. An account id that is
    itself a 64-char hex ed25519 public key is self-certifying and needs no
    table entry.

    Policy (fail-closed):
      - administrator account: at least `admin_threshold` distinct admin
        signers must each sign the request with one of their keys
      - any other account: `sig` must verify against one of its keys
      - no keys, no signature or a bad signature: Unauthenticated
      - unsigned requests pass only under _unsafe_dev_allows_unsigned()

    Pure: nonce bookkeeping belongs to the executor.
    """

    def __init__(
        self,
        *,
        facility_id: str,
        mode: str,
        admin_account: str,
        admin_signers: Sequence[str],
        admin_threshold: int,
        account_keys: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        self.facility_id = str(facility_id)
        self.mode = str(mode or "prod").strip().lower()
        self.admin_account = str(admin_account).strip()
        self.admin_signers = tuple(str(s).strip() for s in admin_signers)
        self.admin_threshold = int(admin_threshold)
        self._keys: Dict[str, Tuple[str, ...]] = {
            str(a).strip(): tuple(str(k) for k in ks) for a, ks in dict(account_keys or {}).items()
        }

    def keys_for(self, account: str) -> List[str]:
        out: List[str] = []
        seen: set = set()
        for pk in self._keys.get(str(account).strip(), ()):
            _add_pubkey(out, seen, pk)
        if _HEX_PUBKEY.match(str(account).strip()):
            _add_pubkey(out, seen, str(account).strip().lower())
        return out

    def _verify_any(self, msg: bytes, sig: str, keys: List[str]) -> bool:
        return any(verify_ed25519_signature(message=msg, sig=sig, pubkey=pk) for pk in keys)

    def verify(
        self,
        *,
        op: str,
        caller: str,
        payload: Json,
        nonce: Optional[int] = None,
        sig: Optional[str] = None,
        signatures: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> bool:
        """Return True for a verified signed request, False for an allowed
        unsigned dev request. Raise Unauthenticated otherwise.
        """
        caller_s = str(caller or "").strip()
        unsigned = nonce is None and not sig and not signatures
        if unsigned:
            if _unsafe_dev_allows_unsigned(self.mode):
                return False
            raise Unauthenticated("signature_required", {"op": op, "account": caller_s})

        if nonce is None or isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 1:
            raise Unauthenticated("nonce_required", {"op": op, "account": caller_s})

        msg = canonical_request_message(
            facility_id=self.facility_id, op=op, signer=caller_s, nonce=nonce, payload=payload
        )

        if caller_s == self.admin_account:
            valid = set()
            for signer, s in signatures or ():
                signer_s = str(signer).strip()
                if signer_s not in self.admin_signers or signer_s in valid:
                    continue
                if self._verify_any(msg, str(s), self.keys_for(signer_s)):
                    valid.add(signer_s)
            if len(valid) < self.admin_threshold:
                raise Unauthenticated(
                    "admin_threshold_not_met",
                    {"op": op, "valid_signers": sorted(valid), "threshold": self.admin_threshold},
                )
            return True

        keys = self.keys_for(caller_s)
        if not keys:
            raise Unauthenticated("no_active_keys", {"op": op, "account": caller_s})
        if not sig or not self._verify_any(msg, str(sig), keys):
            raise Unauthenticated("invalid_signature", {"op": op, "account": caller_s})
        return True
