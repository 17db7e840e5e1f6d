# src/lockstake/crypto/sig.py
from __future__ import annotations

import base64
import json
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]

# Request fields that carry identity and proof rather than operation input.
AUTH_FIELDS = frozenset({"account", "nonce", "sig", "signatures"})


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    # hex
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    # base64 / base64url
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except Exception as e:
        raise ValueError("not hex or base64") from e


def is_ed25519_pubkey(pubkey: Any) -> bool:
    if not isinstance(pubkey, str):
        return False
    try:
        Ed25519PublicKey.from_public_bytes(_decode_bytes(pubkey))
        return True
    except ValueError:
        return False


def request_payload(body: Mapping[str, Any]) -> Json:
    """Operation input of a request body: auth fields and nulls removed."""
    return {str(k): v for k, v in body.items() if k not in AUTH_FIELDS and v is not None}


def canonical_request_message(
    *,
    facility_id: str,
    op: str,
    signer: str,
    nonce: int,
    payload: Json,
) -> bytes:
    """Bytes every signature covers.

    The facility id keeps a request signed for one facility from being replayed
    against another; the nonce keeps it from being replayed against this one.
    """
    obj: Json = {
        "facility_id": str(facility_id),
        "op": str(op),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        pk_b = _decode_bytes(pubkey)
        key = Ed25519PublicKey.from_public_bytes(pk_b)
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: hex or base64/base64url string representing 32-byte seed or 64-byte private key.
    encoding: "hex" (default) or "b64".
    """
    pk_b = _decode_bytes(privkey)

    # 64-byte keys are seed || pubkey; cryptography wants the seed.
    if len(pk_b) == 64:
        pk_b = pk_b[:32]

    if len(pk_b) != 32:
        raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")

    key = Ed25519PrivateKey.from_private_bytes(pk_b)
    sig_b = key.sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def sign_request_dict(
    *,
    body: Json,
    op: str,
    facility_id: str,
    privkey: str,
    signer: Optional[str] = None,
    encoding: str = "hex",
) -> str:
    """Signature for an HTTP request body.

    `signer` defaults to body["account"]. Administrator co-signers sign the
    same message, so every co-signature is produced with the admin account as
    signer.
    """
    msg = canonical_request_message(
        facility_id=facility_id,
        op=op,
        signer=str(signer or body.get("account") or ""),
        nonce=int(body.get("nonce") or 0),
        payload=request_payload(body),
    )
    return sign_ed25519(message=msg, privkey=privkey, encoding=encoding)
