"""
Signature verification for wallet authentication.

Recovers the signer of an EIP-191 ``personal_sign`` message and compares it
with a claimed address.  Everything here is pure: results depend only on the
inputs, so it is tested directly against known (message, signature, address)
triples.
"""

import logging
from typing import Tuple, Union

from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak

from walletauth.errors import (
    InvalidRecoveryID,
    InvalidSignatureEncoding,
    InvalidSignatureLength,
    RecoveryFailed,
    SignatureError,
)
from walletauth.utils import ADDRESS_PREFIX, canonicalize_address, is_hex, is_valid_address, strip_hex_prefix

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65
ETHEREUM_V_OFFSET = 27

SignatureInput = Union[str, bytes, bytearray]


def validate_address_syntax(address: str) -> bool:
    """True iff ``address`` is 40 hex characters after an optional 0x prefix."""
    return is_valid_address(address)


def personal_message_digest(message: str) -> bytes:
    """
    Keccak-256 digest of an EIP-191 version ``E`` message.

    The "\\x19Ethereum Signed Message:\\n<length>" prefix keeps a signed login
    challenge from ever being a valid raw transaction signature.
    """
    signable = encode_defunct(text=message)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def normalize_recovery_id(v: int) -> int:
    """
    Map a recovery byte to {0, 1}.

    Args:
        v: 0/1 (raw secp256k1) or 27/28 (Ethereum ``personal_sign``)

    Raises:
        InvalidRecoveryID: for any other value
    """
    if v in (0, 1):
        return v
    if v in (ETHEREUM_V_OFFSET, ETHEREUM_V_OFFSET + 1):
        return v - ETHEREUM_V_OFFSET
    raise InvalidRecoveryID(f"unsupported recovery id {v}")


def decode_signature(signature: SignatureInput) -> Tuple[int, int, int]:
    """
    Split a 65-byte signature into normalised (v, r, s).

    Raises:
        InvalidSignatureEncoding: if a string signature is not hex
        InvalidSignatureLength: unless exactly 65 bytes
        InvalidRecoveryID: if the trailing byte is not 0, 1, 27 or 28
    """
    if isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    elif isinstance(signature, str):
        hex_part = strip_hex_prefix(signature.strip())
        # bytes.fromhex skips embedded whitespace, so check the digits first
        if not is_hex(hex_part):
            raise InvalidSignatureEncoding("signature is not valid hex")
        try:
            raw = bytes.fromhex(hex_part)
        except ValueError as exc:
            raise InvalidSignatureEncoding("signature has an odd number of hex digits") from exc
    else:
        raise InvalidSignatureEncoding(f"unsupported signature type {type(signature).__name__}")

    if len(raw) != SIGNATURE_LENGTH:
        raise InvalidSignatureLength(f"expected {SIGNATURE_LENGTH} bytes, got {len(raw)}")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = normalize_recovery_id(raw[64])
    return v, r, s


def recover_signer(message: str, signature: SignatureInput) -> str:
    """
    Recover the canonical address that signed ``message``.

    Raises:
        SignatureError: one of InvalidSignatureEncoding, InvalidSignatureLength,
            InvalidRecoveryID or RecoveryFailed
    """
    v, r, s = decode_signature(signature)
    digest = personal_message_digest(message)

    try:
        public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError) as exc:
        raise RecoveryFailed(str(exc)) from exc
    except Exception as exc:
        # Backends differ in what they raise for off-curve input
        raise RecoveryFailed(f"public key recovery failed: {exc}") from exc

    return ADDRESS_PREFIX + public_key.to_canonical_address().hex()


def verify_signature(message: str, signature: SignatureInput, claimed_address: str) -> bool:
    """
    Check that ``signature`` over ``message`` was produced by ``claimed_address``.

    Malformed input of any kind yields False; nothing is raised.
    """
    if not isinstance(message, str):
        return False
    if not validate_address_syntax(claimed_address):
        return False

    try:
        recovered = recover_signer(message, signature)
    except SignatureError as e:
        logger.debug(f"Signature rejected: {e.__class__.__name__}: {e}")
        return False

    return recovered == canonicalize_address(claimed_address)
