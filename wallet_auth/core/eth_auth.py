"""
Ethereum Wallet Signature Utilities

This module handles the Ethereum-specific cryptography of wallet authentication.
Clients sign with the EIP-191 personal_sign convention:

    keccak256("\\x19Ethereum Signed Message:\\n" + len(message) + message)

Verification Flow:
1. Frontend signs the challenge message with the wallet (personal_sign)
2. Frontend sends: message, signature, claimed address
3. Backend recovers the signer address -> recover_identity()
   - Rebuilds the prefixed message hash
   - Recovers the public key from the 65-byte (r, s, v) signature
   - Derives the address and returns it lower-cased

Recovery depends only on (message, signature); no stored state is consulted.
The curve math is done by eth_account.
"""

import binascii
import logging
import re
from typing import Optional, Tuple, Union

from eth_account import Account
from eth_account.messages import encode_defunct

from wallet_auth.core.results import SignatureError

logger = logging.getLogger(__name__)

SIGNATURE_NUM_BYTES = 65  # r (32) + s (32) + v (1)
# personal_sign has no chain id, so EIP-155 style v values are not accepted
VALID_RECOVERY_BYTES = (0, 1, 27, 28)
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Canonical form used for storage and comparison: stripped, lower-cased."""
    return address.strip().lower()


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and ADDRESS_PATTERN.match(address.strip()) is not None


def _decode_signature(signature: Union[str, bytes]) -> bytes:
    """
    Helper: Decode a signature to raw bytes.

    Wallets send a 0x-prefixed hex string; raw bytes are passed through.
    """
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    value = signature.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return binascii.unhexlify(value.encode())


def recover_identity(
    message: str, signature: Union[str, bytes]
) -> Tuple[Optional[str], Optional[SignatureError]]:
    """
    Recover the address that signed a personal message.

    Args:
        message: The exact text the wallet signed
        signature: 65-byte signature, raw or hex encoded (with or without 0x)

    Returns:
        (address, None) with the lower-cased signer address, or
        (None, SignatureError.MALFORMED_SIGNATURE) if the signature cannot be
        decoded or no key can be recovered from it

    Example:
        address, error = recover_identity(
            message="Sign in\\nNonce: ab12ff",
            signature="0x5d1c...1b",
        )
    """
    try:
        signature_bytes = _decode_signature(signature)
    except (binascii.Error, ValueError, AttributeError):
        return None, SignatureError.MALFORMED_SIGNATURE

    if len(signature_bytes) != SIGNATURE_NUM_BYTES:
        return None, SignatureError.MALFORMED_SIGNATURE
    if signature_bytes[-1] not in VALID_RECOVERY_BYTES:
        return None, SignatureError.MALFORMED_SIGNATURE

    try:
        signable = encode_defunct(text=message)
        recovered = Account.recover_message(signable, signature=signature_bytes)
    except Exception as e:
        # bad recovery id, s out of range, point not on the curve
        logger.debug("signature recovery failed: %s", e)
        return None, SignatureError.MALFORMED_SIGNATURE

    return normalize_address(recovered), None
