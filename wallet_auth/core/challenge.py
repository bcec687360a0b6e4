"""
Challenge message helpers.

The client signs free-form text. The only structure the server relies on is a
line carrying the nonce:

    Nonce: 3f9a...c1

The marker is case-insensitive, the token is hex with an optional 0x prefix.
"""

import re
from datetime import datetime, timezone
from typing import Optional, Tuple

from wallet_auth.core.config import settings
from wallet_auth.core.results import ParseError

NONCE_LINE_PATTERN = re.compile(
    r"^[ \t]*nonce:[ \t]*((?:0x)?[0-9a-f]+)[ \t]*\r?$",
    re.IGNORECASE | re.MULTILINE,
)


def extract_nonce(message: str) -> Tuple[Optional[str], Optional[ParseError]]:
    """
    Find the nonce embedded in a signed challenge message.

    Returns the token exactly as written in the message, so it can be looked
    up byte-for-byte against the issued value.

    Returns:
        (nonce, None) when found, (None, ParseError) otherwise
    """
    if not message:
        return None, ParseError.NONCE_MARKER_NOT_FOUND
    match = NONCE_LINE_PATTERN.search(message)
    if match is None:
        return None, ParseError.NONCE_MARKER_NOT_FOUND
    return match.group(1), None


def build_challenge_message(
    nonce: str,
    address: Optional[str] = None,
    *,
    domain: Optional[str] = None,
    statement: Optional[str] = None,
    issued_at: Optional[datetime] = None,
) -> str:
    """Default sign-in text handed to clients together with a new nonce"""
    issued_at = issued_at or datetime.now(timezone.utc)
    lines = [
        f"{domain or settings.APP_DOMAIN} wants you to sign in.",
        "",
        statement or settings.SIGN_IN_STATEMENT,
        "",
    ]
    if address:
        lines.append(f"Wallet: {address}")
    lines.append(f"Nonce: {nonce}")
    lines.append(f"Issued At: {issued_at.strftime('%Y-%m-%dT%H:%M:%SZ')}")
    return "\n".join(lines)
