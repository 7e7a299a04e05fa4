"""
Address Tools

Lenient parsing of address-list header values. Malformed input yields
fewer addresses, never an exception.
"""

import re

ANGLE_ADDRESS_PATTERN = re.compile(r"<([^>]+)>")
BARE_ADDRESS_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
SURROUNDING_QUOTES_PATTERN = re.compile(r"^[\"']|[\"']$")


def _parse_address(segment: str) -> str:
    """
    Extract one bare address from a header segment.

    Handles formats like:
    - "Jane Doe" <jane@example.com>
    - <jane@example.com>
    - 'jane@example.com'
    - jane@example.com
    """
    match = ANGLE_ADDRESS_PATTERN.search(segment)
    if match:
        return match.group(1).strip().lower()

    token = SURROUNDING_QUOTES_PATTERN.sub("", segment)
    if BARE_ADDRESS_PATTERN.match(token):
        return token.lower()
    return ""


def parse_address_list(header_value: str | None) -> list[str]:
    """
    Turn a raw address-list header into distinct lower-cased addresses.

    Segments are split on commas; invalid tokens are dropped silently
    and the first occurrence of each address keeps its position.

    Args:
        header_value: Raw To/From/Reply-To header value

    Returns:
        Ordered list of distinct bare addresses
    """
    if not isinstance(header_value, str) or not header_value:
        return []

    addresses: list[str] = []
    for segment in header_value.split(","):
        address = _parse_address(segment.strip())
        if address and address not in addresses:
            addresses.append(address)
    return addresses


def is_shop_address(header_value: str | None, shop_address: str) -> bool:
    """
    Check whether a From header was sent by the shop mailbox.

    Substring match so that "Shop <shop@example.com>" and bare
    "shop@example.com" both count.
    """
    if not header_value or not shop_address:
        return False
    return shop_address.lower() in header_value.lower()
