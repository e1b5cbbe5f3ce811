"""
Node id helpers.

Meshtastic nodes are addressed by a 32-bit number. Users write them as
"!2a3b4c5d" (the firmware's own notation), "0x2A3B4C5D" or plain decimal.
Internally we key everything on the canonical "!" + 8 lowercase hex digits.
"""
from __future__ import annotations

BROADCAST_NUM = 0xFFFFFFFF
LOCAL_NODE = 0  # "self" as understood by the transport


def parse_node_id(node_id: str | None) -> int | None:
    """Parse a textual node id into its number, or None if unparsable."""
    if not node_id:
        return None
    text = node_id.strip()
    try:
        if text.startswith("!"):
            value = int(text[1:], 16)
        elif text[:2] in ("0x", "0X"):
            value = int(text[2:], 16)
        elif text.lower() == "broadcast":
            value = BROADCAST_NUM
        elif text.isdigit():
            value = int(text, 10)
        else:
            return None
    except ValueError:
        return None
    if not 0 <= value <= BROADCAST_NUM:
        return None
    return value


def format_node_id(node_num: int | None) -> str:
    if node_num is None:
        return "unknown"
    return f"!{node_num:08x}"


def normalize_node_id(node_id: str | int | None) -> str | None:
    """
    Canonical form of a node id.

        >>> normalize_node_id("0x2A")
        '!0000002a'
    """
    if isinstance(node_id, int):
        num: int | None = node_id if 0 <= node_id <= BROADCAST_NUM else None
    else:
        num = parse_node_id(node_id)
    if num is None:
        return None
    return format_node_id(num)
