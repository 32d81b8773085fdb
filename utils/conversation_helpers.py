from typing import Tuple


def conversation_key(property_id: int, u1: int, u2: int) -> Tuple[int, int, int]:
    """Grouping key: direction of the message does not matter."""
    a, b = sorted([int(u1), int(u2)])
    return int(property_id), a, b


def conversation_id_for(property_id: int, u1: int, u2: int) -> str:
    """
    Canonical 1:1 conversation id: c_{propertyId}_{minUserId}_{maxUserId}
    Pure, side-effect free; safe to import anywhere.
    """
    prop, a, b = conversation_key(property_id, u1, u2)
    return f"c_{prop}_{a}_{b}"


def counterpart_of(user_id: int, sender_id: int, receiver_id: int) -> int:
    return receiver_id if sender_id == user_id else sender_id
