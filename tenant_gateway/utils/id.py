import secrets
import time
import uuid


def uuid7() -> str:
    """Time-ordered UUIDv7 string: 48-bit unix ms, version 7, RFC 4122 variant."""
    ms = time.time_ns() // 1_000_000

    value = (ms & 0xFFFFFFFFFFFF) << 80
    value |= 0x7 << 76
    value |= secrets.randbits(12) << 64
    value |= 0x2 << 62
    value |= secrets.randbits(62)

    return str(uuid.UUID(int=value))


def new_request_id() -> str:
    return uuid7()


def new_conversation_id() -> str:
    return f"conv-{uuid.uuid4()}"
