"""Key layout of the shared state store."""


def tenant_config_key(tenant_id: str) -> str:
    return f"tenant:{tenant_id}:config"


def credential_key(token: str) -> str:
    return f"credential:{token}"


def rate_window_key(tenant_id: str, user_id: str, bucket: int) -> str:
    """Fixed-window counter; `bucket` is floor(now / window)."""
    return f"ratewindow:{tenant_id}:{user_id}:{bucket}"


def cache_key(tenant_id: str, key: str) -> str:
    return f"cache:{tenant_id}:{key}"


def session_state_key(tenant_id: str, session_id: str) -> str:
    return f"session:{tenant_id}:{session_id}:state"


def session_history_key(tenant_id: str, session_id: str) -> str:
    return f"session:{tenant_id}:{session_id}:history"
