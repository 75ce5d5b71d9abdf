"""Seed document loading for tenant bootstrap."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def resolve_api_key(ref: Optional[str]) -> Optional[str]:
    """Resolve an `env:VAR_NAME` reference; anything else is taken literally."""
    if not ref:
        return None
    if ref.startswith("env:"):
        return os.getenv(ref[4:]) or None
    return ref


def load_seed(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load a seed document: `{"tenants": [...], "credentials": [...]}`.

    Provider `apiKey` values may be `env:VAR` references; they are resolved here
    so that only concrete keys reach the store.
    """
    path = Path(config_path)
    with open(path, "r") as f:
        seed = json.load(f)

    if not isinstance(seed, dict):
        raise ValueError(f"Seed file {path} must contain a JSON object")

    seed.setdefault("tenants", [])
    seed.setdefault("credentials", [])
    for tenant in seed["tenants"]:
        for provider in tenant.get("providers", {}).values():
            provider["apiKey"] = resolve_api_key(provider.get("apiKey"))

    logger.info(f"Loaded seed from {path}: {len(seed['tenants'])} tenant(s), "
                f"{len(seed['credentials'])} credential(s)")
    return seed
