"""ID generation utility."""

import secrets


def gen_id(prefix: str) -> str:
    """Generate prefixed IDs: prm_xxx, rul_xxx, itm_xxx, dlv_xxx"""
    return f"{prefix}{secrets.token_urlsafe(12)}"
