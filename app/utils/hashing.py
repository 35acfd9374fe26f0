import hashlib, json

def fingerprint(payload: dict) -> str:
    """Stable digest of a JSON-able payload; key order does not matter"""
    s = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(s.encode()).hexdigest()

def cache_key(namespace: str, platform: str, payload: dict) -> str:
    return f"{namespace}:{platform}:{fingerprint(payload)}"
