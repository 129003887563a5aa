import base64
import json
from hashlib import sha256
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no whitespace so equal data hashes equal."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(value: Any) -> str:
    return sha256(canonical_json(value).encode("utf-8")).hexdigest()


def sha256_b64(value: Any) -> str:
    # URL-safe alphabet so the key can be embedded in storage paths
    digest = sha256(canonical_json(value).encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
