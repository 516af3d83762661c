import hashlib
import hmac


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the X-Hub-Signature-256 value GitHub sends for ``payload``."""
    return "sha256=" + hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Verify a GitHub webhook signature over the raw request body.

    Uses a constant-time comparison so the check leaks no timing information.
    """
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign_payload(payload, secret), signature)
