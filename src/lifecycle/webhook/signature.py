"""GitHub webhook signature verification.

GitHub signs every delivery with an HMAC of the raw request body keyed by
the webhook secret. The header value carries the algorithm as a prefix:

- ``X-Hub-Signature: sha1=<hexdigest>``
- ``X-Hub-Signature-256: sha256=<hexdigest>``
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)


SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}


def compute_signature(
    body: bytes, secret: Union[str, bytes], algorithm: str = "sha1"
) -> str:
    """Compute the prefixed signature header value for a body.

    Args:
        body: Raw request body.
        secret: Shared webhook secret.
        algorithm: "sha1" or "sha256".

    Returns:
        Header value in the form ``<algorithm>=<hexdigest>``.
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key, body, SIGNATURE_ALGORITHMS[algorithm]).hexdigest()
    return f"{algorithm}={digest}"


def verify_signature(
    body: bytes,
    signature_header: Optional[str],
    secret: Union[str, bytes],
) -> bool:
    """Verify a webhook signature header against the raw body.

    The algorithm prefix of the header selects the hash function. The
    digest comparison runs in constant time.

    Args:
        body: Raw request body bytes, exactly as received.
        signature_header: Value of the signature header, or None.
        secret: Shared webhook secret.

    Returns:
        True if the signature matches, False otherwise (including a missing
        header, an unknown algorithm or a malformed header).
    """
    if not signature_header:
        logger.warning("No signature header provided")
        return False

    algorithm, separator, received = signature_header.partition("=")
    if not separator or algorithm not in SIGNATURE_ALGORITHMS:
        logger.warning("Unsupported signature format: %s", algorithm)
        return False

    expected = compute_signature(body, secret, algorithm)
    is_valid = hmac.compare_digest(
        expected.encode("utf-8"), f"{algorithm}={received}".encode("utf-8")
    )

    if not is_valid:
        logger.warning("Webhook signature verification failed")

    return is_valid
