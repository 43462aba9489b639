import hashlib

FINGERPRINT_LENGTH = 12


def derive_cache_key(ticket_id, response_text: str) -> str:
    """
    Content-addressed key: "<ticket id>_<first 12 hex of sha256(text)>".
    Any edit to the response text yields a new key.
    """
    digest = hashlib.sha256((response_text or "").encode("utf-8")).hexdigest()
    return f"{ticket_id}_{digest[:FINGERPRINT_LENGTH]}"
