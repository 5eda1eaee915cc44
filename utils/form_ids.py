import secrets
import string

FORM_ID_ALPHABET = string.ascii_lowercase + string.digits
FORM_ID_LENGTH = 8


def generate_form_id(length: int = FORM_ID_LENGTH) -> str:
    """Short opaque id used both as the routing key and the document key."""
    return "".join(secrets.choice(FORM_ID_ALPHABET) for _ in range(length))


def get_form_url(form_id: str, base_url: str, ingest_prefix: str = "/api/f") -> str:
    base = (base_url or "").strip().rstrip("/")
    if base and not base.lower().startswith(("http://", "https://")):
        base = f"https://{base}"
    prefix = "/" + ingest_prefix.strip("/")
    return f"{base}{prefix}/{form_id}"
