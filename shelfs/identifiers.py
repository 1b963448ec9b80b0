import secrets
import uuid

BARCODE_PREFIX = "BC"
BARCODE_DIGITS = 10


def new_id() -> str:
    return str(uuid.uuid4())


def generate_barcode() -> str:
    """Human-readable copy barcode, e.g. ``BC-0482193746``."""
    digits = "".join(secrets.choice("0123456789") for _ in range(BARCODE_DIGITS))
    return f"{BARCODE_PREFIX}-{digits}"
