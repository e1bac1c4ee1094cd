"""Join code generation and normalisation."""

import re
import secrets
import string

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6

_CODE_PATTERN = re.compile(r"[A-Z0-9]+")


def generate_code(length: int = CODE_LENGTH) -> str:
    """Draw a code uniformly from [A-Z0-9]."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def is_valid_code(code: str, length: int = CODE_LENGTH) -> bool:
    return len(code) == length and _CODE_PATTERN.fullmatch(code) is not None
