"""
ID generation utilities
"""

import random
import string
import time
from typing import Optional


def generate_id(prefix: Optional[str] = None, length: int = 8) -> str:
    """
    Generate a short random ID.

    Args:
        prefix: Optional prefix for the ID
        length: Length of random part (default 8)

    Returns:
        Generated ID string
    """
    # Skip characters that are easy to misread in logs (0/O, 1/l)
    chars = string.ascii_lowercase + string.digits
    chars = chars.replace("0", "").replace("1", "").replace("l", "")

    random_part = "".join(random.choices(chars, k=length))

    if prefix:
        return f"{prefix}-{random_part}"
    return random_part


def generate_session_id() -> str:
    """Generate a session ID with timestamp"""
    timestamp = int(time.time())
    return f"sess-{timestamp}-{generate_id(length=6)}"
