import re
from typing import Optional


def infer_name_from_email(email: Optional[str]) -> Optional[str]:
    """Guess a display name from an address, e.g. ``jane.doe+talks42@x.com`` -> ``Jane Doe``."""
    if not email:
        return None
    local = email.split("@")[0]
    # Drop "+tag" suffixes and trailing digits, then split on separators
    base = re.sub(r"\d+$", "", local.split("+")[0])
    parts = re.sub(r"[._-]+", " ", base).split()
    if not parts:
        return None
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def presenter_display_name(name: Optional[str], email: Optional[str]) -> str:
    return name or infer_name_from_email(email) or email or "Anonymous"
