import re
from typing import Iterable, Optional

# schema-qualified or bare identifiers: "silver.crm_cust_info", "gold_dim_customers"
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def validate_identifier(name: str) -> None:
    """Validate a schema/table/view identifier before it is spliced into SQL text.

    Allows ``name`` or ``schema.name`` made of letters, digits and underscores.
    Raises ValueError if invalid.
    """
    if name is None:
        raise ValueError("identifier is None")
    s = str(name).strip()
    if not s or len(s) > 128:
        raise ValueError("identifier empty or too long")
    if not _IDENT_RE.match(s):
        raise ValueError(f"invalid identifier: {name!r}")


def ensure_allowed_identifier(name: str, allowlist: Optional[Iterable[str]] = None) -> str:
    """Validate identifier and, if an allowlist is provided, enforce membership.

    Returns the normalized identifier string on success; raises ValueError on failure.
    Membership check is case-insensitive; surrounding whitespace is ignored.
    """
    validate_identifier(name)
    s = str(name).strip()
    if allowlist:
        allowed_norm = {str(x).strip().lower() for x in allowlist if str(x).strip()}
        if s.lower() not in allowed_norm:
            raise ValueError(f"identifier not in allow-list: {name!r}")
    return s
