# Authentication module

from campus_portal.modules.auth.dependencies import (
    extract_token,
    get_current_user,
    require_capability,
)

__all__ = [
    "extract_token",
    "get_current_user",
    "require_capability",
]
