# dx_core/common/api/lookups.py
from __future__ import annotations

from uuid import UUID

from dx_core.common.api.exceptions import NotFoundError

# router lookup for detail routes; anything else never reaches the view
UUID_LOOKUP_REGEX = "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"


def uuid_or_not_found(value, entity: str = "Resource") -> UUID:
    """Ids that cannot name a row are reported as missing rather than reaching the ORM."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(entity)
