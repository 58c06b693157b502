"""JSON projections of a share.

Neither projection ever contains ``encrypted_credential`` or the vault
coordinates; both are built field by field from an allow-list.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .model import Share


def share_metadata(share: Share, now: datetime) -> dict[str, Any]:
    """Public view served to anyone holding the token."""
    body: dict[str, Any] = {
        'token': share.token,
        'scope_type': share.scope_type.value,
        'scope_path': share.scope_path,
        'scope_name': share.scope_name,
        'name': share.display_name or share.scope_name,
        'include_subfolders': share.include_subfolders,
        'mode': share.mode.value,
        'created_at': share.created_at.isoformat(),
        'expires_at': share.expires_at.isoformat(),
        'is_expired': share.is_expired(now),
        'permissions': share.permissions.to_dict(),
    }
    if share.deposit_config is not None:
        body['deposit_config'] = share.deposit_config.to_dict()
    return body


def owner_share_view(share: Share, now: datetime) -> dict[str, Any]:
    """Owner's view in the share list: metadata plus usage counters."""
    body = share_metadata(share, now)
    body['access_count'] = share.access_count
    body['last_accessed_at'] = (
        share.last_accessed_at.isoformat() if share.last_accessed_at else None
    )
    return body
