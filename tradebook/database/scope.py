"""
Client scoping for the structure ledger.

A ClientScope restricts queries on client-owned tables (positions,
transaction_logs, unprocessed_imports) to one named client unless the caller
is an administrator or no client name is known.  Scopes are passed
explicitly into every core operation; nothing is read from ambient state.

dialect_insert() calls never consult the scope; call sites stamp
client_name into their .values() explicitly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientScope:
    client_name: Optional[str] = None
    is_admin: bool = False

    @property
    def name(self) -> Optional[str]:
        """Trimmed client name, or None when blank."""
        if self.client_name is None:
            return None
        trimmed = self.client_name.strip()
        return trimmed or None

    @property
    def restricts(self) -> bool:
        """True when queries must be filtered to this client."""
        return self.name is not None and not self.is_admin


def scope_name(scope: Optional[ClientScope]) -> Optional[str]:
    return scope.name if scope is not None else None


def is_restricted(scope: Optional[ClientScope]) -> bool:
    return scope is not None and scope.restricts


def apply_client_filter(query, model, scope: Optional[ClientScope]):
    """Append WHERE model.client_name = ? when the scope restricts."""
    if not is_restricted(scope):
        return query
    return query.filter(model.client_name == scope.name)


def resolve_client_scope(client_name: Optional[str], email: Optional[str], admin_emails) -> ClientScope:
    """Build a scope from a caller's client name and email.

    The caller is an administrator when the admin allowlist is empty or
    contains their (case-folded) email.
    """
    allowlist = [e.strip().lower() for e in (admin_emails or []) if e and e.strip()]
    normalized_email = email.strip().lower() if email and email.strip() else None
    is_admin = not allowlist or (normalized_email is not None and normalized_email in allowlist)
    scope = ClientScope(client_name=client_name, is_admin=is_admin)
    logger.debug("Resolved client scope: client=%s admin=%s", scope.name, scope.is_admin)
    return scope
