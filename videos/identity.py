"""
Identity adapter and owner-resolution policy.

Tokens are verified upstream (gateway); this service trusts the identity headers
the gateway forwards and resolves them into a Principal.
"""
from dataclasses import dataclass

from rest_framework.authentication import BaseAuthentication

from .errors import Forbidden

IDENTITY_HEADER = "X-Owner-Identity"
ROLE_HEADER = "X-Owner-Role"
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    identity: str
    is_admin: bool = False

    # DRF's IsAuthenticated checks this attribute
    @property
    def is_authenticated(self) -> bool:
        return True


class TrustedHeaderAuthentication(BaseAuthentication):
    def authenticate(self, request):
        identity = (request.headers.get(IDENTITY_HEADER) or "").strip()
        if not identity:
            return None
        role = (request.headers.get(ROLE_HEADER) or "").strip().lower()
        return Principal(identity=identity, is_admin=role == ADMIN_ROLE), None

    def authenticate_header(self, request):
        return IDENTITY_HEADER


class OwnerPolicy:
    """
    The single place that decides whose partition a caller reads and writes.
    Owners see their own rows; admins may read any owner's rows or all of them.
    """

    def owner_for_new_records(self, principal: Principal) -> str:
        return principal.identity

    def check_access(self, principal: Principal, owner: str) -> None:
        if principal.is_admin or principal.identity == owner:
            return
        raise Forbidden("Requires admin or owner")

    def list_scope(self, principal: Principal, requested_owner: str | None = None, all_owners: bool = False):
        """Return the owner to filter on, or None for the admin-wide listing."""
        if all_owners or (requested_owner and requested_owner != principal.identity):
            if not principal.is_admin:
                raise Forbidden("Only admins may list other owners' videos")
            return None if all_owners else requested_owner
        return principal.identity
