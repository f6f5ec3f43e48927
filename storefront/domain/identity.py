"""Identity types: the principal a cart call is addressed under."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from storefront.domain.enums import IdentityKind

if TYPE_CHECKING:
    from storefront.core.credentials import CredentialStore
    from storefront.core.guest_session import GuestIdentityProvider


@dataclass(frozen=True)
class GuestIdentity:
    """Anonymous shopper, addressed by a locally generated session id."""

    session_id: str

    @property
    def kind(self) -> IdentityKind:
        return IdentityKind.guest


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated shopper, addressed by bearer token."""

    token: str = field(repr=False)
    user_id: str | None = None

    @property
    def kind(self) -> IdentityKind:
        return IdentityKind.user


Identity = Union[GuestIdentity, UserIdentity]


def same_principal(a: Identity | None, b: Identity | None) -> bool:
    """True when both identities address the same cart owner.

    A refreshed token for the same user is the same principal; a guest and a
    user never are, even if the user just logged in from that guest session.
    """
    if a is None or b is None:
        return False
    if isinstance(a, GuestIdentity) and isinstance(b, GuestIdentity):
        return a.session_id == b.session_id
    if isinstance(a, UserIdentity) and isinstance(b, UserIdentity):
        if a.user_id is not None and b.user_id is not None:
            return a.user_id == b.user_id
        return a.token == b.token
    return False


class IdentityResolver:
    """Derives the active identity from persisted state."""

    def __init__(self, credentials: CredentialStore, guest_sessions: GuestIdentityProvider) -> None:
        self.credentials = credentials
        self.guest_sessions = guest_sessions

    async def current(self) -> Identity:
        credential = await self.credentials.get()
        if credential is not None:
            return UserIdentity(token=credential.token, user_id=credential.user_id)
        return GuestIdentity(session_id=await self.guest_sessions.get_or_create_session_id())
