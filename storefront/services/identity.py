from __future__ import annotations

from dataclasses import dataclass

from storefront.core.credentials import CredentialStore
from storefront.core.guest_session import GuestIdentityProvider
from storefront.core.logging import get_logger, security_alert
from storefront.domain.enums import AuthPhase
from storefront.domain.identity import GuestIdentity, Identity, IdentityResolver, UserIdentity, same_principal
from storefront.schemas.auth import Credential
from storefront.services.cart_gateway import CartGateway
from storefront.services.cart_state import SESSION_EXPIRED_MESSAGE, CartStateMachine
from storefront.services.exceptions import StorageError, TransportError

logger = get_logger("storefront.identity")


@dataclass(frozen=True)
class TransitionOutcome:
    identity: Identity
    merged: bool = False
    warning: str | None = None


class IdentityTransitionCoordinator:
    """Drives anonymous <-> authenticated transitions and the cart work they imply.

    Login: persist the credential, switch the cart to the user, merge the
    guest cart into the user's and adopt the merged snapshot. A failed merge
    never blocks the login; it is reported as a warning and the cart simply
    reloads whatever the user cart holds.

    Logout: the cart is reset before anything is awaited, then the credential
    is removed. The guest session id is reused, never regenerated.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        guest_sessions: GuestIdentityProvider,
        gateway: CartGateway,
        cart: CartStateMachine,
        resolver: IdentityResolver | None = None,
    ) -> None:
        self._credentials = credentials
        self._guest_sessions = guest_sessions
        self._gateway = gateway
        self._cart = cart
        self._resolver = resolver or IdentityResolver(credentials, guest_sessions)
        self._identity: Identity | None = None
        cart.set_auth_rejected_handler(self.handle_auth_rejected)

    @property
    def phase(self) -> AuthPhase:
        if isinstance(self._identity, UserIdentity):
            return AuthPhase.authenticated
        return AuthPhase.anonymous

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def _switch(self, identity: Identity) -> None:
        self._identity = identity
        self._cart.on_identity_change(identity)

    async def start(self) -> Identity:
        """Restore the persisted identity (user if a credential survives, else guest) and load its cart."""
        identity = await self._resolver.current()
        self._switch(identity)
        logger.info("Session started", extra={"phase": self.phase.value})
        await self._cart.refresh()
        return identity

    async def login(self, credential: Credential) -> TransitionOutcome:
        await self._credentials.set(credential)
        previous = self._identity
        identity = UserIdentity(token=credential.token, user_id=credential.user_id)
        self._switch(identity)
        logger.info("User authenticated", extra={"user_id": credential.user_id})

        if isinstance(previous, UserIdentity):
            # Cambio directo de usuario: no hay carrito invitado que fusionar
            await self._cart.refresh()
            return self._settled(identity, TransitionOutcome(identity=identity))

        guest_session_id = await self._peek_guest_session()
        if not guest_session_id:
            await self._cart.refresh()
            return self._settled(identity, TransitionOutcome(identity=identity))

        warning: str | None = None
        try:
            result = await self._cart.adopt(
                lambda active: self._gateway.convert_guest_to_user(guest_session_id, active)
            )
        except TransportError as exc:
            warning = exc.detail
        else:
            if not result.ok:
                warning = result.message

        if warning is None:
            return TransitionOutcome(identity=identity, merged=True)
        if self._identity is not identity:
            return self._settled(identity, TransitionOutcome(identity=identity))

        logger.warning(
            "Guest cart merge failed, continuing with the user cart",
            extra={"user_id": credential.user_id, "error": warning},
        )
        await self._cart.refresh()
        return self._settled(
            identity,
            TransitionOutcome(identity=identity, merged=False, warning=f"Your guest cart could not be merged: {warning}"),
        )

    def _settled(self, identity: UserIdentity, outcome: TransitionOutcome) -> TransitionOutcome:
        """Report where the login actually ended up.

        A 401 while loading or merging the cart logs the user out again, so
        the outcome carries the guest identity the session fell back to.
        """
        if self._identity is identity or same_principal(self._identity, identity):
            return outcome
        return TransitionOutcome(identity=self._identity, merged=False, warning=SESSION_EXPIRED_MESSAGE)

    async def _peek_guest_session(self) -> str | None:
        try:
            return await self._guest_sessions.peek_session_id()
        except StorageError as exc:
            logger.warning("Guest session unreadable, skipping cart merge", extra={"error": str(exc)})
            return None

    async def logout(self) -> Identity:
        # Reset before the first await: the previous user's cart must not stay visible
        self._identity = None
        self._cart.reset()
        await self._credentials.clear()
        identity = GuestIdentity(session_id=await self._guest_sessions.get_or_create_session_id())
        self._switch(identity)
        logger.info("User logged out")
        return identity

    async def handle_auth_rejected(self) -> None:
        user_id = self._identity.user_id if isinstance(self._identity, UserIdentity) else None
        security_alert("Backend rejected stored credential", user_id=user_id)
        await self.logout()

    async def refresh_credential(self, credential: Credential) -> Identity:
        """Store a refreshed token for the current user without touching the cart."""
        await self._credentials.set(credential)
        identity = UserIdentity(token=credential.token, user_id=credential.user_id)
        self._switch(identity)
        return identity

    def on_identity_change(self, identity: Identity) -> None:
        self._switch(identity)
