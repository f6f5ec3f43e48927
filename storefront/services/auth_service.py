from __future__ import annotations

from pydantic import ValidationError

from storefront.core.credentials import CredentialStore
from storefront.core.logging import get_logger
from storefront.domain.enums import ErrorKind
from storefront.domain.identity import UserIdentity
from storefront.schemas.auth import AuthPayload, AuthUser, LoginRequest, RegisterRequest
from storefront.schemas.results import OperationResult, failed, succeeded
from storefront.services.api_client import ApiClient, ApiEnvelope
from storefront.services.exceptions import AuthenticationRejectedError, MalformedResponseError, TransportError
from storefront.services.identity import IdentityTransitionCoordinator

auth_logger = get_logger("storefront.auth")


def _auth_payload(envelope: ApiEnvelope) -> AuthPayload:
    try:
        return AuthPayload.model_validate(envelope.data)
    except ValidationError as exc:
        raise MalformedResponseError("Auth response carries no usable token") from exc


def _failure(envelope: ApiEnvelope, default: str) -> OperationResult:
    if envelope.success is None:
        return failed(ErrorKind.ambiguous_response, "Backend response did not confirm the operation")
    return failed(ErrorKind.rejected, envelope.message or default)


class AuthService:
    """Login/register/logout calls; identity changes are delegated to the coordinator."""

    def __init__(
        self,
        api: ApiClient,
        credentials: CredentialStore,
        coordinator: IdentityTransitionCoordinator,
    ) -> None:
        self._api = api
        self._credentials = credentials
        self._coordinator = coordinator

    async def _authenticate(self, path: str, body: dict, default_error: str) -> OperationResult:
        try:
            envelope = await self._api.post(path, body)
        except TransportError as exc:
            return failed(ErrorKind.transport_error, exc.detail)
        if not envelope.is_success:
            auth_logger.info("Authentication refused", extra={"path": path, "status_code": envelope.status_code})
            return _failure(envelope, default_error)
        try:
            credential = _auth_payload(envelope).to_credential()
        except MalformedResponseError as exc:
            return failed(ErrorKind.transport_error, exc.detail)
        outcome = await self._coordinator.login(credential)
        if not isinstance(outcome.identity, UserIdentity):
            # El backend rechazó el token recién emitido mientras se cargaba el carrito
            return failed(ErrorKind.auth_rejected, outcome.warning or "Session expired")
        return succeeded(outcome)

    async def login(self, email: str, password: str) -> OperationResult:
        try:
            request = LoginRequest(email=email, password=password)
        except ValidationError:
            return failed(ErrorKind.invalid_request, "Invalid email or password")
        return await self._authenticate("/auth/login", request.model_dump(mode="json"), "Login failed")

    async def register(self, payload: RegisterRequest) -> OperationResult:
        return await self._authenticate(
            "/auth/register",
            payload.model_dump(mode="json", by_alias=True, exclude_none=True),
            "Registration failed",
        )

    async def logout(self) -> OperationResult:
        credential = await self._credentials.get()
        # Logout local primero: el carrito se vacía antes de cualquier llamada de red
        await self._coordinator.logout()
        if credential is None:
            return succeeded()
        try:
            await self._api.post("/auth/logout", token=credential.token)
        except (TransportError, AuthenticationRejectedError) as exc:
            auth_logger.info("Remote logout failed, local session already cleared", extra={"error": exc.detail})
        return succeeded()

    async def refresh_token(self) -> OperationResult:
        credential = await self._credentials.get()
        if credential is None:
            return failed(ErrorKind.rejected, "Not authenticated")
        try:
            envelope = await self._api.post("/auth/refresh-token", token=credential.token)
        except AuthenticationRejectedError:
            await self._coordinator.handle_auth_rejected()
            return failed(ErrorKind.auth_rejected, "Session expired")
        except TransportError as exc:
            return failed(ErrorKind.transport_error, exc.detail)
        if not envelope.is_success:
            return _failure(envelope, "Token refresh failed")
        try:
            refreshed = _auth_payload(envelope).to_credential(fallback_user_id=credential.user_id)
        except MalformedResponseError as exc:
            return failed(ErrorKind.transport_error, exc.detail)
        await self._coordinator.refresh_credential(refreshed)
        return succeeded()

    async def verify_session(self) -> OperationResult:
        """Check the stored credential against ``/auth/profile``."""
        credential = await self._credentials.get()
        if credential is None:
            return failed(ErrorKind.rejected, "Not authenticated")
        try:
            envelope = await self._api.get("/auth/profile", token=credential.token)
        except AuthenticationRejectedError:
            await self._coordinator.handle_auth_rejected()
            return failed(ErrorKind.auth_rejected, "Session expired")
        except TransportError as exc:
            return failed(ErrorKind.transport_error, exc.detail)
        if not envelope.is_success:
            return _failure(envelope, "Failed to load profile")
        data = envelope.data if isinstance(envelope.data, dict) else {}
        try:
            user = AuthUser.model_validate(data.get("user", data))
        except ValidationError as exc:
            return failed(ErrorKind.transport_error, f"Invalid profile payload: {exc.error_count()} error(s)")
        return succeeded(user)
