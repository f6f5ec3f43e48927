"""In-memory sandbox of the storefront backend, for local development and tests."""

from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.domain.enums import ErrorKind
from storefront.sandbox.store import GuestOwner, Owner, SandboxError, SandboxStore, SandboxUser, UserOwner


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddItemBody(_Body):
    variant_id: str = Field(..., alias="productVariantId")
    quantity: int = 1


class UpdateItemBody(_Body):
    quantity: int


class ConvertBody(_Body):
    session_id: str = Field(..., min_length=1)


class LoginBody(_Body):
    email: str
    password: str


class RegisterBody(_Body):
    email: str
    password: str
    full_name: str | None = None


def _ok(data=None, message: str | None = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code)


def _auth_data(user: SandboxUser, token: str) -> dict:
    return {"token": token, "user": {"id": user.id, "email": user.email, "fullName": user.full_name}}


def create_app(store: SandboxStore | None = None, prefix: str = "/api") -> FastAPI:
    store = store or SandboxStore()
    app = FastAPI(title="Storefront sandbox")
    app.state.store = store

    @app.exception_handler(SandboxError)
    async def sandbox_error_handler(_: Request, exc: SandboxError) -> JSONResponse:
        return JSONResponse(
            {"success": False, "code": exc.code, "message": exc.message},
            status_code=exc.status_code,
        )

    def _bearer(authorization: str | None) -> str | None:
        if authorization and authorization.lower().startswith("bearer "):
            return authorization[7:].strip()
        return None

    def current_user(authorization: str | None = Header(default=None)) -> SandboxUser:
        user = store.user_for_token(_bearer(authorization))
        if user is None:
            raise SandboxError(status.HTTP_401_UNAUTHORIZED, ErrorKind.rejected, "Could not validate credentials")
        return user

    def user_owner(user: SandboxUser = Depends(current_user)) -> Owner:
        return UserOwner(user.id)

    def guest_owner(session_id: str) -> Owner:
        return GuestOwner(session_id)

    # --- auth ---

    auth = APIRouter(prefix="/auth", tags=["auth"])

    @auth.post("/register", status_code=status.HTTP_201_CREATED)
    async def register(body: RegisterBody):
        user, token = store.register(body.email, body.password, body.full_name)
        return _ok(_auth_data(user, token), "Registered", status.HTTP_201_CREATED)

    @auth.post("/login")
    async def login(body: LoginBody):
        user, token = store.login(body.email, body.password)
        return _ok(_auth_data(user, token), "Logged in")

    @auth.post("/logout")
    async def logout(authorization: str | None = Header(default=None)):
        token = _bearer(authorization)
        if token:
            store.revoke(token)
        return _ok(message="Logged out")

    @auth.post("/refresh-token")
    async def refresh_token(authorization: str | None = Header(default=None)):
        user, token = store.refresh(_bearer(authorization) or "")
        return _ok(_auth_data(user, token))

    @auth.get("/profile")
    async def profile(user: SandboxUser = Depends(current_user)):
        return _ok({"user": {"id": user.id, "email": user.email, "fullName": user.full_name}})

    # --- carts ---

    def cart_routes(router: APIRouter, owner_dep) -> None:
        @router.get("")
        async def get_cart(owner: Owner = Depends(owner_dep)):
            cart = store.cart_for(owner)
            if cart is None:
                raise SandboxError(status.HTTP_404_NOT_FOUND, ErrorKind.not_found, "Cart not found")
            return _ok(store.serialize(cart))

        @router.post("/items", status_code=status.HTTP_201_CREATED)
        async def add_item(body: AddItemBody, owner: Owner = Depends(owner_dep)):
            line = store.add_item(owner, body.variant_id, body.quantity)
            # Solo confirma la línea tocada; el cliente relee el carrito
            return _ok({"item": {"id": line.id, "quantity": line.quantity}}, "Item added", status.HTTP_201_CREATED)

        @router.put("/items/{item_id}")
        async def update_item(item_id: str, body: UpdateItemBody, owner: Owner = Depends(owner_dep)):
            line = store.update_item(owner, item_id, body.quantity)
            data = {"item": {"id": line.id, "quantity": line.quantity}} if line else None
            return _ok(data, "Item updated")

        @router.delete("/items/{item_id}")
        async def remove_item(item_id: str, owner: Owner = Depends(owner_dep)):
            store.remove_item(owner, item_id)
            return _ok(message="Item removed")

        @router.delete("")
        async def clear_cart(owner: Owner = Depends(owner_dep)):
            store.clear(owner)
            return _ok(message="Cart cleared")

    user_cart = APIRouter(prefix="/cart", tags=["cart"])

    @user_cart.post("/convert")
    async def convert(body: ConvertBody, user: SandboxUser = Depends(current_user)):
        cart = store.convert(user.id, body.session_id)
        return _ok(store.serialize(cart), "Guest cart converted")

    cart_routes(user_cart, user_owner)

    guest_cart = APIRouter(prefix="/guest-cart/{session_id}", tags=["guest-cart"])
    cart_routes(guest_cart, guest_owner)

    app.include_router(auth, prefix=prefix)
    app.include_router(user_cart, prefix=prefix)
    app.include_router(guest_cart, prefix=prefix)
    return app
