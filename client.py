import logging
from typing import Any, Optional

import httpx

from entities import Entities
from schemas import (
    BulkActivationIn,
    CheckoutIn,
    GoogleLoginIn,
    GuestCheckoutIn,
    GuestSubscriptionCheckoutIn,
    SaveCardCheckoutIn,
    SubscriptionCheckoutIn,
)
from session_store import SessionStore
from transport import Transport, TransportError

logger = logging.getLogger(__name__)


class AuthClient:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self.session_store = transport.session_store

    def _remember(self, out: Any) -> Any:
        if isinstance(out, dict) and out.get("token"):
            self.session_store.set_token(out["token"])
            self.session_store.set_user(out.get("user"))
        return out

    async def login(self, email: str, password: str) -> Any:
        out = await self.transport.request(
            "/auth/login", method="POST", body={"email": email, "password": password}
        )
        return self._remember(out)

    async def login_with_google(self, id_token: str) -> Any:
        body = GoogleLoginIn(id_token=id_token).model_dump(by_alias=True)
        out = await self.transport.request("/auth/google", method="POST", body=body)
        return self._remember(out)

    async def signup(self, name: Optional[str], email: str, password: str) -> Any:
        out = await self.transport.request(
            "/auth/signup",
            method="POST",
            body={"name": name, "email": email, "password": password},
        )
        return self._remember(out)

    async def logout(self) -> None:
        self.session_store.clear()

    async def me(self) -> Any:
        user = await self.transport.request("/auth/me")
        if isinstance(user, dict):
            self.session_store.set_user(user)
        return user

    def current_user(self) -> Optional[dict[str, Any]]:
        return self.session_store.user


class PaymentsClient:
    """Checkout calls against the payment gateway; each yields a redirect URL."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def _redirect(self, path: str, body: dict[str, Any]) -> str:
        out = await self.transport.request(path, method="POST", body=body)
        url = out.get("url") if isinstance(out, dict) else None
        if not url:
            raise TransportError(200, "Checkout did not return a redirect URL", out)
        return str(url)

    async def create_checkout(self, data: CheckoutIn) -> str:
        return await self._redirect("/payments/checkout", data.to_body())

    async def create_subscription_checkout(self, data: SubscriptionCheckoutIn) -> str:
        return await self._redirect("/payments/subscription-checkout", data.to_body())

    async def create_guest_checkout(self, data: GuestCheckoutIn) -> str:
        return await self._redirect("/payments/guest/checkout", data.to_body())

    async def create_guest_subscription_checkout(
        self, data: GuestSubscriptionCheckoutIn
    ) -> str:
        return await self._redirect(
            "/payments/guest/subscription-checkout", data.to_body()
        )

    async def create_save_card_checkout(self, data: SaveCardCheckoutIn) -> str:
        return await self._redirect("/payments/save-card-checkout", data.to_body())

    async def activate_memberships_bulk(self, data: BulkActivationIn) -> Any:
        return await self.transport.request(
            "/payments/activate-memberships-bulk", method="POST", body=data.to_body()
        )

    async def get_config(self) -> Any:
        return await self.transport.request("/payments/config")


class IntegrationsClient:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def send_email(self, payload: dict[str, Any]) -> Any:
        return await self.transport.request(
            "/integrations/Core/SendEmail", method="POST", body=payload
        )

    async def upload_file(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Any:
        return await self.transport.request(
            "/integrations/Core/UploadFile",
            method="POST",
            files={"file": (filename, content, content_type)},
        )


class LedgerClient:
    def __init__(
        self,
        session_store: SessionStore,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session_store = session_store
        self.transport = Transport(session_store, base_url=base_url, client=http_client)
        self.entities = Entities(self.transport)
        self.auth = AuthClient(self.transport)
        self.payments = PaymentsClient(self.transport)
        self.integrations = IntegrationsClient(self.transport)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
