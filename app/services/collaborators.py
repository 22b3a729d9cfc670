"""Read-only clients for the reservation store and the restaurant directory."""

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class Reservation(BaseModel):
    id: str
    restaurant_id: str
    restaurant_name: str | None = None
    restaurant_image: str | None = None
    date: str | None = None
    time: str | None = None
    status: str | None = None

    model_config = ConfigDict(extra="ignore", frozen=True)


class Restaurant(BaseModel):
    id: str
    name: str | None = None
    images: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", frozen=True)


class ReservationStore(Protocol):
    async def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    async def list_reservations_for_user(self, user_id: str) -> list[Reservation]: ...


class RestaurantDirectory(Protocol):
    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None: ...


class _JSONClient:
    def __init__(
        self,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def _get_json(self, path: str) -> dict | list | None:
        """GET a JSON document; 404 maps to None, anything else failing to CollaboratorError."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(path)
                if response.status_code == httpx.codes.NOT_FOUND:
                    return None
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Request to {self.base_url}{path} failed: {e}")
            raise CollaboratorError(f"Request to {path} failed.") from e


class HttpReservationStore(_JSONClient):
    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        data = await self._get_json(f"/reservations/{reservation_id}")
        if data is None:
            return None
        try:
            return Reservation.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError("Malformed reservation payload.") from e

    async def list_reservations_for_user(self, user_id: str) -> list[Reservation]:
        data = await self._get_json(f"/users/{user_id}/reservations")
        try:
            return [Reservation.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise CollaboratorError("Malformed reservation list payload.") from e


class HttpRestaurantDirectory(_JSONClient):
    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        data = await self._get_json(f"/restaurants/{restaurant_id}")
        if data is None:
            return None
        try:
            return Restaurant.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError("Malformed restaurant payload.") from e
