"""
Connection Session

Per-connection dispatcher for client commands received over the
WebSocket. Commands form a closed set, each validated by its own schema:

    - joinLocation / leaveLocation: location channel membership
    - typing: ephemeral indicator relayed to a location, sender excluded
    - notificationRead: acknowledged by logging only
    - updateOrderStatus: routed through the persisted, role-checked
      status change

Anything else produces an ``error`` event to the sender only.

Author: Khalil Bannouri
Version: 1.0.0
"""

import json
import logging
from typing import Annotated, Awaitable, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from restaurant_orders.core.errors import ErrorCategory, OrderingError
from restaurant_orders.core.security import AuthenticatedUser
from restaurant_orders.models import OrderStatus
from restaurant_orders.services.realtime.distributor import (
    ConnectionHandle,
    EventDistributor,
    RealtimeEvent,
    location_channel,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CLIENT COMMANDS
# =============================================================================

class JoinLocation(BaseModel):
    action: Literal["joinLocation"]
    location_id: int


class LeaveLocation(BaseModel):
    action: Literal["leaveLocation"]
    location_id: int


class Typing(BaseModel):
    action: Literal["typing"]
    location_id: int
    is_typing: bool = True


class NotificationRead(BaseModel):
    action: Literal["notificationRead"]
    notification_id: Union[int, str]


class UpdateOrderStatus(BaseModel):
    action: Literal["updateOrderStatus"]
    order_id: int
    status: OrderStatus


ClientCommand = Annotated[
    Union[JoinLocation, LeaveLocation, Typing, NotificationRead, UpdateOrderStatus],
    Field(discriminator="action"),
]

client_command_adapter = TypeAdapter(ClientCommand)

StatusUpdater = Callable[[AuthenticatedUser, int, OrderStatus], Awaitable[object]]


class ConnectionSession:
    """
    One live connection: registry handle plus command dispatch.

    Attributes:
        distributor: Registry the connection is registered with
        user: Identity verified at connect time
        status_updater: Persisted status change used by updateOrderStatus
    """

    def __init__(
        self,
        distributor: EventDistributor,
        user: AuthenticatedUser,
        status_updater: Optional[StatusUpdater] = None,
    ):
        self.distributor = distributor
        self.user = user
        self.status_updater = status_updater
        self.handle: Optional[ConnectionHandle] = None

    def open(self) -> ConnectionHandle:
        self.handle = self.distributor.connect(self.user)
        return self.handle

    def close(self) -> None:
        if self.handle is not None:
            self.distributor.disconnect(self.handle)
            self.handle = None

    def _send_error(self, category: ErrorCategory, detail: str) -> None:
        if self.handle is not None:
            self.handle.push(
                RealtimeEvent.ERROR.value,
                {"error": category.value, "detail": detail},
            )

    async def handle_message(self, raw: Union[str, bytes, dict]) -> None:
        """Parse and dispatch one client message."""
        if self.handle is None:
            raise RuntimeError("Connection session is not open")

        try:
            body = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            command = client_command_adapter.validate_python(body)
        except (ValueError, ValidationError) as e:
            logger.debug(f"Malformed message from {self.handle.connection_id}: {e}")
            self._send_error(ErrorCategory.VALIDATION, "Malformed message")
            return

        if isinstance(command, JoinLocation):
            self.distributor.join(self.handle, location_channel(command.location_id))
            logger.info(f"User {self.user.email} joined location {command.location_id}")

        elif isinstance(command, LeaveLocation):
            self.distributor.leave(self.handle, location_channel(command.location_id))
            logger.info(f"User {self.user.email} left location {command.location_id}")

        elif isinstance(command, Typing):
            self.distributor.publish(
                location_channel(command.location_id),
                RealtimeEvent.USER_TYPING.value,
                {
                    "user_id": self.user.user_id,
                    "email": self.user.email,
                    "is_typing": command.is_typing,
                },
                exclude=self.handle,
            )

        elif isinstance(command, NotificationRead):
            logger.info(
                f"User {self.user.email} read notification {command.notification_id}"
            )

        elif isinstance(command, UpdateOrderStatus):
            await self._update_order_status(command)

    async def _update_order_status(self, command: UpdateOrderStatus) -> None:
        if self.status_updater is None:
            self._send_error(ErrorCategory.SERVER_FAULT, "Status updates are not available")
            return
        try:
            await self.status_updater(self.user, command.order_id, command.status)
        except OrderingError as e:
            self._send_error(e.category, e.message)
        except Exception as e:
            logger.exception(f"Status update for order #{command.order_id} failed: {e}")
            self._send_error(ErrorCategory.SERVER_FAULT, "Status update failed")
