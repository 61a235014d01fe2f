"""Checkout sessions, one per user checkout"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import SessionNotFoundError

from ..database.orders import OrderRepository
from ..services.checkout import CheckoutStateMachine
from ..services.payment_gateway import PaymentGateway
from ..services.purchase import PurchaseFlow


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckoutSession:
    """A user's checkout and the flow that pays for it"""
    session_id: str
    user_id: str
    machine: CheckoutStateMachine
    flow: PurchaseFlow
    created_at: datetime
    updated_at: datetime

    def touch(self) -> None:
        self.updated_at = _utcnow()


class CheckoutSessionManager:
    """Manages checkout sessions"""

    def __init__(
        self,
        machine_factory: Callable[[], CheckoutStateMachine],
        gateway: PaymentGateway,
        repository: OrderRepository,
    ):
        self.machine_factory = machine_factory
        self.gateway = gateway
        self.repository = repository
        self.sessions: dict[str, CheckoutSession] = {}

    def create_session(self, user_id: str) -> CheckoutSession:
        """Create a new session"""
        now = _utcnow()
        machine = self.machine_factory()
        session = CheckoutSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            machine=machine,
            flow=PurchaseFlow(machine, self.gateway, self.repository, user_id),
            created_at=now,
            updated_at=now,
        )
        self.sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Optional[CheckoutSession]:
        """Get session by ID"""
        return self.sessions.get(session_id)

    def require_session(self, session_id: str) -> CheckoutSession:
        session = self.sessions.get(session_id)
        if not session:
            raise SessionNotFoundError(session_id)
        return session

    def get_or_create_session(self, user_id: str, session_id: Optional[str] = None) -> CheckoutSession:
        """Get existing session for the user or create new one"""
        session = self.sessions.get(session_id) if session_id else None
        if session and session.user_id == user_id:
            return session
        return self.create_session(user_id)

    def delete_session(self, session_id: str) -> bool:
        """Delete a session"""
        if session_id in self.sessions:
            del self.sessions[session_id]
            return True
        return False

    def cleanup_old_sessions(self, max_age_hours: int = 24) -> int:
        """Remove sessions idle for more than max_age_hours"""
        now = _utcnow()
        old_sessions = [
            sid for sid, session in self.sessions.items()
            if (now - session.updated_at).total_seconds() > max_age_hours * 3600
        ]
        for sid in old_sessions:
            del self.sessions[sid]
        return len(old_sessions)
