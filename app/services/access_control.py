"""Capability checks for session content.

Authorization is an ordered list of pure predicates. Each one either decides
(returns a ``Decision``) or passes (returns ``None``); the first decision wins.
Only the access-code rules leave an audit trail, because those are the cases
where a shared secret rather than identity decided the outcome.
"""
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.models.session import Session
from app.services.persistence import PersistenceGateway
from app.utils.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    VIEW = "view"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    MODERATE = "moderate"
    ADMINISTER = "administer"


class ReasonCode(str, Enum):
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    PUBLIC_SESSION = "PUBLIC_SESSION"
    ACCESS_CODE = "ACCESS_CODE"
    SESSION_ENDED = "SESSION_ENDED"
    INVALID_ACCESS_CODE = "INVALID_ACCESS_CODE"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"


DENIAL_MESSAGES = {
    ReasonCode.SESSION_ENDED: "Session has ended",
    ReasonCode.INVALID_ACCESS_CODE: "Invalid access code",
    ReasonCode.NOT_AUTHENTICATED: "Not allowed to access this session",
}


@dataclass(frozen=True)
class Actor:
    user_id: str | None = None
    role: str = "guest"
    ip: str | None = None
    user_agent: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def owns(self, session: Session) -> bool:
        return self.user_id is not None and self.user_id == session.owner_id

    def can_manage(self, session: Session) -> bool:
        return self.is_admin or self.owns(session)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: ReasonCode

    def raise_for_denied(self) -> None:
        if not self.allowed:
            raise AuthorizationError(DENIAL_MESSAGES.get(self.reason, "Access denied"), self.reason.value)


@dataclass(frozen=True)
class AccessRequest:
    actor: Actor
    session: Session
    capability: Capability
    presented_code: str | None


Rule = Callable[[AccessRequest], Decision | None]


def admin_rule(req: AccessRequest) -> Decision | None:
    if req.actor.is_admin:
        return Decision(True, ReasonCode.ADMIN)
    return None


def owner_rule(req: AccessRequest) -> Decision | None:
    if req.actor.owns(req.session):
        return Decision(True, ReasonCode.OWNER)
    return None


def ended_session_rule(req: AccessRequest) -> Decision | None:
    if req.session.status == "ended" and not req.session.is_public:
        return Decision(False, ReasonCode.SESSION_ENDED)
    return None


def public_read_rule(req: AccessRequest) -> Decision | None:
    if req.capability in (Capability.VIEW, Capability.DOWNLOAD) and req.session.is_public:
        return Decision(True, ReasonCode.PUBLIC_SESSION)
    return None


def access_code_rule(req: AccessRequest) -> Decision | None:
    code = req.session.access_code
    if (
        not req.session.is_public
        and code
        and req.presented_code is not None
        and secrets.compare_digest(req.presented_code.encode(), code.encode())
    ):
        return Decision(True, ReasonCode.ACCESS_CODE)
    return None


def deny_rule(req: AccessRequest) -> Decision:
    if req.presented_code:
        return Decision(False, ReasonCode.INVALID_ACCESS_CODE)
    return Decision(False, ReasonCode.NOT_AUTHENTICATED)


DEFAULT_RULES: tuple[Rule, ...] = (
    admin_rule,
    owner_rule,
    ended_session_rule,
    public_read_rule,
    access_code_rule,
    deny_rule,
)

AUDITED_RULES = (access_code_rule, deny_rule)


class AccessControlGate:
    def __init__(self, gateway: PersistenceGateway, rules: tuple[Rule, ...] = DEFAULT_RULES):
        self.gateway = gateway
        self.rules = rules

    def evaluate(self, request: AccessRequest) -> tuple[Decision, Rule]:
        for rule in self.rules:
            decision = rule(request)
            if decision is not None:
                return decision, rule
        return deny_rule(request), deny_rule

    async def authorize(
        self,
        actor: Actor,
        session: Session,
        capability: Capability,
        presented_code: str | None = None,
    ) -> Decision:
        request = AccessRequest(actor, session, Capability(capability), presented_code)
        decision, rule = self.evaluate(request)

        if rule in AUDITED_RULES and not session.is_public:
            await self.gateway.record_access(
                session_id=session.id,
                actor_ip=actor.ip,
                actor_agent=actor.user_agent,
                access_code_used=presented_code,
                granted=decision.allowed,
                client_type="photographer" if actor.is_authenticated else "viewer",
            )

        if not decision.allowed:
            logger.warning(
                "Denied %s on session %s for user=%s ip=%s: %s",
                request.capability.value, session.id, actor.user_id, actor.ip, decision.reason.value,
            )
        return decision

    async def require(
        self,
        actor: Actor,
        session: Session,
        capability: Capability,
        presented_code: str | None = None,
    ) -> Decision:
        decision = await self.authorize(actor, session, capability, presented_code)
        decision.raise_for_denied()
        return decision
