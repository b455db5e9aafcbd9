"""Signup Service — review inbound signup requests and provision approved ones.

A request moves ``pending -> approved`` or ``pending -> rejected`` exactly once.
The status write is conditional on the row still being ``pending``, so two
reviewers racing on the same request cannot both succeed.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.metrics import SIGNUP_TRANSITIONS
from app.models.signup_request import SignupStatus, SignupTier
from app.services.common import (
    DEALER_GROUP_SCHEMA_PREFIX,
    DEALERSHIP_SCHEMA_PREFIX,
    build_schema_name,
    epoch_millis,
    normalize_email,
)
from app.services.exceptions import NotFoundError, ProvisioningError, TransitionError, ValidationError
from app.services.provisioning_service import (
    DealerMember,
    ProvisioningService,
    ProvisionRequest,
    ProvisionResult,
)
from app.services.record_store import Query, RecordStore
from app.services.roles import Role

logger = logging.getLogger(__name__)

SIGNUP_REQUESTS = "signup_requests"

TIER_ROLES: dict[SignupTier, Role] = {
    SignupTier.finance_manager: Role.single_finance_manager,
    SignupTier.dealership: Role.single_dealer_admin,
    SignupTier.dealer_group: Role.group_dealer_admin,
}

_TIER_ALIASES = {
    "finance_manager_only": SignupTier.finance_manager,
    "single_finance": SignupTier.finance_manager,
    "single_dealership": SignupTier.dealership,
    "dealer-group": SignupTier.dealer_group,
    "group": SignupTier.dealer_group,
}

_PASSWORD_SYMBOLS = "!@#$%^&*()"


def generate_temp_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and symbol."""
    alphabet = string.ascii_letters + string.digits + _PASSWORD_SYMBOLS
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(_PASSWORD_SYMBOLS),
    ]
    rest = [secrets.choice(alphabet) for _ in range(max(length, len(required)) - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def parse_tier(value: str | SignupTier | None) -> SignupTier:
    if isinstance(value, SignupTier):
        return value
    raw = (value or "").strip().lower()
    try:
        return SignupTier(raw)
    except ValueError:
        pass
    tier = _TIER_ALIASES.get(raw)
    if tier is None:
        raise ValidationError("tier", f"Unknown signup tier: {value!r}")
    return tier


@dataclass
class ApprovalOptions:
    admin_email: str | None = None
    admin_name: str | None = None
    phone: str | None = None
    temp_password: str | None = None
    members: list[DealerMember] = field(default_factory=list)
    dealership_count: int | None = None
    processed_by: str | None = None


@dataclass
class ApprovalResult:
    request_id: str
    approved: bool
    status: str
    provision: ProvisionResult | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


class SignupService:
    def __init__(
        self,
        store: RecordStore,
        provisioning: ProvisioningService | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.provisioning = provisioning
        self.clock = clock or epoch_millis

    def submit(
        self,
        contact_person: str,
        email: str,
        tier: str | SignupTier,
        dealership_name: str | None = None,
        phone: str | None = None,
        dealership_count: int | None = None,
    ) -> dict:
        tier = parse_tier(tier)
        contact_person = (contact_person or "").strip()
        if not contact_person:
            raise ValidationError("contact_person")
        email = normalize_email(email or "")
        if not email:
            raise ValidationError("email")
        dealership_name = (dealership_name or "").strip() or None
        if tier != SignupTier.finance_manager and not dealership_name:
            raise ValidationError("dealership_name")
        if dealership_count is not None and dealership_count < 1:
            raise ValidationError("dealership_count", "dealership_count must be at least 1")

        result = self.store.insert(
            SIGNUP_REQUESTS,
            {
                "dealership_name": dealership_name,
                "contact_person": contact_person,
                "email": email,
                "phone": (phone or "").strip() or None,
                "tier": tier.value,
                "dealership_count": dealership_count,
                "status": SignupStatus.pending.value,
            },
        )
        if not result.ok:
            raise ProvisioningError("signup_submission", f"Could not save signup request: {result.error.message}")
        SIGNUP_TRANSITIONS.labels(transition="submitted").inc()
        logger.info("Signup request %s submitted by %s (%s)", result.data.get("id"), email, tier.value)
        return result.data

    def list_requests(self, status: str | None = None, limit: int = 50, offset: int = 0) -> list[dict]:
        filters = {}
        if status:
            try:
                filters["status"] = SignupStatus(status).value
            except ValueError as exc:
                raise ValidationError("status", f"Unknown status: {status!r}") from exc
        result = self.store.select(
            SIGNUP_REQUESTS,
            Query(filters=filters, order_by="created_at", descending=True, limit=limit, offset=offset),
        )
        if not result.ok:
            raise ProvisioningError("signup_listing", result.error.message)
        return result.rows

    def get(self, request_id: str) -> dict:
        result = self.store.select(SIGNUP_REQUESTS, Query(filters={"id": request_id}, limit=1))
        if not result.ok:
            raise ProvisioningError("signup_lookup", result.error.message)
        if not result.rows:
            raise NotFoundError(f"Signup request {request_id} not found")
        return result.rows[0]

    def _require_pending(self, signup: dict, target: SignupStatus) -> None:
        if signup.get("status") != SignupStatus.pending.value:
            raise TransitionError(signup["id"], signup.get("status") or "unknown", target.value)

    def _transition(self, signup: dict, target: SignupStatus, patch: dict) -> dict | None:
        """Conditional status write; returns None when the row is no longer pending."""
        result = self.store.update(
            SIGNUP_REQUESTS,
            {"status": target.value, **patch},
            {"id": signup["id"], "status": SignupStatus.pending.value},
        )
        if not result.ok:
            raise ProvisioningError("signup_status_update", result.error.message)
        return result.data

    def build_provision_request(self, signup: dict, options: ApprovalOptions) -> ProvisionRequest:
        tier = parse_tier(signup.get("tier"))
        role = TIER_ROLES[tier]
        dealership_name = signup.get("dealership_name")
        schema_name = None
        if tier == SignupTier.dealership and dealership_name:
            schema_name = build_schema_name(DEALERSHIP_SCHEMA_PREFIX, dealership_name, self.clock())
        elif tier == SignupTier.dealer_group and dealership_name:
            schema_name = build_schema_name(DEALER_GROUP_SCHEMA_PREFIX, dealership_name, self.clock())

        return ProvisionRequest(
            name=options.admin_name or signup.get("contact_person") or "",
            email=options.admin_email or signup.get("email") or "",
            role=role,
            temp_password=options.temp_password or generate_temp_password(),
            phone=options.phone or signup.get("phone") or "",
            dealership_name=dealership_name if tier == SignupTier.dealership else None,
            group_name=dealership_name if tier == SignupTier.dealer_group else None,
            members=list(options.members),
            num_dealerships=options.dealership_count or signup.get("dealership_count"),
            schema_name=schema_name,
        )

    def approve(self, request_id: str, options: ApprovalOptions | None = None) -> ApprovalResult:
        if self.provisioning is None:
            raise RuntimeError("SignupService.approve requires a ProvisioningService")
        options = options or ApprovalOptions()
        signup = self.get(request_id)
        self._require_pending(signup, SignupStatus.approved)

        provision_request = self.build_provision_request(signup, options)
        outcome = self.provisioning.provision(provision_request)
        if not outcome.success:
            SIGNUP_TRANSITIONS.labels(transition="approval_failed").inc()
            logger.warning("Approval of signup %s failed at %s: %s", request_id, outcome.failed_stage, outcome.error)
            return ApprovalResult(
                request_id=request_id,
                approved=False,
                status=SignupStatus.pending.value,
                provision=outcome,
                error=outcome.error,
                warnings=list(outcome.warnings),
            )

        try:
            updated = self._transition(
                signup,
                SignupStatus.approved,
                {
                    "processed_at": datetime.now(UTC),
                    "processed_by": options.processed_by,
                    "dealership_id": outcome.dealership_id,
                },
            )
        except ProvisioningError as exc:
            logger.error("Signup %s provisioned but status update failed: %s", request_id, exc.message)
            return ApprovalResult(
                request_id=request_id,
                approved=False,
                status=SignupStatus.pending.value,
                provision=outcome,
                error=f"Provisioned, but the request could not be marked approved: {exc.message}",
                warnings=list(outcome.warnings),
            )
        if updated is None:
            current = self.get(request_id)
            raise TransitionError(request_id, current.get("status") or "unknown", SignupStatus.approved.value)

        SIGNUP_TRANSITIONS.labels(transition="approved").inc()
        logger.info("Signup request %s approved (dealership %s)", request_id, outcome.dealership_id)
        return ApprovalResult(
            request_id=request_id,
            approved=True,
            status=SignupStatus.approved.value,
            provision=outcome,
            warnings=list(outcome.warnings),
        )

    def reject(self, request_id: str, reason: str | None = None, processed_by: str | None = None) -> dict:
        signup = self.get(request_id)
        self._require_pending(signup, SignupStatus.rejected)
        updated = self._transition(
            signup,
            SignupStatus.rejected,
            {
                "rejection_reason": (reason or "").strip() or "No reason provided",
                "processed_at": datetime.now(UTC),
                "processed_by": processed_by,
            },
        )
        if updated is None:
            current = self.get(request_id)
            raise TransitionError(request_id, current.get("status") or "unknown", SignupStatus.rejected.value)
        SIGNUP_TRANSITIONS.labels(transition="rejected").inc()
        logger.info("Signup request %s rejected", request_id)
        return updated
