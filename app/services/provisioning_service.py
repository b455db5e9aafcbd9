"""
Provisioning Service — onboard a dealership, dealer group or user account.

A run touches three collaborators in a fixed order: the record store
(dealership row), the identity provider (login account), the record store again
(profile row and admin linkage), then the notifier. None of these calls share a
transaction, so a run is written to tolerate partial completion:

- Only a failed dealership insert aborts the run. Everything after it degrades
  into ``warnings`` on the returned :class:`ProvisionResult`.
- Nothing is rolled back. Re-running the same request converges instead of
  duplicating: an existing account switches to update mode, and a same-name
  dealership is reused when its admin (or, while it has none, the email it was
  requested for) matches the request email.

Usage::

    svc = ProvisioningService(store, identity, notifier)
    result = svc.provision(ProvisionRequest(name=..., email=..., role="single_dealer_admin", ...))
    if result.needs_manual_admin_assignment:
        ...
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from email_validator import EmailNotValidError, validate_email

from app.metrics import PROVISIONING_DURATION, PROVISIONING_RUNS
from app.models.dealership import STORE_HOURS_PLACEHOLDER, DealershipType, SubscriptionTier
from app.services.common import (
    DEALER_GROUP_SCHEMA_PREFIX,
    DEALERSHIP_SCHEMA_PREFIX,
    build_schema_name,
    epoch_millis,
    is_valid_phone,
    normalize_email,
)
from app.services.exceptions import ProvisioningError, ValidationError
from app.services.identity_provider import IdentityProvider
from app.services.notification_service import Notifier
from app.services.record_store import Query, RecordStore, StoreResult
from app.services.roles import Role, parse_role, to_store_role

logger = logging.getLogger(__name__)

DEALERSHIPS = "dealerships"
PROFILES = "profiles"

# Dealership metadata key naming the email the row was created for.
REQUESTED_ADMIN_KEY = "requested_admin_email"


@dataclass
class DealerMember:
    """One member dealership of a dealer group, kept in the group's metadata."""

    name: str
    manufacturer: str
    tier: str | None = None
    brands: list[str] = field(default_factory=list)

    def descriptor(self) -> dict[str, Any]:
        return {
            "name": self.name.strip(),
            "manufacturer": self.manufacturer.strip(),
            "tier": (self.tier or SubscriptionTier.base.value).strip().lower(),
            "brands": list(self.brands),
        }


@dataclass
class ProvisionRequest:
    name: str
    email: str
    role: str | Role
    temp_password: str
    phone: str
    dealership_name: str | None = None
    manufacturer: str | None = None
    group_name: str | None = None
    members: list[DealerMember] = field(default_factory=list)
    num_dealerships: int | None = None
    # Existing dealership for plain users; ignored for admin roles.
    dealership_id: int | None = None
    # Pre-allocated tenant namespace (signup approval); used verbatim.
    schema_name: str | None = None


@dataclass
class ProvisionResult:
    success: bool
    dealership_id: int | None = None
    user_id: str | None = None
    schema_name: str | None = None
    warnings: list[str] = field(default_factory=list)
    needs_manual_admin_assignment: bool = False
    updated_existing_user: bool = False
    reused_dealership: bool = False
    duplicate_name_detected: bool = False
    failed_stage: str | None = None
    error: str | None = None

    @property
    def is_degraded(self) -> bool:
        return self.success and bool(self.warnings)


@dataclass
class _Run:
    """Step outcomes accumulated over one ``provision`` call."""

    request: ProvisionRequest
    role: Role
    email: str
    dealership_id: int | None = None
    dealership_admin_id: str | None = None
    schema_name: str | None = None
    user_id: str | None = None
    account_created: bool = False
    update_mode: bool = False
    updated_existing_user: bool = False
    reused_dealership: bool = False
    duplicate_name_detected: bool = False
    needs_manual_admin_assignment: bool = False
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning("Provisioning %s: %s", self.email, message)
        self.warnings.append(message)

    @property
    def dealership_type(self) -> DealershipType | None:
        if self.role == Role.single_dealer_admin:
            return DealershipType.single
        if self.role == Role.group_dealer_admin:
            return DealershipType.group
        return None

    @property
    def entity_name(self) -> str:
        if self.role == Role.group_dealer_admin:
            return (self.request.group_name or "").strip()
        return (self.request.dealership_name or "").strip()

    @property
    def target_dealership_id(self) -> int | None:
        if self.dealership_type is not None:
            return self.dealership_id
        return self.request.dealership_id

    def result(self) -> ProvisionResult:
        return ProvisionResult(
            success=True,
            dealership_id=self.dealership_id,
            user_id=self.user_id,
            schema_name=self.schema_name,
            warnings=list(self.warnings),
            needs_manual_admin_assignment=self.needs_manual_admin_assignment,
            updated_existing_user=self.updated_existing_user,
            reused_dealership=self.reused_dealership,
            duplicate_name_detected=self.duplicate_name_detected,
        )


def _required(value: str | None, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(field_name)
    return value


def validate_request(request: ProvisionRequest) -> Role:
    """Check every precondition; raises :class:`ValidationError` before any side effect."""
    _required(request.name, "name")
    email = _required(request.email, "email")
    role_value = request.role.value if isinstance(request.role, Role) else request.role
    _required(role_value, "role")
    _required(request.temp_password, "temp_password")
    phone = _required(request.phone, "phone")

    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email", str(exc)) from exc
    if not is_valid_phone(phone):
        raise ValidationError("phone", f"Invalid phone number: {phone!r}")

    role = parse_role(request.role)

    if role == Role.single_dealer_admin:
        _required(request.dealership_name, "dealership_name")
    elif role == Role.group_dealer_admin:
        _required(request.group_name, "group_name")
        for index, member in enumerate(request.members):
            _required(member.name, f"members[{index}].name")
            _required(member.manufacturer, f"members[{index}].manufacturer")
            if member.tier:
                try:
                    SubscriptionTier(member.tier.strip().lower())
                except ValueError as exc:
                    raise ValidationError(
                        f"members[{index}].tier", f"Unknown subscription tier: {member.tier!r}"
                    ) from exc
        if request.num_dealerships is not None and request.num_dealerships < 1:
            raise ValidationError("num_dealerships", "num_dealerships must be at least 1")
    return role


class ProvisioningService:
    def __init__(
        self,
        store: RecordStore,
        identity: IdentityProvider,
        notifier: Notifier,
        clock: Callable[[], int] | None = None,
        lookup_retries: int = 2,
        retry_delay: float = 0.25,
    ) -> None:
        self.store = store
        self.identity = identity
        self.notifier = notifier
        self.clock = clock or epoch_millis
        self.lookup_retries = max(lookup_retries, 0)
        self.retry_delay = retry_delay

    def provision(self, request: ProvisionRequest) -> ProvisionResult:
        """Run the full workflow. Raises only :class:`ValidationError`."""
        role = validate_request(request)
        run = _Run(request=request, role=role, email=normalize_email(request.email))
        started = time.monotonic()
        logger.info("Provisioning %s as %s", run.email, role.value)

        try:
            self._check_existing_dealership(run)
            self._create_dealership(run)
        except ProvisioningError as exc:
            logger.error("Provisioning %s failed at %s: %s", run.email, exc.stage, exc.message)
            self._record(role, "failed", started)
            return ProvisionResult(
                success=False,
                schema_name=run.schema_name,
                warnings=list(run.warnings),
                duplicate_name_detected=run.duplicate_name_detected,
                failed_stage=exc.stage,
                error=exc.message,
            )

        self._create_identity(run)
        self._upsert_profile(run)
        self._link_admin(run)
        self._notify(run)

        result = run.result()
        self._record(role, "degraded" if result.is_degraded else "success", started)
        logger.info(
            "Provisioned %s: dealership=%s user=%s warnings=%d",
            run.email,
            result.dealership_id,
            result.user_id,
            len(result.warnings),
        )
        return result

    @staticmethod
    def _record(role: Role, outcome: str, started: float) -> None:
        PROVISIONING_RUNS.labels(role=role.value, outcome=outcome).inc()
        PROVISIONING_DURATION.labels(role=role.value).observe(time.monotonic() - started)

    def _lookup(self, table: str, query: Query) -> StoreResult:
        """Read with bounded retries; only used for side-effect-free selects."""
        result = self.store.select(table, query)
        attempt = 0
        while not result.ok and attempt < self.lookup_retries:
            attempt += 1
            logger.info("Retrying %s lookup (%d/%d): %s", table, attempt, self.lookup_retries, result.error.message)
            if self.retry_delay:
                time.sleep(self.retry_delay * attempt)
            result = self.store.select(table, query)
        return result

    def _find_profile_by_email(self, email: str) -> dict | None:
        result = self._lookup(
            PROFILES,
            Query(filters={"email": email}, order_by="created_at", limit=1),
        )
        if not result.ok:
            logger.warning("Profile lookup for %s failed: %s", email, result.error.message)
            return None
        return result.rows[0] if result.rows else None

    # Step 1
    def _check_existing_dealership(self, run: _Run) -> None:
        dealership_type = run.dealership_type
        if dealership_type is None:
            return
        filters: dict[str, Any] = {"name": run.entity_name}
        if dealership_type == DealershipType.group:
            filters["type"] = DealershipType.group.value
        result = self._lookup(DEALERSHIPS, Query(filters=filters, order_by="id"))
        if not result.ok:
            logger.warning("Duplicate-name check for %r failed: %s", run.entity_name, result.error.message)
            return
        if not result.rows:
            return

        for row in result.rows:
            if row.get("type") == dealership_type.value and self._owned_by_requester(row, run.email):
                run.dealership_id = row["id"]
                run.dealership_admin_id = row.get("admin_user_id")
                run.schema_name = row.get("schema_name")
                run.reused_dealership = True
                logger.info("Reusing dealership %s (%r) for %s", row["id"], run.entity_name, run.email)
                return

        run.duplicate_name_detected = True
        run.warn(f"A dealership named {run.entity_name!r} already exists; creating another one")

    def _owned_by_requester(self, row: dict, email: str) -> bool:
        admin_id = row.get("admin_user_id")
        if not admin_id:
            # No admin yet: only the email that requested the row may adopt it.
            metadata = row.get("metadata")
            requested = metadata.get(REQUESTED_ADMIN_KEY) if isinstance(metadata, dict) else None
            return normalize_email(requested or "") == email
        result = self._lookup(PROFILES, Query(columns=("email",), filters={"id": admin_id}, limit=1))
        if not result.ok or not result.rows:
            return False
        return normalize_email(result.rows[0].get("email") or "") == email

    # Steps 2-3
    def _create_dealership(self, run: _Run) -> None:
        dealership_type = run.dealership_type
        if dealership_type is None or run.reused_dealership:
            return

        request = run.request
        if request.schema_name:
            run.schema_name = request.schema_name.strip()
        else:
            prefix = DEALER_GROUP_SCHEMA_PREFIX if dealership_type == DealershipType.group else DEALERSHIP_SCHEMA_PREFIX
            run.schema_name = build_schema_name(prefix, run.entity_name, self.clock())

        row: dict[str, Any] = {
            "name": run.entity_name,
            "type": dealership_type.value,
            "schema_name": run.schema_name,
            "store_hours": dict(STORE_HOURS_PLACEHOLDER),
            "num_teams": 1,
            "subscription_tier": SubscriptionTier.base.value,
        }
        metadata: dict[str, Any] = {REQUESTED_ADMIN_KEY: run.email}
        if request.manufacturer:
            row["manufacturer"] = request.manufacturer.strip()
        if dealership_type == DealershipType.group:
            members = [member.descriptor() for member in request.members]
            row["num_teams"] = request.num_dealerships or len(members) or 1
            metadata["dealerships"] = members
        row["metadata"] = metadata

        result = self.store.insert(DEALERSHIPS, row)
        if not result.ok:
            raise ProvisioningError("dealership_creation", f"Could not create dealership: {result.error.message}")
        created = result.data or {}
        if created.get("id") is None:
            raise ProvisioningError("dealership_creation", "Record store returned no dealership id")
        run.dealership_id = created["id"]
        logger.info("Created %s dealership %s (%s)", dealership_type.value, run.dealership_id, run.schema_name)

    # Step 4
    def _create_identity(self, run: _Run) -> None:
        request = run.request
        metadata = {
            "name": request.name.strip(),
            "role": to_store_role(run.role),
            "phone": request.phone.strip(),
            "dealership_id": run.target_dealership_id,
            "tenant_schema": run.schema_name,
        }
        outcome = self.identity.sign_up(run.email, request.temp_password, metadata)
        if outcome.ok:
            run.user_id = outcome.user.id
            run.account_created = True
            return

        if outcome.already_registered:
            run.update_mode = True
            self._converge_existing_profile(run)
            return

        run.warn(f"Could not create login account: {outcome.error}")

    def _converge_existing_profile(self, run: _Run) -> None:
        profile = self._find_profile_by_email(run.email)
        if profile is None:
            run.warn(f"An account already exists for {run.email} but no profile was found")
            return

        run.user_id = profile["id"]
        run.updated_existing_user = True
        store_role = to_store_role(run.role)
        target_dealership = run.target_dealership_id
        role_differs = profile.get("role") != store_role
        dealership_differs = target_dealership is not None and profile.get("dealership_id") != target_dealership
        if not (role_differs or dealership_differs):
            return

        patch: dict[str, Any] = {
            "role": store_role,
            "name": run.request.name.strip(),
            "phone": run.request.phone.strip(),
        }
        if target_dealership is not None:
            patch["dealership_id"] = target_dealership
        result = self.store.update(PROFILES, patch, {"id": profile["id"]})
        if not result.ok:
            run.warn(f"Could not update existing profile {profile['id']}: {result.error.message}")
            return
        logger.info("Updated existing profile %s for %s", profile["id"], run.email)

    # Step 5
    def _upsert_profile(self, run: _Run) -> None:
        if run.user_id is None or run.update_mode:
            return

        existing = self._find_profile_by_email(run.email)
        if existing and existing.get("id") != run.user_id:
            run.warn(f"Another profile ({existing['id']}) already uses {run.email}")

        row = {
            "id": run.user_id,
            "email": run.email,
            "name": run.request.name.strip(),
            "role": to_store_role(run.role),
            "phone": run.request.phone.strip(),
            "dealership_id": run.target_dealership_id,
        }
        patch = {key: value for key, value in row.items() if key != "id"}
        if existing and existing.get("id") == run.user_id:
            saved = self.store.update(PROFILES, patch, {"id": run.user_id})
        else:
            inserted = self.store.insert(PROFILES, row)
            if inserted.ok:
                return
            logger.warning("Profile insert for %s failed, retrying as update: %s", run.email, inserted.error.message)
            saved = self.store.update(PROFILES, patch, {"id": run.user_id})

        if not saved.ok:
            run.warn(f"Could not save profile for {run.email}: {saved.error.message}")
        elif saved.data is None:
            run.warn(f"Could not save profile for {run.email}: no profile row with id {run.user_id}")

    # Step 6
    def _link_admin(self, run: _Run) -> None:
        if run.dealership_id is None or run.dealership_type is None:
            return

        if run.user_id is None:
            profile = self._find_profile_by_email(run.email)
            if profile:
                run.user_id = profile["id"]

        if run.user_id is None:
            run.needs_manual_admin_assignment = True
            run.warn(f"Dealership {run.dealership_id} has no admin; assign one manually")
            return

        if run.dealership_admin_id == run.user_id:
            return

        result = self.store.update(DEALERSHIPS, {"admin_user_id": run.user_id}, {"id": run.dealership_id})
        if not result.ok or result.data is None:
            reason = result.error.message if result.error else "dealership row not found"
            run.needs_manual_admin_assignment = True
            run.warn(f"Could not link admin {run.user_id} to dealership {run.dealership_id}: {reason}")

    # Step 7
    def _notify(self, run: _Run) -> None:
        if not run.account_created:
            return
        try:
            self.notifier.send_temp_password_email(
                run.request.name.strip(),
                run.email,
                run.request.temp_password,
                to_store_role(run.role),
                run.schema_name,
            )
        except Exception as exc:
            run.warn(f"Temporary password email was not sent: {exc}")
