"""Tests for ProvisioningService."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from app.models.dealership import Dealership
from app.models.profile import Profile
from app.services.exceptions import ValidationError
from app.services.pricing_service import monthly_cost
from app.services.provisioning_service import DealerMember, ProvisionRequest

FIRST_TICK = 1_700_000_001_000


def _jane(**overrides) -> ProvisionRequest:
    fields = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "role": "single_dealer_admin",
        "temp_password": "Abc12345!",
        "phone": "+15551234567",
        "dealership_name": "Jane Auto",
    }
    fields.update(overrides)
    return ProvisionRequest(**fields)


def _group(**overrides) -> ProvisionRequest:
    fields = {
        "name": "Gary Group",
        "email": "gary@example.com",
        "role": "group_dealer_admin",
        "temp_password": "Abc12345!",
        "phone": "555-987-6543",
        "group_name": "Metro Group",
        "members": [
            DealerMember(name="Metro Ford", manufacturer="Ford", tier="base", brands=["Ford"]),
            DealerMember(name="Metro Kia", manufacturer="Kia", tier="plus"),
        ],
    }
    fields.update(overrides)
    return ProvisionRequest(**fields)


def _dealerships(db_session) -> list[Dealership]:
    db_session.expire_all()
    return db_session.query(Dealership).order_by(Dealership.id).all()


def _profiles(db_session) -> list[Profile]:
    db_session.expire_all()
    return db_session.query(Profile).order_by(Profile.id).all()


def _runs(role: str, outcome: str) -> float:
    return REGISTRY.get_sample_value("provisioning_runs_total", {"role": role, "outcome": outcome}) or 0.0


class TestEndToEnd:
    def test_single_dealer_admin_from_scratch(self, provisioning, notifier, db_session):
        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.warnings == []
        assert result.is_degraded is False

        dealerships = _dealerships(db_session)
        assert len(dealerships) == 1
        dealership = dealerships[0]
        assert dealership.name == "Jane Auto"
        assert dealership.type == "single"
        assert dealership.schema_name == f"dealership_jane_auto_{FIRST_TICK}"
        assert dealership.num_teams == 1
        assert dealership.subscription_tier == "base"
        assert dealership.store_hours == {"configured": False}

        profiles = _profiles(db_session)
        assert len(profiles) == 1
        profile = profiles[0]
        assert profile.email == "jane@example.com"
        assert profile.role == "single_dealer_admin"
        assert profile.dealership_id == dealership.id
        assert dealership.admin_user_id == profile.id

        assert result.dealership_id == dealership.id
        assert result.user_id == profile.id
        assert result.schema_name == dealership.schema_name
        assert notifier.sent == [
            {
                "name": "Jane Doe",
                "email": "jane@example.com",
                "temp_password": "Abc12345!",
                "role": "single_dealer_admin",
                "schema_name": dealership.schema_name,
            }
        ]

    def test_identity_metadata_carries_tenant(self, provisioning, identity):
        result = provisioning.provision(_jane())
        metadata = identity.calls[0]["metadata"]
        assert metadata == {
            "name": "Jane Doe",
            "role": "single_dealer_admin",
            "phone": "+15551234567",
            "dealership_id": result.dealership_id,
            "tenant_schema": result.schema_name,
        }

    def test_email_is_normalized(self, provisioning, db_session):
        provisioning.provision(_jane(email="  Jane@Example.COM "))
        assert _profiles(db_session)[0].email == "jane@example.com"

    def test_records_success_metric(self, provisioning):
        before = _runs("single_dealer_admin", "success")
        provisioning.provision(_jane())
        assert _runs("single_dealer_admin", "success") == before + 1


class TestReentry:
    def test_same_request_twice_converges(self, provisioning, notifier, db_session):
        first = provisioning.provision(_jane())
        second = provisioning.provision(_jane())

        assert second.success is True
        assert second.warnings == []
        assert second.reused_dealership is True
        assert second.updated_existing_user is True
        assert second.dealership_id == first.dealership_id
        assert second.user_id == first.user_id
        assert second.schema_name == first.schema_name

        assert len(_dealerships(db_session)) == 1
        profiles = _profiles(db_session)
        assert len(profiles) == 1
        assert profiles[0].role == "single_dealer_admin"
        assert profiles[0].dealership_id == first.dealership_id
        # Only the first run created an account.
        assert len(notifier.sent) == 1

    def test_existing_account_role_is_converged(self, provisioning, identity, db_session):
        identity.register("bob@example.com", "user-bob")
        db_session.add(Profile(id="user-bob", email="bob@example.com", name="Bob", role="salesperson"))
        db_session.commit()

        result = provisioning.provision(
            _jane(name="Bob Builder", email="bob@example.com", dealership_name="Bob Motors")
        )

        assert result.success is True
        assert result.updated_existing_user is True
        assert result.user_id == "user-bob"
        profile = _profiles(db_session)[0]
        assert profile.role == "single_dealer_admin"
        assert profile.dealership_id == result.dealership_id
        assert profile.name == "Bob Builder"
        assert _dealerships(db_session)[0].admin_user_id == "user-bob"

    def test_existing_account_without_profile_needs_manual_assignment(self, provisioning, identity, db_session):
        identity.register("ghost@example.com", "user-ghost")

        result = provisioning.provision(_jane(email="ghost@example.com", dealership_name="Ghost Cars"))

        assert result.success is True
        assert result.user_id is None
        assert result.needs_manual_admin_assignment is True
        assert any("no profile" in warning for warning in result.warnings)
        assert _dealerships(db_session)[0].admin_user_id is None
        assert _profiles(db_session) == []

    def test_requester_readopts_own_adminless_dealership(self, provisioning, identity, db_session):
        identity.fail_with = "rate limit exceeded"
        first = provisioning.provision(_jane(dealership_name="Springfield Toyota"))
        assert first.needs_manual_admin_assignment is True

        identity.fail_with = None
        second = provisioning.provision(_jane(dealership_name="Springfield Toyota"))

        assert second.reused_dealership is True
        assert second.duplicate_name_detected is False
        assert second.dealership_id == first.dealership_id
        assert second.schema_name == first.schema_name
        dealerships = _dealerships(db_session)
        assert len(dealerships) == 1
        assert dealerships[0].admin_user_id == second.user_id

    def test_other_requester_cannot_adopt_adminless_dealership(self, provisioning, identity, db_session):
        identity.fail_with = "rate limit exceeded"
        first = provisioning.provision(_jane(dealership_name="Springfield Toyota"))

        identity.fail_with = None
        second = provisioning.provision(
            _jane(name="Bob Builder", email="bob@example.com", dealership_name="Springfield Toyota")
        )

        assert second.reused_dealership is False
        assert second.duplicate_name_detected is True
        assert second.dealership_id != first.dealership_id
        assert any("already exists" in warning for warning in second.warnings)
        dealerships = {row.id: row for row in _dealerships(db_session)}
        assert len(dealerships) == 2
        assert dealerships[first.dealership_id].admin_user_id is None
        assert dealerships[second.dealership_id].admin_user_id == second.user_id

    def test_legacy_row_without_requester_is_not_adopted(self, provisioning, db_session):
        db_session.add(
            Dealership(name="Orphan Motors", type="single", schema_name="dealership_orphan_motors_1", num_teams=1)
        )
        db_session.commit()

        result = provisioning.provision(_jane(dealership_name="Orphan Motors"))

        assert result.reused_dealership is False
        assert result.duplicate_name_detected is True
        assert result.schema_name != "dealership_orphan_motors_1"
        assert len(_dealerships(db_session)) == 2


class TestNamespace:
    def test_same_name_different_admins_get_distinct_schemas(self, provisioning, db_session):
        first = provisioning.provision(_group())
        second = provisioning.provision(_group(email="other@example.com", name="Other Admin"))

        assert first.schema_name.startswith("dealer_group_metro_group_")
        assert second.schema_name.startswith("dealer_group_metro_group_")
        assert first.schema_name != second.schema_name
        assert second.duplicate_name_detected is True
        assert second.reused_dealership is False
        assert any("already exists" in warning for warning in second.warnings)
        assert len(_dealerships(db_session)) == 2

    def test_caller_supplied_schema_is_used_verbatim(self, provisioning, db_session):
        result = provisioning.provision(_jane(schema_name="dealership_preallocated_42"))
        assert result.schema_name == "dealership_preallocated_42"
        assert _dealerships(db_session)[0].schema_name == "dealership_preallocated_42"


class TestFailurePolicy:
    def test_dealership_insert_failure_is_fatal(self, provisioning, store, identity, notifier, db_session):
        before = _runs("single_dealer_admin", "failed")
        store.fail[("insert", "dealerships")] = 1

        result = provisioning.provision(_jane())

        assert result.success is False
        assert result.failed_stage == "dealership_creation"
        assert "insert rejected" in result.error
        assert result.is_degraded is False
        assert identity.calls == []
        assert notifier.sent == []
        assert _profiles(db_session) == []
        assert ("insert", "profiles") not in store.calls
        assert _runs("single_dealer_admin", "failed") == before + 1

    def test_identity_failure_degrades(self, provisioning, identity, notifier, db_session):
        identity.fail_with = "rate limit exceeded"

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.is_degraded is True
        assert result.needs_manual_admin_assignment is True
        assert result.user_id is None
        assert any("rate limit exceeded" in warning for warning in result.warnings)
        dealership = _dealerships(db_session)[0]
        assert dealership.admin_user_id is None
        assert notifier.sent == []

    def test_duplicate_check_failure_is_ignored(self, provisioning, store, db_session):
        store.fail[("select", "dealerships")] = -1

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.duplicate_name_detected is False
        assert len(_dealerships(db_session)) == 1

    def test_lookup_is_retried_once(self, provisioning, store, db_session):
        db_session.add(
            Dealership(
                name="Jane Auto",
                type="single",
                schema_name="dealership_jane_auto_1",
                num_teams=1,
                metadata_={"requested_admin_email": "jane@example.com"},
            )
        )
        db_session.commit()
        store.fail[("select", "dealerships")] = 1

        result = provisioning.provision(_jane())

        assert store.calls.count(("select", "dealerships")) == 2
        assert result.reused_dealership is True

    def test_profile_insert_conflict_retries_as_update(self, provisioning, db_session):
        db_session.add(Profile(id="user-0001", email="stale@example.com", role="salesperson"))
        db_session.commit()

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.warnings == []
        profiles = _profiles(db_session)
        assert len(profiles) == 1
        assert profiles[0].email == "jane@example.com"
        assert profiles[0].role == "single_dealer_admin"

    def test_profile_failure_is_a_warning(self, provisioning, store, db_session):
        store.fail[("insert", "profiles")] = 1
        store.fail[("update", "profiles")] = 1

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.is_degraded is True
        assert any("Could not save profile" in warning for warning in result.warnings)
        # Linkage still uses the identity id.
        assert _dealerships(db_session)[0].admin_user_id == result.user_id

    def test_linkage_failure_needs_manual_assignment(self, provisioning, store, db_session):
        store.fail[("update", "dealerships")] = 1

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.needs_manual_admin_assignment is True
        assert _dealerships(db_session)[0].admin_user_id is None

    def test_notification_failure_never_fails_the_run(self, provisioning, notifier):
        notifier.fail = True

        result = provisioning.provision(_jane())

        assert result.success is True
        assert result.needs_manual_admin_assignment is False
        assert any("email was not sent" in warning for warning in result.warnings)


class TestRoles:
    def test_finance_manager_has_no_dealership(self, provisioning, notifier, db_session):
        result = provisioning.provision(_jane(role="single_finance_manager", dealership_name=None))

        assert result.success is True
        assert result.dealership_id is None
        assert result.schema_name is None
        assert _dealerships(db_session) == []
        profile = _profiles(db_session)[0]
        assert profile.role == "single_finance_manager"
        assert profile.dealership_id is None
        assert len(notifier.sent) == 1

    def test_plain_user_joins_existing_dealership(self, provisioning, db_session):
        dealership = Dealership(name="Lot 9", type="single", schema_name="dealership_lot_9_1", num_teams=1)
        db_session.add(dealership)
        db_session.commit()

        result = provisioning.provision(
            _jane(role="salesperson", dealership_name=None, dealership_id=dealership.id)
        )

        assert result.dealership_id is None
        profile = _profiles(db_session)[0]
        assert profile.role == "salesperson"
        assert profile.dealership_id == dealership.id
        assert len(_dealerships(db_session)) == 1

    def test_legacy_alias_is_stored_canonically(self, provisioning, db_session):
        provisioning.provision(_jane(role="dealership_admin"))
        assert _profiles(db_session)[0].role == "single_dealer_admin"

    def test_group_admin_creates_group_with_members(self, provisioning, db_session):
        result = provisioning.provision(_group())

        assert result.success is True
        group = _dealerships(db_session)[0]
        assert group.type == "group"
        assert group.num_teams == 2
        assert group.schema_name == f"dealer_group_metro_group_{FIRST_TICK}"
        assert group.metadata_ == {
            "requested_admin_email": "gary@example.com",
            "dealerships": [
                {"name": "Metro Ford", "manufacturer": "Ford", "tier": "base", "brands": ["Ford"]},
                {"name": "Metro Kia", "manufacturer": "Kia", "tier": "plus", "brands": []},
            ]
        }
        assert monthly_cost(group) == 250 + 350
        assert _profiles(db_session)[0].role == "group_dealer_admin"

    def test_group_dealership_count_overrides_member_count(self, provisioning, db_session):
        provisioning.provision(_group(members=[], num_dealerships=4))
        assert _dealerships(db_session)[0].num_teams == 4


class TestValidation:
    @pytest.mark.parametrize("field_name", ["name", "email", "temp_password", "phone"])
    def test_missing_required_field(self, provisioning, store, field_name):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_jane(**{field_name: "  "}))
        assert exc.value.field == field_name
        assert store.calls == []

    def test_bad_phone(self, provisioning, store):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_jane(phone="call me"))
        assert exc.value.field == "phone"
        assert store.calls == []

    def test_bad_email(self, provisioning):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_jane(email="not-an-email"))
        assert exc.value.field == "email"

    def test_unknown_role(self, provisioning, store):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_jane(role="superuser"))
        assert exc.value.field == "role"
        assert store.calls == []

    def test_single_admin_requires_dealership_name(self, provisioning):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_jane(dealership_name=""))
        assert exc.value.field == "dealership_name"

    def test_group_admin_requires_group_name(self, provisioning):
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_group(group_name=None))
        assert exc.value.field == "group_name"

    def test_group_member_requires_manufacturer(self, provisioning, identity):
        members = [DealerMember(name="Metro Ford", manufacturer="Ford"), DealerMember(name="Metro ?", manufacturer="")]
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_group(members=members))
        assert exc.value.field == "members[1].manufacturer"
        assert identity.calls == []

    def test_group_member_tier_must_be_known(self, provisioning):
        members = [DealerMember(name="Metro Ford", manufacturer="Ford", tier="gold")]
        with pytest.raises(ValidationError) as exc:
            provisioning.provision(_group(members=members))
        assert exc.value.field == "members[0].tier"
