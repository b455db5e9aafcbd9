from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.db import SessionLocal
from app.services.auth_dependencies import AdminContext, require_master_admin
from app.services.dealership_service import DealershipService
from app.services.identity_provider import IdentityProvider, LocalIdentityProvider, SupabaseIdentityProvider
from app.services.notification_service import Notifier, build_notifier
from app.services.provisioning_service import ProvisioningService
from app.services.record_store import RecordStore, SqlRecordStore, SupabaseRecordStore
from app.services.signup_service import SignupService


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_record_store(db: Session = Depends(get_db)) -> RecordStore:
    if settings.record_store_backend == "supabase":
        from app.services.supabase_client import get_supabase_admin_client

        return SupabaseRecordStore(get_supabase_admin_client())
    return SqlRecordStore(db)


def get_identity_provider(db: Session = Depends(get_db)) -> IdentityProvider:
    if settings.identity_backend == "supabase":
        from app.services.supabase_client import get_supabase_admin_client

        return SupabaseIdentityProvider(get_supabase_admin_client())
    return LocalIdentityProvider(db)


def get_notifier() -> Notifier:
    return build_notifier(settings.notifier_backend)


def get_provisioning_service(
    store: RecordStore = Depends(get_record_store),
    identity: IdentityProvider = Depends(get_identity_provider),
    notifier: Notifier = Depends(get_notifier),
) -> ProvisioningService:
    return ProvisioningService(
        store,
        identity,
        notifier,
        lookup_retries=settings.lookup_retries,
        retry_delay=settings.lookup_retry_delay_seconds,
    )


def get_signup_service(
    store: RecordStore = Depends(get_record_store),
    provisioning: ProvisioningService = Depends(get_provisioning_service),
) -> SignupService:
    return SignupService(store, provisioning)


def get_dealership_service(store: RecordStore = Depends(get_record_store)) -> DealershipService:
    return DealershipService(store)


__all__ = [
    "AdminContext",
    "get_db",
    "get_dealership_service",
    "get_identity_provider",
    "get_notifier",
    "get_provisioning_service",
    "get_record_store",
    "get_signup_service",
    "require_master_admin",
]
