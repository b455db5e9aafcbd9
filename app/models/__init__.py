from app.models.auth_identity import AuthIdentity  # noqa: F401
from app.models.dealership import (  # noqa: F401
    STORE_HOURS_PLACEHOLDER,
    Dealership,
    DealershipType,
    SubscriptionTier,
)
from app.models.profile import Profile  # noqa: F401
from app.models.signup_request import SignupRequest, SignupStatus, SignupTier  # noqa: F401
