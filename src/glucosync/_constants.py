"""Internal constants shared across the library."""

from datetime import timedelta

OFFICIAL_BASE_URL = "https://api.dexcom.eu"
OFFICIAL_SANDBOX_URL = "https://sandbox-api.dexcom.com"
OFFICIAL_EGVS_PATH = "/v3/users/self/egvs"
OFFICIAL_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
#: EU processing delay of the official feed, in hours.
OFFICIAL_DELAY_HOURS = 3
OFFICIAL_MAX_WINDOW = timedelta(days=30)

SHARE_SERVERS: dict[str, str] = {
    "us": "https://share2.dexcom.com",
    "international": "https://shareous1.dexcom.com",
}
SHARE_AUTHENTICATE_PATH = "/ShareWebServices/Services/General/AuthenticatePublisherAccount"
SHARE_LOGIN_BY_ID_PATH = "/ShareWebServices/Services/General/LoginPublisherAccountById"
SHARE_READINGS_PATH = "/ShareWebServices/Services/Publisher/ReadPublisherLatestGlucoseValues"
#: Public application id used by the community Share clients.
SHARE_APPLICATION_ID = "d8665ade-9673-4e27-9ff6-92db4ce13d13"
SHARE_USER_AGENT = "Dexcom Share/3.0.2.11 CFNetwork/672.0.2 Darwin/14.0.0"
SHARE_NULL_SESSION_ID = "00000000-0000-0000-0000-000000000000"
SHARE_MAX_MINUTES = 1440
SHARE_MAX_COUNT = 288
SHARE_MIN_COUNT = 1
#: Share payload fault codes that mean the session id is no longer valid.
SHARE_SESSION_EXPIRED_CODES: frozenset[str] = frozenset({"SessionIdNotFound", "SessionNotValid"})
SHARE_BAD_CREDENTIAL_CODES: frozenset[str] = frozenset(
    {"AccountPasswordInvalid", "SSO_AuthenticateAccountNotFound", "SSO_AuthenticatePasswordInvalid"}
)

#: CGM sensors report once every five minutes.
CGM_SAMPLE_INTERVAL = timedelta(minutes=5)

DEDUP_TOLERANCE = timedelta(seconds=60)
GAP_THRESHOLD = timedelta(minutes=15)

# ------------------------------------------------------------------
# Plausibility limits applied before persisting (mg/dL)
# ------------------------------------------------------------------

MIN_PHYSIOLOGICAL_GLUCOSE = 40.0
MAX_PHYSIOLOGICAL_GLUCOSE = 400.0

MMOL_TO_MGDL = 18.0182


def mmol_to_mgdl(value: float) -> float:
    """Convert a glucose concentration from mmol/L to mg/dL."""
    return round(float(value) * MMOL_TO_MGDL, 1)
