"""Wire-level names used by the verification server and key server APIs."""

CHAFF_HEADER = "X-Chaff"
CHAFF_HEADER_VALUE = "1"
JSON_CONTENT_TYPE = "application/json"


class UploadV1:
    """Key server ``v1`` publish API."""

    REVISION_TOKEN = "revisionToken"
    NUM_INSERTED_EXPOSURES = "insertedExposures"
    KEY = "key"
    ROLLING_START_NUM = "rollingStartNumber"
    ROLLING_PERIOD = "rollingPeriod"
    TRANSMISSION_RISK = "transmissionRisk"
    KEYS = "temporaryExposureKeys"
    REGIONS = "regions"
    APP_PACKAGE = "healthAuthorityID"
    HMAC_KEY = "hmacKey"
    ONSET = "symptomOnsetInterval"
    TRAVELER = "traveler"
    VERIFICATION_CERT = "verificationPayload"
    PADDING = "padding"
    ERR_MESSAGE = "error"
    ERR_CODE = "code"

    class Error:
        UNKNOWN_APP = "unknown_health_authority_id"
        HA_CONFIG_LOAD_FAIL = "unable_to_load_health_authority"
        HA_REGION_CONFIG = "health_authority_missing_region_config"
        CERT_INVALID = "health_authority_verification_certificate_invalid"
        BAD_REQUEST = "bad_request"
        INTERNAL_ERROR = "internal_error"
        MISSING_REVISION_TOKEN = "missing_revision_token"
        INVALID_REVISION_TOKEN = "invalid_revision_token"
        KEY_ALREADY_REVISED = "key_already_revised"
        INVALID_REVISION_TRANSITION = "invalid_report_type_transition"
        PARTIAL_FAILURE = "partial_failure"


class VerifyV1:
    """Verification server ``v1`` API."""

    API_KEY_HEADER = "X-API-Key"

    ONSET_DATE = "symptomDate"
    TEST_DATE = "testDate"
    TEST_TYPE = "testtype"
    # Some server versions spell it in camel case.
    TEST_TYPE_ALT = "testType"
    PHONE = "phone"
    VERIFICATION_CODE = "code"
    VERIFICATION_TOKEN = "token"
    EXPIRY_STR = "expiresAt"
    EXPIRY_TIMESTAMP = "expiresAtTimestamp"
    ACCEPT_TEST_TYPES = "accept"
    HMAC_KEY = "ekeyhmac"
    CERT = "certificate"
    PADDING = "padding"
    ERR_MESSAGE = "error"
    ERR_CODE = "errorCode"
    TZ_OFFSET = "tzOffset"
    NONCE = "nonce"

    class Error:
        UNPARSEABLE = "unparsable_request"
        INTERNAL = "internal_server_error"
        CODE_INVALID = "code_invalid"
        CODE_EXPIRED = "code_expired"
        CODE_NOT_FOUND = "code_not_found"
        CODE_USER_UNAUTHORIZED = "code_user_unauthorized"
        UNSUPPORTED_TEST_TYPE = "unsupported_test_type"
        INVALID_TEST_TYPE = "invalid_test_type"
        TOKEN_INVALID = "token_invalid"
        TOKEN_EXPIRED = "token_expired"
        HMAC_INVALID = "hmac_invalid"
        MISSING_DATE = "missing_date"
        INVALID_DATE = "invalid_date"
        MISSING_NONCE = "missing_nonce"
        MISSING_PHONE = "missing_phone"
