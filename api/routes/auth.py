"""
api/routes/auth.py -- Registration, OTP verification and login REST endpoints.

Routes:
  POST /auth/register     -- create an unverified account and email a code
  POST /auth/verify-otp   -- redeem a code (purpose register | login); returns a token
  POST /auth/login        -- password login; token, or OTP challenge in two-step mode
  POST /auth/resend-otp   -- re-send the registration code
  GET  /auth/me           -- current account profile (requires auth)

Security:
  [H2] All POST routes are rate-limited per client IP (AUTH_RATE_LIMIT).
  [C1] AuthService.login() goes through authenticate_account(), which runs
       bcrypt even for unknown emails. Never inline the lookup here.
  [M5] Cache-Control: no-store on every response from this router, errors
       included (the error handler in api/main.py sets it for AuthError).

Failures are raised as auth.errors.AuthError subclasses by the service and
rendered by the exception handler in api/main.py -- handlers here only deal
with the success path.
"""

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    LoginRequest,
    MeResponse,
    MessageResponse,
    OtpChallengeResponse,
    RegisterRequest,
    ResendOtpRequest,
    TokenResponse,
    UserProfile,
    VerifyOtpRequest,
)
from auth.dependencies import get_current_account
from auth.models import Account
from auth.service import AuthResult, AuthService
from core.config import get_settings

_AUTH_LIMIT = get_settings().auth_rate_limit

# Auth policy:
# - POST /auth/register, /auth/verify-otp, /auth/login, /auth/resend-otp: public
# - GET  /auth/me: requires a valid bearer token for an existing account
router = APIRouter(prefix="/auth")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _token_response(result: AuthResult) -> TokenResponse:
    return TokenResponse(
        message=result.message,
        access_token=result.access_token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=result.expires_in,
        user=UserProfile(**result.account.public_profile()),
    )


@router.post("/register", response_model=MessageResponse, status_code=201)
@limiter.limit(_AUTH_LIMIT)
def register(request: Request, response: Response, body: RegisterRequest) -> MessageResponse:
    """Create an unverified account and send a registration code.

    The code is delivered by email only; it is never part of the response.
    """
    result = _service(request).register(body.email, body.password, username=body.username)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return MessageResponse(message=result.message, email=result.email)


@router.post("/verify-otp", response_model=TokenResponse)
@limiter.limit(_AUTH_LIMIT)
def verify_otp(request: Request, response: Response, body: VerifyOtpRequest) -> TokenResponse:
    """Redeem a one-time code and receive a session token.

    Expired, wrong and already-used codes all produce the same
    invalid_or_expired_otp error.
    """
    result = _service(request).verify_otp(body.email, body.otp, purpose=body.purpose)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _token_response(result)


@router.post("/login", response_model=TokenResponse | OtpChallengeResponse)
@limiter.limit(_AUTH_LIMIT)
def login(request: Request, response: Response, body: LoginRequest) -> TokenResponse | OtpChallengeResponse:
    """Authenticate with email and password.

    Wrong password and unknown email return the identical
    invalid_credentials error. An unverified account gets not_verified only
    after the password has been confirmed.
    """
    result = _service(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    if isinstance(result, AuthResult):
        return _token_response(result)
    return OtpChallengeResponse(message=result.message, email=result.email)


@router.post("/resend-otp", response_model=MessageResponse)
@limiter.limit(_AUTH_LIMIT)
def resend_otp(request: Request, response: Response, body: ResendOtpRequest) -> MessageResponse:
    """Send a fresh registration code, invalidating the previous one."""
    result = _service(request).resend_otp(body.email)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return MessageResponse(message=result.message, email=result.email)


@router.get("/me", response_model=MeResponse)
def me(current_account: Account = Depends(get_current_account)) -> MeResponse:
    """Return the profile of the account the bearer token belongs to."""
    return MeResponse(
        id=current_account.id,
        username=current_account.username,
        email=current_account.email,
        is_verified=current_account.is_verified,
        created_at=current_account.created_at,
        last_login=current_account.last_login,
    )
