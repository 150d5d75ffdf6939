import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from typing import Optional

from utils.error_handling import ValidationError
from utils.logger import get_logger


EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 8
PROFILE_FIELDS = ("full_name", "phone", "unit", "bio", "avatar_url")

_profile_executor = ThreadPoolExecutor(max_workers=2)


def validate_credentials(email: str, password: str, full_name: Optional[str] = None,
                         confirm_password: Optional[str] = None, signup: bool = False) -> dict:
    errors = {}
    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_PATTERN.search(email):
        errors["email"] = "Please enter a valid email address"

    if not password:
        errors["password"] = "Password is required"
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"

    if signup:
        if not (full_name or "").strip():
            errors["full_name"] = "Full name is required"
        if not confirm_password:
            errors["confirm_password"] = "Please confirm your password"
        elif password != confirm_password:
            errors["confirm_password"] = "Passwords do not match"
    return errors


def password_strength(password: str) -> int:
    if not password:
        return 0
    checks = [
        len(password) >= MIN_PASSWORD_LENGTH,
        re.search(r"[a-z]", password),
        re.search(r"[A-Z]", password),
        re.search(r"[0-9]", password),
        re.search(r"[^A-Za-z0-9]", password),
    ]
    return sum(1 for c in checks if c)


def strength_label(score: int) -> str:
    if score == 0:
        return "Enter a password"
    if score <= 2:
        return "Weak"
    if score <= 3:
        return "Fair"
    if score <= 4:
        return "Good"
    return "Strong"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuthService:
    def __init__(self, supabase_client, profile_repo, profile_timeout: float = 2.5):
        self.supabase = supabase_client
        self.profile_repo = profile_repo
        self.profile_timeout = profile_timeout
        self.logger = get_logger()

    def signup(self, email: str, password: str, full_name: str):
        auth_res = self.supabase.auth.sign_up({
            "email": email.lower(),
            "password": password,
            "options": {"data": {"full_name": full_name}}
        })
        if not auth_res or not auth_res.user:
            return None
        return auth_res.user.id

    def signin(self, email: str, password: str):
        auth_res = self.supabase.auth.sign_in_with_password({
            "email": email.lower(),
            "password": password
        })
        if not auth_res or not auth_res.user:
            return None
        user = auth_res.user
        metadata = getattr(user, "user_metadata", None) or {}
        profile = self.fetch_profile(user.id, full_name=metadata.get("full_name"))
        session = getattr(auth_res, "session", None)
        return {
            "user_id": user.id,
            "email": getattr(user, "email", email.lower()),
            "profile": profile,
            "access_token": getattr(session, "access_token", None),
        }

    def signout(self):
        try:
            self.supabase.auth.sign_out()
        except Exception as err:
            self.logger.warning(f"Supabase sign out failed: {err}")

    def fetch_profile(self, user_id: str, full_name: Optional[str] = None) -> Optional[dict]:
        """Read the profile row, creating it on first sign in.

        Returns None when the lookup does not answer within ``profile_timeout``.
        """
        future = _profile_executor.submit(self.profile_repo.get_profile, user_id)
        try:
            profile = future.result(timeout=self.profile_timeout)
        except FuturesTimeout:
            self.logger.warning(f"Profile fetch for {user_id} timed out, continuing without profile")
            return None
        if profile:
            return profile
        now = _now()
        return self.profile_repo.create_profile({
            "id": user_id,
            "full_name": full_name or None,
            "created_at": now,
            "updated_at": now,
        })

    def update_profile(self, user_id: Optional[str], updates: dict) -> Optional[dict]:
        if not user_id:
            raise ValidationError({"general": "No user logged in"})
        payload = {k: v for k, v in (updates or {}).items() if k in PROFILE_FIELDS}
        payload["updated_at"] = _now()
        return self.profile_repo.update_profile(user_id, payload)
