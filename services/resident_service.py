from utils.logger import log_exception


DEMO_AVATAR = "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?w=150&h=150&fit=crop&crop=face"


def demo_residents() -> list[dict]:
    return [{
        "id": "demo-1",
        "user_id": "demo-user-1",
        "full_name": "Demo Resident",
        "avatar_url": DEMO_AVATAR,
    }]


def get_initials(name) -> str:
    if not name or not name.strip():
        return "U"
    return "".join(part[0] for part in name.split()).upper()[:2]


def display_name(name) -> str:
    return name or "Anonymous User"


class ResidentService:
    def __init__(self, profile_repo=None):
        self.profile_repo = profile_repo

    def list_residents(self, authenticated: bool) -> dict:
        if not authenticated:
            return {"residents": demo_residents(), "demo_mode": True, "notice": None}
        try:
            if self.profile_repo is None:
                raise RuntimeError("Database is not configured.")
            rows = self.profile_repo.list_residents()
            residents = [{
                "id": r.get("id"),
                "user_id": r.get("id"),
                "full_name": r.get("full_name") or r.get("fullName"),
                "avatar_url": r.get("avatar_url") or r.get("avatarUrl"),
            } for r in rows]
            return {"residents": residents, "demo_mode": False, "notice": None}
        except Exception as err:
            log_exception(err, context="list_residents:")
            return {
                "residents": demo_residents(),
                "demo_mode": True,
                "notice": "Showing demo data. Sign in to view real residents.",
            }
