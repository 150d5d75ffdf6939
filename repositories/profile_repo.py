from typing import Optional


class ProfileRepository:
    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def get_profile(self, user_id: str) -> Optional[dict]:
        resp = self.supabase.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        return resp.data[0] if resp and resp.data else None

    def create_profile(self, profile: dict) -> Optional[dict]:
        resp = self.supabase.table("profiles").insert(profile).execute()
        return resp.data[0] if resp and resp.data else None

    def update_profile(self, user_id: str, updates: dict) -> Optional[dict]:
        resp = self.supabase.table("profiles").update(updates).eq("id", user_id).execute()
        return resp.data[0] if resp and resp.data else None

    def list_residents(self) -> list[dict]:
        resp = self.supabase.table("profiles").select("id,full_name,avatar_url").order("full_name").execute()
        return resp.data if resp and resp.data else []

    def ping(self) -> bool:
        self.supabase.table("profiles").select("id").limit(1).execute()
        return True
