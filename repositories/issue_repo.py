from typing import Optional


class IssueRepository:
    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def list_issues(self) -> list[dict]:
        res = self.supabase.table('issues').select('*').order('created_at', desc=True).execute()
        return res.data if res and res.data else []

    def get_issue(self, issue_id: str) -> Optional[dict]:
        res = self.supabase.table('issues').select('*').eq('id', issue_id).limit(1).execute()
        return res.data[0] if res and res.data else None

    def create_issue(self, payload: dict) -> Optional[dict]:
        res = self.supabase.table('issues').insert(payload).execute()
        if res and res.data:
            return res.data[0]
        return None

    def update_issue(self, issue_id: str, payload: dict) -> Optional[dict]:
        res = self.supabase.table('issues').update(payload).eq('id', issue_id).execute()
        return res.data[0] if res and res.data else None

    def delete_issue(self, issue_id: str) -> bool:
        self.supabase.table('issues').delete().eq('id', issue_id).execute()
        return True
