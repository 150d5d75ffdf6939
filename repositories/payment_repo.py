from typing import Optional


class PaymentRepository:
    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def insert_payment(self, payload: dict) -> Optional[dict]:
        res = self.supabase.table('payments').insert(payload).execute()
        return res.data[0] if res and res.data else None

    def find_by_razorpay_id(self, razorpay_payment_id: str) -> Optional[dict]:
        res = self.supabase.table('payments').select('id,status').eq('razorpay_payment_id', razorpay_payment_id).limit(1).execute()
        return res.data[0] if res and res.data else None

    def update_by_razorpay_id(self, razorpay_payment_id: str, payload: dict) -> bool:
        res = self.supabase.table('payments').update(payload).eq('razorpay_payment_id', razorpay_payment_id).execute()
        return bool(res and res.data)

    def get_payment(self, payment_id, user_id: Optional[str] = None) -> Optional[dict]:
        query = self.supabase.table('payments').select('*').eq('id', payment_id)
        if user_id:
            query = query.eq('user_id', user_id)
        res = query.limit(1).execute()
        return res.data[0] if res and res.data else None

    def update_payment(self, payment_id, payload: dict) -> bool:
        res = self.supabase.table('payments').update(payload).eq('id', payment_id).execute()
        return bool(res and res.data)

    def list_for_user(self, user_id: str) -> list[dict]:
        res = self.supabase.table('payments').select('*').eq('user_id', user_id).order('created_at', desc=True).execute()
        return res.data if res and res.data else []
