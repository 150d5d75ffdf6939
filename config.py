"""
Configuration management for CoHub Help Desk
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    """Application configuration"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('FLASK_SECRET_KEY', 'cohub_help_desk_key')

    # Supabase Configuration
    SUPABASE_URL = os.environ.get('SUPABASE_URL', '')
    SUPABASE_KEY = os.environ.get('SUPABASE_KEY', '')
    # Service role key for payment writes; falls back to the anon key
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY', '') or SUPABASE_KEY

    # Razorpay Configuration
    RAZORPAY_KEY_ID = os.environ.get('RAZORPAY_KEY_ID', '')
    RAZORPAY_KEY_SECRET = os.environ.get('RAZORPAY_KEY_SECRET', '')
    RAZORPAY_WEBHOOK_SECRET = os.environ.get('RAZORPAY_WEBHOOK_SECRET', '')

    # UPI Configuration
    UPI_ID = os.environ.get('UPI_ID', '')
    UPI_PAYEE_NAME = os.environ.get('UPI_PAYEE_NAME', 'CoHub Community')
    DEFAULT_PAYMENT_AMOUNT = float(os.environ.get('DEFAULT_PAYMENT_AMOUNT', '500'))

    # Issue feed timeouts (seconds)
    ISSUE_FETCH_TIMEOUT = float(os.environ.get('ISSUE_FETCH_TIMEOUT', '2.5'))
    ISSUE_REFRESH_TIMEOUT = float(os.environ.get('ISSUE_REFRESH_TIMEOUT', '8'))

    # JSON API base URL used by the Python client
    HELPDESK_API_URL = os.environ.get('HELPDESK_API_URL', 'http://localhost:5000/api')

    @classmethod
    def is_supabase_configured(cls):
        """Check if Supabase is properly configured"""
        return bool(cls.SUPABASE_URL and cls.SUPABASE_KEY)

    @classmethod
    def is_razorpay_configured(cls):
        """Check if Razorpay checkout keys are set"""
        return bool(cls.RAZORPAY_KEY_ID and cls.RAZORPAY_KEY_SECRET)

    @classmethod
    def is_webhook_configured(cls):
        return bool(cls.RAZORPAY_WEBHOOK_SECRET)

    @classmethod
    def is_upi_configured(cls):
        return bool(cls.UPI_ID)

    @classmethod
    def get_config_status(cls):
        """Get configuration status for debugging"""
        return {
            'supabase_configured': cls.is_supabase_configured(),
            'razorpay_configured': cls.is_razorpay_configured(),
            'webhook_configured': cls.is_webhook_configured(),
            'upi_configured': cls.is_upi_configured(),
            'supabase_url_set': bool(cls.SUPABASE_URL),
            'supabase_key_set': bool(cls.SUPABASE_KEY),
            'service_role_key_set': bool(os.environ.get('SUPABASE_SERVICE_ROLE_KEY')),
            'razorpay_key_id_set': bool(cls.RAZORPAY_KEY_ID),
            'razorpay_key_secret_set': bool(cls.RAZORPAY_KEY_SECRET),
        }
