#!/usr/bin/env python3
"""
Startup script for the CoHub Help Desk
"""
from config import Config
from utils.logger import get_logger


def check_supabase(client):
    """Check that the profiles table answers a one-row select"""
    if client is None:
        print("❌ Supabase is not configured")
        return False
    try:
        from repositories.profile_repo import ProfileRepository
        ProfileRepository(client).ping()
        print("✅ Database connection successful")
        return True
    except Exception as e:
        print(f"❌ Database connection test failed: {e}")
        return False


def main():
    """Main startup function"""
    print("🏠  CoHub Help Desk Startup")
    print("=" * 50)

    # Check configuration
    config_status = Config.get_config_status()
    print("\n📋 Configuration Status:")
    for key, value in config_status.items():
        status = "✅" if value else "❌"
        print(f"  {status} {key}: {value}")

    from app import app, supabase

    if not check_supabase(supabase):
        print("\n⚠️  Warning: issues will be served from demo data until the database is reachable.")
        print("   Set SUPABASE_URL and SUPABASE_KEY in your environment or .env file.")

    if not Config.is_razorpay_configured():
        print("⚠️  Razorpay keys missing: checkout button will be hidden.")
    if not Config.is_webhook_configured():
        print("⚠️  RAZORPAY_WEBHOOK_SECRET missing: webhooks will be rejected.")

    print("\n🚀 Starting Flask application...")
    get_logger().info("Help desk starting")
    try:
        app.run(debug=True)
    except KeyboardInterrupt:
        print("\n👋 Shutting down...")


if __name__ == "__main__":
    main()
