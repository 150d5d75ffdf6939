from flask import Flask, render_template, request, redirect, url_for, session, flash, jsonify, g
from supabase import create_client, Client
import razorpay
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from config import Config
from repositories.issue_repo import IssueRepository
from repositories.profile_repo import ProfileRepository
from repositories.payment_repo import PaymentRepository
from services.issue_service import (
    IssueService, ISSUE_CATEGORIES, ISSUE_PRIORITIES, ISSUE_STATUSES,
    convert_db_issue, filter_issues_by_status, new_feed_state,
)
from services.stats_service import issue_stats, profile_stats, split_open_resolved, pending_count
from services.auth_service import AuthService, validate_credentials, password_strength, strength_label
from services.resident_service import ResidentService, get_initials, display_name
from services.payment_service import PaymentService
from services.upi_payment_service import UPIPaymentService
from utils.auth import login_required, api_auth_required, is_authenticated_or_guest
from utils.error_handling import handle_errors, api_errors, ValidationError, APIError
from utils.logger import get_logger, log_exception

app = Flask(__name__)
app.secret_key = Config.SECRET_KEY

logger = get_logger()

# Centralized, dictionary-based application state shared across requests
APP_STATE = {
    "issue_feed": new_feed_state(),
    "executor": ThreadPoolExecutor(max_workers=4),
    "razorpay_client": razorpay.Client(auth=(Config.RAZORPAY_KEY_ID, Config.RAZORPAY_KEY_SECRET))
    if Config.is_razorpay_configured() else None,
}

DEFAULT_SETTINGS = {
    "notifications": {
        "email_notifications": True,
        "push_notifications": True,
        "issue_updates": True,
        "maintenance_alerts": True,
        "community_announcements": False,
        "weekly_digest": True,
    },
    "preferences": {
        "theme": "system",
        "language": "en",
        "timezone": "UTC",
        "auto_refresh": True,
        "compact_mode": False,
        "show_tutorials": True,
    },
    "privacy": {
        "profile_visibility": "community",
        "show_email": False,
        "show_phone": False,
        "allow_contact": True,
        "data_analytics": True,
    },
}

# Supabase client setup
if not Config.is_supabase_configured():
    logger.warning("SUPABASE_URL or SUPABASE_KEY is not set. Database features will be disabled.")

supabase: Client = create_client(Config.SUPABASE_URL, Config.SUPABASE_KEY) if Config.is_supabase_configured() else None
# Payment writes use the service role key when one is provided
payments_db: Client = (
    create_client(Config.SUPABASE_URL, Config.SUPABASE_SERVICE_ROLE_KEY)
    if Config.is_supabase_configured() and Config.SUPABASE_SERVICE_ROLE_KEY != Config.SUPABASE_KEY
    else None
)


# Helpers
def sb_available() -> bool:
    return supabase is not None


def payments_client():
    return payments_db if payments_db is not None else supabase


def issue_service() -> IssueService:
    return IssueService(
        IssueRepository(supabase) if sb_available() else None,
        state=APP_STATE["issue_feed"],
        executor=APP_STATE["executor"],
        fetch_timeout=Config.ISSUE_FETCH_TIMEOUT,
        refresh_timeout=Config.ISSUE_REFRESH_TIMEOUT,
    )


def auth_service() -> AuthService:
    return AuthService(supabase, ProfileRepository(supabase))


def payment_service() -> PaymentService:
    client = payments_client()
    return PaymentService(
        PaymentRepository(client) if client is not None else None,
        key_id=Config.RAZORPAY_KEY_ID,
        webhook_secret=Config.RAZORPAY_WEBHOOK_SECRET,
        client=APP_STATE["razorpay_client"],
    )


def upi_service() -> UPIPaymentService:
    client = payments_client()
    return UPIPaymentService(
        PaymentRepository(client) if client is not None else None,
        upi_id=Config.UPI_ID,
        payee_name=Config.UPI_PAYEE_NAME,
    )


def current_user() -> dict:
    return {
        "id": session.get("user_id"),
        "name": session.get("user_name"),
        "email": session.get("user_email"),
        "phone": session.get("user_phone"),
    }


def user_settings() -> dict:
    stored = session.get("settings") or {}
    return {section: {**defaults, **(stored.get(section) or {})} for section, defaults in DEFAULT_SETTINGS.items()}


def issue_json(issue: dict) -> dict:
    data = dict(issue)
    submitted_at = data.pop("submitted_at", None)
    data["created_at"] = submitted_at.isoformat() if isinstance(submitted_at, datetime) else submitted_at
    return data


@app.context_processor
def inject_globals():
    return {
        "signed_in": "user_id" in session,
        "guest_mode": bool(session.get("auth_skipped")),
        "user_name": session.get("user_name"),
        "get_initials": get_initials,
        "display_name": display_name,
    }


# Routes
@app.route("/", methods=["GET", "POST"])
def index():
    service = issue_service()

    if request.method == "POST":
        if not is_authenticated_or_guest():
            flash("Please sign in to create issues.", "warning")
            return redirect(url_for("auth_page"))
        if not sb_available():
            flash("Database is not configured.", "danger")
            return redirect(url_for("index"))

        form = {
            "title": request.form.get("title", ""),
            "description": request.form.get("description", ""),
            "category": request.form.get("category", ""),
            "priority": request.form.get("priority", "medium"),
            "submitted_by": request.form.get("submitted_by", ""),
            "unit": request.form.get("unit", ""),
        }
        try:
            service.create_issue(form)
            flash("Your issue has been reported successfully.", "success")
        except ValidationError:
            flash("Missing Information: please fill in all required fields.", "danger")
        except Exception as err:
            log_exception(err, context="create_issue:")
            flash(f"Error Creating Issue: {err}", "danger")
        return redirect(url_for("index"))

    feed = service.fetch_issues()
    if feed["notice"]:
        flash(feed["notice"], "info")
    status = request.args.get("status", "all")
    issues = feed["issues"]
    return render_template(
        "index.html",
        issues=filter_issues_by_status(issues, status),
        active_status=status,
        demo_mode=feed["demo_mode"],
        stats=issue_stats(issues),
        pending_count=pending_count(issues),
        categories=ISSUE_CATEGORIES,
        priorities=ISSUE_PRIORITIES,
        statuses=ISSUE_STATUSES,
    )


@app.route("/dashboard")
def dashboard():
    feed = issue_service().fetch_issues()
    if feed["notice"]:
        flash(feed["notice"], "info")
    issues = feed["issues"]
    return render_template(
        "dashboard.html",
        stats=issue_stats(issues),
        sections=split_open_resolved(issues),
        demo_mode=feed["demo_mode"],
        pending_count=pending_count(issues),
    )


@app.route("/issues/<issue_id>/status", methods=["POST"])
@handle_errors("dashboard", "Error Updating Issue:")
def update_issue_status(issue_id):
    if not is_authenticated_or_guest():
        flash("Please sign in first!", "warning")
        return redirect(url_for("auth_page"))
    if not sb_available():
        flash("Database is not configured.", "danger")
        return redirect(url_for("dashboard"))

    status = request.form.get("status", "")
    issue_service().update_issue_status(issue_id, status)
    flash(f"Issue status changed to {status.replace('-', ' ')}.", "success")
    return redirect(request.form.get("next") or url_for("dashboard"))


@app.route("/residents")
def residents():
    service = ResidentService(ProfileRepository(supabase) if sb_available() else None)
    result = service.list_residents(is_authenticated_or_guest())
    if result["notice"]:
        flash(result["notice"], "info")
    return render_template("residents.html", residents=result["residents"], demo_mode=result["demo_mode"])


@app.route("/payment")
@login_required
def payment():
    amount = Config.DEFAULT_PAYMENT_AMOUNT
    options = None
    try:
        options = payment_service().checkout_options(amount, current_user())
    except Exception as err:
        log_exception(err, context="checkout_options:")
    return render_template(
        "payment.html",
        amount=amount,
        options=options,
        upi_enabled=Config.is_upi_configured(),
    )


@app.route("/payment/verify", methods=["POST"])
def verify_payment():
    """Verify the Razorpay checkout handler response"""
    if "user_id" not in session:
        return jsonify({"error": "Please sign in first"}), 401

    data = request.get_json(silent=True) or {}
    order_id = data.get("razorpay_order_id")
    payment_id = data.get("razorpay_payment_id")
    signature = data.get("razorpay_signature")
    if not order_id or not payment_id or not signature:
        return jsonify({"error": "Missing payment details"}), 400

    try:
        ok = payment_service().verify_checkout(
            order_id, payment_id, signature,
            user_id=session["user_id"],
        )
    except Exception as e:
        log_exception(e, context="verify_payment:")
        return jsonify({"error": str(e)}), 500
    if not ok:
        return jsonify({"error": "Payment verification failed"}), 400
    return jsonify({"success": True, "message": f"Payment ID: {payment_id}"})


@app.route("/payment/upi", methods=["POST"])
@login_required
@handle_errors("payment", "Failed to generate UPI QR:")
def create_upi_payment():
    if not Config.is_upi_configured():
        flash("UPI payments are not configured.", "warning")
        return redirect(url_for("payment"))
    try:
        amount = float(request.form.get("amount") or Config.DEFAULT_PAYMENT_AMOUNT)
    except ValueError:
        flash("Please enter a valid amount", "danger")
        return redirect(url_for("payment"))
    if amount <= 0:
        flash("Please enter a valid amount", "danger")
        return redirect(url_for("payment"))

    qr_data = upi_service().create_upi_payment_qr(
        amount=amount,
        user_id=session["user_id"],
        payer_name=session.get("user_name") or "Resident",
        note=request.form.get("note") or "Coliving Payment",
    )
    return render_template("upi_payment.html", qr=qr_data)


@app.route("/payment/upi/reference", methods=["POST"])
@login_required
@handle_errors("payment", "Error saving UPI reference:")
def submit_upi_reference():
    if not sb_available():
        flash("Database is not configured.", "danger")
        return redirect(url_for("payment"))
    transaction_id = request.form.get("transaction_id")
    reference = request.form.get("upi_reference", "")
    if upi_service().submit_reference(transaction_id, session["user_id"], reference):
        flash("Thanks! Your UPI reference was recorded and will be confirmed shortly.", "success")
    else:
        flash("No pending UPI payment found for that reference.", "warning")
    return redirect(url_for("payment"))


@app.route("/payment/status/<transaction_id>", methods=["GET"])
def payment_status(transaction_id):
    """Return payment status for client polling."""
    if "user_id" not in session:
        return jsonify({"error": "Please sign in first"}), 401
    if payments_client() is None:
        return jsonify({"error": "Database not configured"}), 500
    try:
        status = upi_service().get_status(transaction_id, session["user_id"])
    except Exception as e:
        return jsonify({"error": str(e)}), 500
    if not status:
        return jsonify({"error": "Not found"}), 404
    return jsonify(status)


@app.route("/auth")
def auth_page():
    if "user_id" in session:
        return redirect(url_for("dashboard"))
    return render_template("auth.html", tab=request.args.get("tab", "signin"), errors={}, form={})


@app.route("/auth/signin", methods=["POST"])
@handle_errors("auth_page", "Sign in failed:")
def signin():
    email = request.form.get("email", "").strip().lower()
    password = request.form.get("password", "")
    errors = validate_credentials(email, password)
    if errors:
        return render_template("auth.html", tab="signin", errors=errors, form={"email": email}), 400

    if not sb_available():
        flash("Database is not configured.", "danger")
        return redirect(url_for("auth_page"))

    try:
        result = auth_service().signin(email, password)
    except Exception as err:
        log_exception(err, context="signin:")
        result = None
        errors = {"general": str(err)}
    if not result:
        errors = errors or {"general": "Invalid email or password."}
        return render_template("auth.html", tab="signin", errors=errors, form={"email": email}), 401

    profile = result.get("profile") or {}
    session.pop("auth_skipped", None)
    session["user_id"] = result["user_id"]
    session["user_email"] = result["email"]
    session["user_name"] = profile.get("full_name") or result["email"].split("@")[0]
    session["user_phone"] = profile.get("phone")
    session["access_token"] = result.get("access_token")
    flash("Welcome back! You have been signed in successfully.", "success")
    return redirect(url_for("dashboard"))


@app.route("/auth/signup", methods=["POST"])
@handle_errors("auth_page", "Signup failed:")
def signup():
    full_name = request.form.get("full_name", "").strip()
    email = request.form.get("email", "").strip().lower()
    password = request.form.get("password", "")
    confirm = request.form.get("confirm_password", "")
    errors = validate_credentials(email, password, full_name=full_name, confirm_password=confirm, signup=True)
    form = {"email": email, "full_name": full_name}
    if errors:
        return render_template("auth.html", tab="signup", errors=errors, form=form), 400

    if not sb_available():
        flash("Database is not configured.", "danger")
        return redirect(url_for("auth_page", tab="signup"))

    try:
        user_id = auth_service().signup(email, password, full_name)
    except Exception as err:
        error_msg = str(err).lower()
        if "rate limit" in error_msg or "security purposes" in error_msg:
            flash("Too many signup attempts. Please wait 1 minute before trying again.", "warning")
        elif "already registered" in error_msg:
            flash("This email is already registered. Please sign in instead.", "info")
        else:
            log_exception(err, context="signup:")
            flash("Signup failed. Please try again later.", "danger")
        return redirect(url_for("auth_page", tab="signup"))

    if not user_id:
        flash("Could not create account. Please try again.", "danger")
        return redirect(url_for("auth_page", tab="signup"))
    flash("Account created! Please check your email to confirm, then sign in.", "success")
    return redirect(url_for("auth_page"))


@app.route("/auth/password_strength", methods=["POST"])
def password_strength_check():
    data = request.get_json(silent=True) or {}
    score = password_strength(data.get("password", ""))
    return jsonify({"score": score, "label": strength_label(score)})


@app.route("/auth/skip")
def skip_auth():
    session["auth_skipped"] = True
    flash("You are browsing as a guest.", "info")
    return redirect(url_for("index"))


@app.route("/logout")
def logout():
    for key in ("user_id", "user_email", "user_name", "user_phone", "access_token", "auth_skipped"):
        session.pop(key, None)
    if sb_available():
        auth_service().signout()
    flash("Logged out successfully!", "info")
    return redirect(url_for("index"))


@app.route("/profile")
def profile():
    feed = issue_service().fetch_issues()
    issues = feed["issues"]
    return render_template(
        "profile.html",
        stats=profile_stats(issues),
        pending_count=pending_count(issues),
    )


@app.route("/settings", methods=["GET", "POST"])
@login_required
@handle_errors("settings", "Error updating profile:")
def settings():
    if request.method == "POST":
        if not sb_available():
            flash("Database is not configured.", "danger")
            return redirect(url_for("settings"))
        updated = auth_service().update_profile(session.get("user_id"), {
            "full_name": request.form.get("full_name", "").strip(),
            "phone": request.form.get("phone", "").strip(),
            "unit": request.form.get("unit", "").strip(),
            "bio": request.form.get("bio", "").strip(),
        })
        if updated:
            session["user_name"] = updated.get("full_name") or session.get("user_name")
            session["user_phone"] = updated.get("phone")
        flash("Your profile has been successfully updated.", "success")
        return redirect(url_for("settings"))

    profile_row = None
    if sb_available():
        try:
            profile_row = ProfileRepository(supabase).get_profile(session["user_id"])
        except Exception as err:
            log_exception(err, context="settings profile:")
    return render_template(
        "settings.html",
        profile=profile_row or {},
        email=session.get("user_email"),
        settings=user_settings(),
        tab=request.args.get("tab", "profile"),
    )


@app.route("/settings/preferences", methods=["POST"])
@login_required
def update_preferences():
    section = request.form.get("section", "")
    if section not in DEFAULT_SETTINGS:
        flash("Unknown settings section.", "danger")
        return redirect(url_for("settings"))
    values = {}
    for key, default in DEFAULT_SETTINGS[section].items():
        if isinstance(default, bool):
            values[key] = request.form.get(key) == "on"
        else:
            values[key] = request.form.get(key, default)
    stored = session.get("settings") or {}
    stored[section] = values
    session["settings"] = stored
    flash("Settings saved.", "success")
    return redirect(url_for("settings", tab=section))


@app.route("/settings/delete_account", methods=["POST"])
@login_required
def delete_account():
    logger.info(f"Account deletion requested by {session.get('user_id')}")
    flash("Account deletion request submitted. You will receive a confirmation email.", "info")
    return redirect(url_for("settings"))


@app.route("/terms")
def terms():
    return render_template("terms.html")


@app.route("/privacy")
def privacy():
    return render_template("privacy.html")


# JSON API
def _api_supabase():
    return supabase


def _require_same_user(user_id):
    if user_id and user_id != g.api_user["id"]:
        raise APIError(403, {"error": "Forbidden", "message": "User ID does not match token"})


@app.route("/api/issues", methods=["GET", "POST"])
@api_auth_required(_api_supabase)
@api_errors
def api_issues():
    if request.method == "POST":
        data = request.get_json(silent=True) or {}
        user = g.api_user
        data.setdefault("submitted_by", user["user_metadata"].get("full_name") or user.get("email") or "Unknown")
        issue = issue_service().create_issue(data)
        return jsonify(issue_json(issue)), 201

    rows = IssueRepository(supabase).list_issues()
    issues = filter_issues_by_status([convert_db_issue(r) for r in rows], request.args.get("status"))
    return jsonify({"issues": [issue_json(i) for i in issues]})


@app.route("/api/issues/<issue_id>", methods=["GET", "PUT", "DELETE"])
@api_auth_required(_api_supabase)
@api_errors
def api_issue(issue_id):
    service = issue_service()
    if request.method == "DELETE":
        service.delete_issue(issue_id)
        return jsonify({"success": True})
    if request.method == "PUT":
        issue = service.update_issue(issue_id, request.get_json(silent=True) or {})
    else:
        issue = service.get_issue(issue_id)
    if not issue:
        return jsonify({"error": "Issue not found"}), 404
    return jsonify(issue_json(issue))


@app.route("/api/users", methods=["GET"])
@api_auth_required(_api_supabase)
@api_errors
def api_users():
    # Profiles carry no role column; every profile is a resident
    role = request.args.get("role", "resident")
    if role != "resident":
        return jsonify({"users": []})
    rows = ProfileRepository(supabase).list_residents()
    return jsonify({"users": [{
        "id": r.get("id"),
        "full_name": r.get("full_name"),
        "avatar_url": r.get("avatar_url"),
    } for r in rows]})


@app.route("/api/auth/me", methods=["GET"])
@api_auth_required(_api_supabase)
@api_errors
def api_me():
    user = g.api_user
    profile_row = auth_service().fetch_profile(user["id"], full_name=user["user_metadata"].get("full_name"))
    return jsonify({"user": {"id": user["id"], "email": user["email"]}, "profile": profile_row})


@app.route("/api/auth/profile", methods=["PUT"])
@api_auth_required(_api_supabase)
@api_errors
def api_update_profile():
    updated = auth_service().update_profile(g.api_user["id"], request.get_json(silent=True) or {})
    if not updated:
        return jsonify({"error": "Profile not found"}), 404
    return jsonify({"profile": updated})


@app.route("/api/payments", methods=["GET", "POST"])
@api_auth_required(_api_supabase)
@api_errors
def api_payments():
    service = payment_service()
    if request.method == "POST":
        return jsonify(service.store_payment(request.get_json(silent=True) or {}, g.api_user["id"])), 201
    return jsonify(service.get_user_payments(g.api_user["id"]))


@app.route("/api/payments/store", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
@api_auth_required(_api_supabase)
@api_errors
def api_store_payment():
    if request.method != "POST":
        return jsonify({"error": "Method not allowed"}), 405
    body = request.get_json(silent=True) or {}
    user_id = body.get("userId")
    _require_same_user(user_id)
    result = payment_service().store_payment(body.get("paymentData") or {}, user_id)
    return jsonify(result), 201


@app.route("/api/payments/user", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
@api_auth_required(_api_supabase)
@api_errors
def api_user_payments():
    if request.method != "GET":
        return jsonify({"error": "Method not allowed"}), 405
    user_id = request.args.get("userId")
    _require_same_user(user_id)
    return jsonify(payment_service().get_user_payments(user_id))


@app.route("/api/payments/<payment_id>", methods=["GET"])
@api_auth_required(_api_supabase)
@api_errors
def api_payment(payment_id):
    client = payments_client()
    row = PaymentRepository(client).get_payment(payment_id, user_id=g.api_user["id"]) if client else None
    if not row:
        return jsonify({"error": "Payment not found"}), 404
    return jsonify(row)


@app.route("/api/webhooks/razorpay", methods=["POST"])
@api_errors
def razorpay_webhook():
    result = payment_service().handle_webhook(
        request.get_data(as_text=True),
        request.headers.get("X-Razorpay-Signature"),
    )
    return jsonify(result), 200


@app.errorhandler(404)
def not_found(err):
    if request.path.startswith("/api/"):
        return jsonify({"error": "Not found"}), 404
    return render_template("404.html"), 404


@app.errorhandler(405)
def method_not_allowed(err):
    if request.path.startswith("/api/"):
        return jsonify({"error": "Method not allowed"}), 405
    return err.get_response()


if __name__ == "__main__":
    app.run(debug=True)
