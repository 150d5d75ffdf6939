import pytest
from datetime import datetime, timezone
from app import app, sb_available, issue_json
from conftest import sign_in, issue_row
from services.issue_service import filter_issues_by_status, convert_db_issue, demo_issues
from services.stats_service import issue_stats, profile_stats, split_open_resolved
from services.resident_service import get_initials, display_name
from services.auth_service import validate_credentials, password_strength, strength_label


# ---- ROUTE TESTS ----
def test_home_route_shows_demo_issues_without_db(client, monkeypatch):
    monkeypatch.setattr("app.supabase", None)
    response = client.get("/")
    assert response.status_code == 200
    assert b"Water Leak in Kitchen" in response.data
    assert b"Demo Mode" in response.data


def test_auth_page_get(client):
    response = client.get("/auth")
    assert response.status_code == 200
    assert b"Sign In" in response.data


def test_signup_tab_get(client):
    response = client.get("/auth?tab=signup")
    assert response.status_code == 200
    assert b"Confirm Password" in response.data


def test_settings_redirects_when_signed_out(client):
    response = client.get("/settings", follow_redirects=False)
    assert response.status_code in (301, 302)
    assert "/auth" in response.headers["Location"]


def test_payment_redirects_when_signed_out(client):
    response = client.get("/payment", follow_redirects=False)
    assert response.status_code in (301, 302)
    assert "/auth" in response.headers["Location"]


def test_invalid_route(client):
    response = client.get("/not_exist")
    assert response.status_code == 404
    assert b"Page not found" in response.data


def test_invalid_api_route_is_json(client):
    response = client.get("/api/not_exist")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}


def test_static_pages(client):
    assert client.get("/terms").status_code == 200
    assert client.get("/privacy").status_code == 200


def test_sb_available(monkeypatch):
    import app as main_app

    monkeypatch.setattr(main_app, "supabase", object())
    assert sb_available() is True

    monkeypatch.setattr(main_app, "supabase", None)
    assert sb_available() is False


# ---- POST TESTS ----
def test_signin_post_without_db(client, monkeypatch):
    monkeypatch.setattr("app.supabase", None)

    response = client.post("/auth/signin", data={
        "email": "test@example.com",
        "password": "pass12345",
    }, follow_redirects=True)

    assert b"Database is not configured" in response.data


def test_signin_post_validation(client):
    response = client.post("/auth/signin", data={"email": "not-an-email", "password": "short"})
    assert response.status_code == 400
    assert b"Please enter a valid email address" in response.data
    assert b"Password must be at least 8 characters long" in response.data


def test_signup_then_signin(db_client, fake_db):
    response = db_client.post("/auth/signup", data={
        "full_name": "Asha Rao",
        "email": "Asha@Example.com",
        "password": "Secret123!",
        "confirm_password": "Secret123!",
    }, follow_redirects=True)
    assert b"Account created" in response.data

    response = db_client.post("/auth/signin", data={
        "email": "asha@example.com",
        "password": "Secret123!",
    }, follow_redirects=False)
    assert response.status_code in (301, 302)
    with db_client.session_transaction() as sess:
        assert sess["user_id"] == "user-1"
        assert sess["user_name"] == "Asha Rao"
    # Profile row is created on first sign in
    assert fake_db.tables["profiles"][0]["full_name"] == "Asha Rao"


def test_signup_duplicate_email(db_client, fake_db):
    data = {"full_name": "Asha", "email": "asha@example.com", "password": "Secret123!", "confirm_password": "Secret123!"}
    db_client.post("/auth/signup", data=data)
    response = db_client.post("/auth/signup", data=data, follow_redirects=True)
    assert b"already registered" in response.data


def test_signin_wrong_password(db_client):
    response = db_client.post("/auth/signin", data={"email": "nobody@example.com", "password": "Secret123!"})
    assert response.status_code == 401


def test_create_issue_requires_sign_in(db_client):
    response = db_client.post("/", data={"title": "Leak"}, follow_redirects=False)
    assert "/auth" in response.headers["Location"]


def test_create_issue_as_guest(db_client, fake_db):
    db_client.get("/auth/skip")
    response = db_client.post("/", data={
        "title": "Wifi down",
        "description": "No internet on floor 2",
        "category": "Utilities",
        "priority": "high",
        "submitted_by": "Ravi",
        "unit": "",
    }, follow_redirects=True)
    assert b"reported successfully" in response.data
    stored = fake_db.tables["issues"][0]
    assert stored["unit"] is None
    assert stored["priority"] == "high"
    assert b"Wifi down" in response.data


def test_create_issue_missing_fields(db_client, fake_db):
    sign_in(db_client)
    response = db_client.post("/", data={"title": "Only a title"}, follow_redirects=True)
    assert b"Missing Information" in response.data
    assert "issues" not in fake_db.tables or not fake_db.tables["issues"]


def test_update_issue_status(db_client, fake_db):
    fake_db.tables["issues"] = [issue_row(7)]
    sign_in(db_client)
    response = db_client.post("/issues/7/status", data={"status": "in-progress"}, follow_redirects=True)
    assert b"Issue status changed to in progress" in response.data
    assert fake_db.tables["issues"][0]["status"] == "in-progress"


def test_update_issue_invalid_status(db_client, fake_db):
    fake_db.tables["issues"] = [issue_row(7)]
    sign_in(db_client)
    response = db_client.post("/issues/7/status", data={"status": "done"}, follow_redirects=True)
    assert b"Error Updating Issue" in response.data
    assert fake_db.tables["issues"][0]["status"] == "pending"


def test_dashboard_sections(db_client, fake_db):
    fake_db.tables["issues"] = [
        issue_row(1, status="pending", priority="high"),
        issue_row(2, status="in-progress"),
        issue_row(3, status="pending"),
        issue_row(4, status="pending", priority="urgent"),
        issue_row(5, status="resolved"),
    ]
    response = db_client.get("/dashboard")
    assert response.status_code == 200
    assert b"+1 more open issues" in response.data
    assert b"Demo Mode" not in response.data


def test_residents_demo_when_signed_out(db_client, fake_db):
    fake_db.tables["profiles"] = [{"id": "u1", "full_name": "Meera Shah", "avatar_url": None}]
    response = db_client.get("/residents")
    assert b"Demo Resident" in response.data
    assert b"Meera Shah" not in response.data


def test_residents_listed_when_signed_in(db_client, fake_db):
    fake_db.tables["profiles"] = [
        {"id": "u1", "full_name": "Meera Shah", "avatar_url": None},
        {"id": "u2", "full_name": None, "avatar_url": None},
    ]
    sign_in(db_client)
    response = db_client.get("/residents")
    assert b"Meera Shah" in response.data
    assert b"MS" in response.data
    assert b"Anonymous User" in response.data


def test_residents_fall_back_on_error(db_client, fake_db):
    fake_db.failing["profiles"] = RuntimeError("connection reset")
    sign_in(db_client)
    response = db_client.get("/residents")
    assert b"Demo Resident" in response.data
    assert b"Showing demo data" in response.data


def test_settings_profile_update(db_client, fake_db):
    fake_db.tables["profiles"] = [{"id": "user-1", "full_name": "Asha"}]
    sign_in(db_client)
    response = db_client.post("/settings", data={
        "full_name": "Asha Rao", "phone": "9999999999", "unit": "C3", "bio": "Hi"
    }, follow_redirects=True)
    assert b"successfully updated" in response.data
    row = fake_db.tables["profiles"][0]
    assert row["unit"] == "C3"
    assert "updated_at" in row


def test_settings_preferences_saved_in_session(client):
    sign_in(client)
    client.post("/settings/preferences", data={"section": "notifications", "issue_updates": "on"})
    with client.session_transaction() as sess:
        saved = sess["settings"]["notifications"]
    assert saved["issue_updates"] is True
    assert saved["weekly_digest"] is False


def test_logout_clears_session(db_client, fake_db):
    sign_in(db_client)
    db_client.get("/logout")
    with db_client.session_transaction() as sess:
        assert "user_id" not in sess
    assert fake_db.auth.signed_out is True


def test_password_strength_endpoint(client):
    response = client.post("/auth/password_strength", json={"password": "Abcdefg1!"})
    assert response.get_json() == {"score": 5, "label": "Strong"}


# ---- UTILITY FUNCTION TESTS ----
def test_filter_issues_by_status():
    issues = [{"status": "pending"}, {"status": "resolved"}]
    assert filter_issues_by_status(issues) == issues
    assert filter_issues_by_status(issues, "all") == issues
    assert filter_issues_by_status(issues, "resolved") == [{"status": "resolved"}]


def test_convert_db_issue_defaults():
    issue = convert_db_issue({"id": "x", "createdAt": "2025-03-01T08:00:00Z", "unit": ""})
    assert issue["submitted_by"] == "Unknown"
    assert issue["unit"] is None
    assert issue["submitted_at"] == datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_issue_json_serializes_timestamp():
    data = issue_json(convert_db_issue(issue_row(1)))
    assert data["created_at"] == "2025-01-01T10:00:00+00:00"
    assert "submitted_at" not in data


def test_issue_stats_on_demo_data():
    stats = issue_stats(demo_issues())
    assert stats == {"pending": 1, "in_progress": 1, "resolved": 1, "high_priority": 1}


def test_profile_stats():
    assert profile_stats(demo_issues()) == {"total": 3, "pending": 1, "resolved": 1}


def test_split_open_resolved_orders_pending_first():
    issues = [{"id": 1, "status": "in-progress"}, {"id": 2, "status": "pending"}, {"id": 3, "status": "resolved"}]
    sections = split_open_resolved(issues)
    assert [i["id"] for i in sections["open"]] == [2, 1]
    assert sections["more_open"] == 0
    assert [i["id"] for i in sections["resolved"]] == [3]


@pytest.mark.parametrize("name,expected", [
    (None, "U"),
    ("", "U"),
    ("asha", "A"),
    ("Asha Rao", "AR"),
    ("anna maria de souza", "AM"),
])
def test_get_initials(name, expected):
    assert get_initials(name) == expected


def test_display_name():
    assert display_name(None) == "Anonymous User"
    assert display_name("Asha") == "Asha"


def test_validate_credentials_signup():
    errors = validate_credentials("a@b.co", "password1", full_name=" ", confirm_password="password2", signup=True)
    assert errors == {"full_name": "Full name is required", "confirm_password": "Passwords do not match"}
    assert validate_credentials("a@b.co", "password1") == {}


@pytest.mark.parametrize("password,score,label", [
    ("", 0, "Enter a password"),
    ("abc", 1, "Weak"),
    ("abcdefgh", 2, "Weak"),
    ("abcdefgH", 3, "Fair"),
    ("abcdefH1", 4, "Good"),
    ("abcdeH1!", 5, "Strong"),
])
def test_password_strength(password, score, label):
    assert password_strength(password) == score
    assert strength_label(score) == label
