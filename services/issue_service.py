import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timedelta, timezone
from typing import Optional

from utils.error_handling import ValidationError
from utils.logger import get_logger, log_exception


ISSUE_PRIORITIES = ("low", "medium", "high", "urgent")
ISSUE_STATUSES = ("pending", "in-progress", "resolved", "closed")
ISSUE_CATEGORIES = (
    "Maintenance",
    "Cleanliness",
    "Noise Complaint",
    "Amenities",
    "Utilities",
    "Security",
    "Other",
)
UPDATABLE_FIELDS = ("title", "description", "category", "priority", "status", "unit")

DEMO_NOTICE = "Showing demo data due to connection issues"

# Held for every read and write of a feed state dict
_feed_lock = threading.RLock()


def _parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def convert_db_issue(row: dict) -> dict:
    """Map an ``issues`` row (or API payload) to the shape the templates use."""
    return {
        "id": row.get("id"),
        "title": row.get("title"),
        "description": row.get("description"),
        "category": row.get("category"),
        "priority": row.get("priority"),
        "status": row.get("status"),
        "submitted_by": row.get("submitted_by") or row.get("submittedBy") or "Unknown",
        "unit": row.get("unit") or None,
        "submitted_at": _parse_timestamp(row.get("created_at") or row.get("createdAt")),
    }


def demo_issues() -> list[dict]:
    now = datetime.now(timezone.utc)
    return [
        {
            "id": "demo-1",
            "title": "Water Leak in Kitchen",
            "description": "There is a small water leak under the kitchen sink",
            "category": "Plumbing",
            "priority": "high",
            "status": "pending",
            "submitted_by": "Demo User",
            "unit": "A101",
            "submitted_at": now - timedelta(days=1),
        },
        {
            "id": "demo-2",
            "title": "Broken Light Bulb",
            "description": "Light bulb in the hallway needs replacement",
            "category": "Electrical",
            "priority": "medium",
            "status": "in-progress",
            "submitted_by": "Demo User",
            "unit": "A101",
            "submitted_at": now - timedelta(days=2),
        },
        {
            "id": "demo-3",
            "title": "Noise Complaint",
            "description": "Loud music from upstairs unit",
            "category": "Noise",
            "priority": "low",
            "status": "resolved",
            "submitted_by": "Demo User",
            "unit": "A101",
            "submitted_at": now - timedelta(days=5),
        },
    ]


def filter_issues_by_status(issues: list[dict], status: Optional[str] = None) -> list[dict]:
    if not status or status == "all":
        return issues
    return [issue for issue in issues if issue.get("status") == status]


def validate_issue(data: dict) -> dict:
    errors = {}
    for field in ("title", "description", "category", "submitted_by"):
        if not (data.get(field) or "").strip():
            errors[field] = "This field is required"
    priority = data.get("priority") or "medium"
    if priority not in ISSUE_PRIORITIES:
        errors["priority"] = f"Priority must be one of: {', '.join(ISSUE_PRIORITIES)}"
    return errors


def new_feed_state() -> dict:
    return {"issues": [], "demo_mode": False, "error": None, "notice": None, "refreshing": False}


class IssueService:
    """Issue listing and mutations backed by the ``issues`` table.

    Listing races the query against ``fetch_timeout``. When the query is slow the
    caller gets demo issues immediately and a background query, bounded by
    ``refresh_timeout``, swaps live issues into the shared ``state`` once it lands.
    """

    def __init__(self, issue_repo=None, state: Optional[dict] = None, executor: Optional[ThreadPoolExecutor] = None,
                 fetch_timeout: float = 2.5, refresh_timeout: float = 8.0):
        self.issue_repo = issue_repo
        self.state = state if state is not None else new_feed_state()
        self.executor = executor or ThreadPoolExecutor(max_workers=4)
        self.fetch_timeout = fetch_timeout
        self.refresh_timeout = refresh_timeout
        self.refresh_thread = None
        self.logger = get_logger()

    def _set_feed(self, issues: list[dict], demo_mode: bool, notice: Optional[str] = None) -> dict:
        with _feed_lock:
            self.state["issues"] = issues
            self.state["demo_mode"] = demo_mode
            self.state["error"] = None
            self.state["notice"] = notice
            return self.snapshot()

    def snapshot(self) -> dict:
        with _feed_lock:
            return {
                "issues": list(self.state.get("issues") or []),
                "demo_mode": bool(self.state.get("demo_mode")),
                "error": self.state.get("error"),
                "notice": self.state.get("notice"),
            }

    def fetch_issues(self) -> dict:
        if self.issue_repo is None:
            return self._set_feed(demo_issues(), demo_mode=True)

        future = self.executor.submit(self.issue_repo.list_issues)
        try:
            rows = future.result(timeout=self.fetch_timeout)
        except FuturesTimeout:
            self.logger.warning(
                f"Issue query timed out after {self.fetch_timeout}s, refreshing in background"
            )
            self.schedule_background_refresh()
            with _feed_lock:
                # A finished background refresh beats demo data
                if self.state.get("issues") and not self.state.get("demo_mode"):
                    return self.snapshot()
                return self._set_feed(demo_issues(), demo_mode=True)
        except Exception as err:
            log_exception(err, context="fetch_issues:")
            return self._set_feed(demo_issues(), demo_mode=True, notice=DEMO_NOTICE)

        if not rows:
            self.logger.info("No issues returned, showing demo data")
            return self._set_feed(demo_issues(), demo_mode=True)

        return self._set_feed([convert_db_issue(r) for r in rows], demo_mode=False)

    def schedule_background_refresh(self) -> Optional[threading.Thread]:
        """Start one background query; returns the thread waiting on it, or None."""
        if self.issue_repo is None:
            return None
        with _feed_lock:
            if self.state.get("refreshing"):
                return None
            self.state["refreshing"] = True
        future = self.executor.submit(self.issue_repo.list_issues)
        self.refresh_thread = threading.Thread(target=self._await_refresh, args=(future,), daemon=True)
        self.refresh_thread.start()
        return self.refresh_thread

    def _await_refresh(self, future):
        try:
            rows = future.result(timeout=self.refresh_timeout)
            if rows:
                self._set_feed([convert_db_issue(r) for r in rows], demo_mode=False)
                self.logger.info(f"Background refresh loaded {len(rows)} live issues")
        except FuturesTimeout:
            # a late result is never applied
            future.cancel()
            self.logger.warning(f"Background refresh timed out after {self.refresh_timeout}s")
        except Exception as err:
            self.logger.warning(f"Background refresh failed: {err}")
        finally:
            with _feed_lock:
                self.state["refreshing"] = False

    def get_issue(self, issue_id: str) -> Optional[dict]:
        row = self.issue_repo.get_issue(issue_id)
        return convert_db_issue(row) if row else None

    def create_issue(self, data: dict) -> dict:
        errors = validate_issue(data)
        if errors:
            raise ValidationError(errors)
        payload = {
            "title": data["title"].strip(),
            "description": data["description"].strip(),
            "category": data["category"].strip(),
            "priority": data.get("priority") or "medium",
            "submitted_by": data["submitted_by"].strip(),
            "unit": (data.get("unit") or "").strip() or None,
        }
        row = self.issue_repo.create_issue(payload)
        if not row:
            raise RuntimeError("Issue was not stored")
        issue = convert_db_issue(row)
        with _feed_lock:
            if self.state.get("demo_mode"):
                self.state["issues"] = [issue]
                self.state["demo_mode"] = False
            else:
                self.state["issues"] = [issue] + list(self.state.get("issues") or [])
        self.logger.info(f"Issue created: {issue['id']} ({issue['category']}, {issue['priority']})")
        return issue

    def update_issue_status(self, issue_id: str, status: str) -> dict:
        if status not in ISSUE_STATUSES:
            raise ValidationError({"status": f"Status must be one of: {', '.join(ISSUE_STATUSES)}"})
        self.issue_repo.update_issue(issue_id, {"status": status})
        self._patch_cached(issue_id, {"status": status})
        self.logger.info(f"Issue {issue_id} status changed to {status}")
        return {"id": issue_id, "status": status}

    def update_issue(self, issue_id: str, fields: dict) -> Optional[dict]:
        updates = {k: v for k, v in (fields or {}).items() if k in UPDATABLE_FIELDS}
        if not updates:
            raise ValidationError({"general": "No updatable fields supplied"})
        if "status" in updates and updates["status"] not in ISSUE_STATUSES:
            raise ValidationError({"status": f"Status must be one of: {', '.join(ISSUE_STATUSES)}"})
        if "priority" in updates and updates["priority"] not in ISSUE_PRIORITIES:
            raise ValidationError({"priority": f"Priority must be one of: {', '.join(ISSUE_PRIORITIES)}"})
        row = self.issue_repo.update_issue(issue_id, updates)
        if not row:
            return None
        self._patch_cached(issue_id, updates)
        return convert_db_issue(row)

    def delete_issue(self, issue_id: str) -> bool:
        self.issue_repo.delete_issue(issue_id)
        with _feed_lock:
            self.state["issues"] = [i for i in (self.state.get("issues") or []) if i.get("id") != issue_id]
        return True

    def _patch_cached(self, issue_id: str, updates: dict):
        with _feed_lock:
            self.state["issues"] = [
                {**issue, **updates} if issue.get("id") == issue_id else issue
                for issue in (self.state.get("issues") or [])
            ]
