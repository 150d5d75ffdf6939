HIGH_PRIORITIES = ("high", "urgent")


def _count(issues, key, values):
    return sum(1 for issue in issues if issue.get(key) in values)


def pending_count(issues: list[dict]) -> int:
    return _count(issues, "status", ("pending",))


def issue_stats(issues: list[dict]) -> dict:
    """Counts for the four dashboard stat cards."""
    return {
        "pending": pending_count(issues),
        "in_progress": _count(issues, "status", ("in-progress",)),
        "resolved": _count(issues, "status", ("resolved",)),
        "high_priority": _count(issues, "priority", HIGH_PRIORITIES),
    }


def profile_stats(issues: list[dict]) -> dict:
    return {
        "total": len(issues),
        "pending": pending_count(issues),
        "resolved": _count(issues, "status", ("resolved",)),
    }


def split_open_resolved(issues: list[dict], preview: int = 3) -> dict:
    """Dashboard sections: open issues (pending before in-progress) and resolved."""
    open_issues = [i for i in issues if i.get("status") == "pending"]
    open_issues += [i for i in issues if i.get("status") == "in-progress"]
    return {
        "open": open_issues,
        "open_preview": open_issues[:preview],
        "more_open": max(len(open_issues) - preview, 0),
        "resolved": [i for i in issues if i.get("status") == "resolved"],
    }
