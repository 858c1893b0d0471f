"""
Subscription and credit accounting.

A user's subscription is a plain dict stored on the user record. Plans come
from config.json; every plan grants a monthly video quota and a number of
download credits that reset when the billing cycle rolls over.
"""

import calendar
from datetime import datetime
from typing import Dict, Any, Optional

DEFAULT_PLAN = "free"
BILLING_CYCLES = ("monthly", "yearly")


class CreditError(Exception):
    """Raised when a credit or quota is requested but none is left."""


def add_months(date: datetime, months: int) -> datetime:
    month_index = date.month - 1 + months
    year = date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


def next_cycle_end(start: datetime, billing_cycle: str) -> datetime:
    if billing_cycle == "yearly":
        return add_months(start, 12)
    return add_months(start, 1)


def cycle_end_after(anchor: datetime, billing_cycle: str, after: datetime) -> datetime:
    """
    First cycle boundary strictly after `after`, counted in whole cycles from
    anchor so a month-end start day is kept (Jan 31 -> Feb 29 -> Mar 31).
    """
    step = 12 if billing_cycle == "yearly" else 1
    k = 1
    while add_months(anchor, k * step) <= after:
        k += 1
    return add_months(anchor, k * step)


def parse_date(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def new_subscription(plan_key: str, plans: dict, billing_cycle: str = "monthly",
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build a fresh subscription dict for plan_key starting now."""
    if plan_key not in plans:
        raise ValueError("Invalid plan selected")
    if billing_cycle not in BILLING_CYCLES:
        raise ValueError("Invalid billing cycle")

    now = now or datetime.now()
    plan = plans[plan_key]
    return {
        "plan": plan_key,
        "billing_cycle": billing_cycle,
        "start_date": now.isoformat(),
        "end_date": next_cycle_end(now, billing_cycle).isoformat(),
        "credits_total": plan["credits_total"],
        "credits_used": 0,
        "videos_limit": plan["videos_limit"],
        "videos_used": 0,
        "is_active": True,
        "canceled_at": None,
        "pending_downgrade": None,
    }


def renew_if_due(sub: dict, plans: dict, now: Optional[datetime] = None) -> bool:
    """
    Roll an expired cycle forward, resetting usage counters.
    Applies a pending downgrade first. Returns True if anything changed.
    """
    if not sub or not sub.get("is_active"):
        return False
    now = now or datetime.now()
    end = parse_date(sub.get("end_date"))
    if end is None or end > now:
        return False

    pending = sub.get("pending_downgrade")
    if pending and pending.get("plan") in plans:
        plan_key = pending["plan"]
        sub["plan"] = plan_key
        sub["credits_total"] = plans[plan_key]["credits_total"]
        sub["videos_limit"] = plans[plan_key]["videos_limit"]
        sub["pending_downgrade"] = None
        if plan_key == DEFAULT_PLAN:
            sub["billing_cycle"] = "monthly"

    cycle = sub.get("billing_cycle", "monthly")
    anchor = parse_date(sub.get("start_date")) or end
    end = cycle_end_after(anchor, cycle, now)

    sub["credits_used"] = 0
    sub["videos_used"] = 0
    sub["end_date"] = end.isoformat()
    sub["last_reset_date"] = now.isoformat()
    return True


def available_credits(sub: dict) -> int:
    if not sub or not sub.get("is_active"):
        return 0
    return max(0, sub.get("credits_total", 0) - sub.get("credits_used", 0))


def consume_credit(sub: dict) -> int:
    """Use one credit. Only proceeds when at least one is available; returns credits left."""
    if available_credits(sub) <= 0:
        raise CreditError("You have no credits remaining. Upgrade your plan or wait for your credits to renew.")
    sub["credits_used"] = sub.get("credits_used", 0) + 1
    return available_credits(sub)


def videos_remaining(sub: dict) -> int:
    if not sub or not sub.get("is_active"):
        return 0
    return max(0, sub.get("videos_limit", 0) - sub.get("videos_used", 0))


def record_video(sub: dict) -> int:
    """Count one generated video against the monthly quota."""
    if videos_remaining(sub) <= 0:
        raise CreditError("You have reached your video limit for this month")
    sub["videos_used"] = sub.get("videos_used", 0) + 1
    return videos_remaining(sub)


def days_until_reset(sub: dict, now: Optional[datetime] = None) -> Optional[int]:
    end = parse_date(sub.get("end_date")) if sub else None
    if end is None:
        return None
    now = now or datetime.now()
    return (end.date() - now.date()).days


def usage_summary(sub: dict, now: Optional[datetime] = None) -> Dict[str, Any]:
    sub = sub or {}
    return {
        "plan": sub.get("plan", DEFAULT_PLAN),
        "is_active": bool(sub.get("is_active")),
        "billing_cycle": sub.get("billing_cycle", "none"),
        "videos_used": sub.get("videos_used", 0),
        "videos_limit": sub.get("videos_limit", 0),
        "videos_remaining": videos_remaining(sub),
        "credits_used": sub.get("credits_used", 0),
        "credits_total": sub.get("credits_total", 0),
        "credits_remaining": available_credits(sub),
        "start_date": sub.get("start_date"),
        "end_date": sub.get("end_date"),
        "days_until_reset": days_until_reset(sub, now),
        "canceled_at": sub.get("canceled_at"),
        "pending_downgrade": sub.get("pending_downgrade"),
    }


def plans_with_savings(plans: dict) -> list:
    """List plans with the yearly savings percentage against twelve monthly payments."""
    result = []
    for key, plan in plans.items():
        monthly_total = plan.get("monthly_price", 0) * 12
        savings = monthly_total - plan.get("yearly_price", 0)
        percent = round(savings / monthly_total * 100) if monthly_total else 0
        result.append({
            "key": key,
            **plan,
            "savings_amount": savings,
            "savings_percentage": percent,
        })
    result.sort(key=lambda p: p.get("monthly_price", 0))
    return result


def change_plan(sub: dict, plan_key: str, plans: dict, billing_cycle: str = "monthly",
                now: Optional[datetime] = None) -> Dict[str, Any]:
    """Switch to a new plan immediately, starting a new cycle with fresh counters."""
    fresh = new_subscription(plan_key, plans, billing_cycle, now)
    if sub:
        sub.clear()
    else:
        sub = {}
    sub.update(fresh)
    return sub


def cancel(sub: dict, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Cancel at period end: the plan stays until end_date, then drops to free."""
    if not sub or sub.get("plan") == DEFAULT_PLAN:
        raise ValueError("No paid subscription to cancel")
    now = now or datetime.now()
    sub["canceled_at"] = now.isoformat()
    sub["pending_downgrade"] = {
        "plan": DEFAULT_PLAN,
        "scheduled_date": sub.get("end_date"),
    }
    return sub


def reset_expired_subscriptions(store, plans: dict, now: Optional[datetime] = None) -> int:
    """Renew every subscription whose cycle has ended. Returns how many were reset."""
    print("Running subscription reset job...")
    count = 0
    with store.lock:
        for user in store.all_users():
            sub = user.get("subscription")
            try:
                if renew_if_due(sub, plans, now):
                    count += 1
                    print(f"Reset subscription for user {user['id']}, plan: {sub['plan']}")
            except ValueError as e:
                print(f"Error resetting subscription for user {user.get('id')}: {e}")
        if count:
            store.save()
    print(f"Subscription reset job completed ({count} reset)")
    return count
