"""CRUD 操作模块"""
from .account import authenticate as authenticate_account
from .account import create as create_account
from .account import get_by_email as get_account_by_email
from .account import is_admin
from .profile import consume_pending_plan, record_pending_plan
from .profile import get as get_profile
from .profile import get_by_stripe_customer as get_profile_by_stripe_customer
from .profile import set_stripe_customer
from .submission import count_by_status as count_submissions_by_status
from .submission import list_for_account as list_submissions_for_account
from .submission import list_page as list_submissions_page
from .subscription import get_by_stripe_id as get_subscription_by_stripe_id
from .subscription import has_active as has_active_subscription
from .subscription import list_for_account as list_subscriptions_for_account
from .subscription import upsert as upsert_subscription

__all__ = [
    "authenticate_account",
    "create_account",
    "get_account_by_email",
    "is_admin",
    "get_profile",
    "get_profile_by_stripe_customer",
    "set_stripe_customer",
    "record_pending_plan",
    "consume_pending_plan",
    "get_subscription_by_stripe_id",
    "upsert_subscription",
    "list_subscriptions_for_account",
    "has_active_subscription",
    "list_submissions_for_account",
    "list_submissions_page",
    "count_submissions_by_status",
]
