"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, today_utc
from utils.money import to_money, to_storable_money, sum_money, CENT, ZERO, MAX_AMOUNT
from utils.request_context import RequestContext
