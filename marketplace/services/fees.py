"""Platform fee arithmetic on integer cent amounts."""

from __future__ import annotations

from dataclasses import dataclass

PLATFORM_FEE_PERCENT = 15


@dataclass(frozen=True)
class FeeSplit:
  amount: int
  platform_fee: int
  instructor_earnings: int


def calculate_platform_fee(amount: int, percent: int = PLATFORM_FEE_PERCENT) -> int:
  """Return the platform's share, rounded down to whole cents."""
  if amount < 0:
    raise ValueError("amount must be non-negative")
  if percent < 0 or percent > 100:
    raise ValueError("percent must be between 0 and 100")
  return amount * percent // 100


def calculate_instructor_earnings(amount: int, percent: int = PLATFORM_FEE_PERCENT) -> int:
  # Rounding favours the instructor: the remainder after the floored fee is theirs.
  return amount - calculate_platform_fee(amount, percent)


def split_amount(amount: int, percent: int = PLATFORM_FEE_PERCENT) -> FeeSplit:
  fee = calculate_platform_fee(amount, percent)
  return FeeSplit(amount=amount, platform_fee=fee, instructor_earnings=amount - fee)


def format_price(cents: int) -> str:
  """Render cents as US dollars, e.g. 123456 -> "$1,234.56"."""
  sign = "-" if cents < 0 else ""
  dollars, remainder = divmod(abs(cents), 100)
  return f"{sign}${dollars:,}.{remainder:02d}"
