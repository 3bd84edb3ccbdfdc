from __future__ import annotations


def format_signup_count(count: int) -> str:
    """
    Short display form of a signup count.

    Below 1,000 the digits are shown as-is, below 10,000 with one decimal
    ("1.2K"), above that as whole thousands ("12K").
    """
    if count < 1000:
        return str(count)
    if count < 10000:
        return f"{count / 1000:.1f}K"
    return f"{count // 1000}K"
