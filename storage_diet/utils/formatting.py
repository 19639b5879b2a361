"""Human-readable sizes and storage cost estimates for run reports."""
from typing import Dict, Tuple

# USD per GB per day charged by the object store
DEFAULT_DAILY_RATE_PER_GB = 0.00022754


def format_bytes(num_bytes: float) -> Tuple[str, str]:
    """Return (gigabytes, terabytes) as strings with 2 and 3 decimals."""
    gb = f"{num_bytes / (1024 ** 3):.2f}"
    tb = f"{num_bytes / (1024 ** 4):.3f}"
    return gb, tb


def format_megabytes(num_bytes: float) -> str:
    return f"{num_bytes / (1024 ** 2):.2f} MB"


def calculate_cost_savings(bytes_freed: float,
                           daily_rate_per_gb: float = DEFAULT_DAILY_RATE_PER_GB) -> Dict[str, float]:
    """Estimate storage cost saved per day, month (30 days) and year (365 days)."""
    gb_freed = bytes_freed / (1024 ** 3)
    daily = gb_freed * daily_rate_per_gb
    return {
        'daily_cost': daily,
        'monthly_cost': daily * 30,
        'annual_cost': daily * 365,
    }
