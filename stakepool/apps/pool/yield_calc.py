SECONDS_PER_YEAR = 31_557_600  # 365.25 days
BASIS_POINTS = 10_000


def calculate_yield(
    staked_amount: int,
    apy_basis_points: int,
    seconds_elapsed: int,
    seconds_per_year: int = SECONDS_PER_YEAR,
) -> int:
    """
    Integer yield for a stake over an elapsed period.

    floor(staked * apy_bp * seconds / (seconds_per_year * 10000)), no floats,
    so the preview matches the program's own arithmetic. Zero means
    nothing to submit; a negative elapsed time (clock skew) counts as zero.
    """
    if staked_amount < 0 or apy_basis_points < 0:
        raise ValueError("staked_amount and apy_basis_points must be non-negative")
    if staked_amount == 0 or apy_basis_points == 0 or seconds_elapsed <= 0:
        return 0
    return (staked_amount * apy_basis_points * seconds_elapsed) // (seconds_per_year * BASIS_POINTS)


def annual_yield(staked_amount: int, apy_basis_points: int) -> int:
    """Projected yield over one full year at the given rate."""
    return calculate_yield(staked_amount, apy_basis_points, SECONDS_PER_YEAR)
