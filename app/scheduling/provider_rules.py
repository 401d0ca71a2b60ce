"""Provider double-booking rules.

A provider can supervise treatments that run on machines while staying
free for other treatments, but a consultation needs the provider's full
attention. The rule is asymmetric and kept as a lookup table so it can be
read (and tested) at a glance.
"""

from enum import Enum


class AppointmentCategory(str, Enum):
    """Kind of booking, which drives the resource rules."""

    TREATMENT = "treatment"
    CONSULTATION = "consultation"


# (existing booking category, new booking category) -> blocks?
PROVIDER_CONFLICT_TABLE: dict[tuple[AppointmentCategory, AppointmentCategory], bool] = {
    (AppointmentCategory.CONSULTATION, AppointmentCategory.CONSULTATION): True,
    (AppointmentCategory.CONSULTATION, AppointmentCategory.TREATMENT): True,
    (AppointmentCategory.TREATMENT, AppointmentCategory.CONSULTATION): True,
    (AppointmentCategory.TREATMENT, AppointmentCategory.TREATMENT): False,
}


def provider_blocks(
    existing: AppointmentCategory | str,
    new: AppointmentCategory | str,
) -> bool:
    """
    Check whether an existing provider booking blocks a new overlapping one.

    Args:
        existing: Category of the booking already on the calendar
        new: Category of the booking being placed

    Returns:
        True if the two bookings cannot share the provider
    """
    return PROVIDER_CONFLICT_TABLE[(AppointmentCategory(existing), AppointmentCategory(new))]
