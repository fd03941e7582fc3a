from packages.scheduling.engine import (
    DAY_NAMES,
    DAY_PAIRS,
    TIME_SLOTS,
    choose_cell,
    day_pair_includes,
    detect_conflicts,
    get_day_pair,
    iter_cells,
    next_publish_dates,
    order_combinations,
    publish_days,
    render_question,
    same_utc_hour,
    slot_index_for_hour,
    sunday_based_weekday,
    time_slot_label,
    total_cells,
    weekday_slot_load,
)
from packages.scheduling.schema import (
    AssignedClient,
    CapacityReport,
    Combination,
    CombinationStatus,
    DayPair,
    DayPairKey,
    GridCell,
    LocationRef,
    QuestionRef,
    RotationSelection,
    ScheduleConflict,
    SlotAssignment,
)

__all__ = [
    "DAY_NAMES",
    "DAY_PAIRS",
    "TIME_SLOTS",
    "AssignedClient",
    "CapacityReport",
    "Combination",
    "CombinationStatus",
    "DayPair",
    "DayPairKey",
    "GridCell",
    "LocationRef",
    "QuestionRef",
    "RotationSelection",
    "ScheduleConflict",
    "SlotAssignment",
    "choose_cell",
    "day_pair_includes",
    "detect_conflicts",
    "get_day_pair",
    "iter_cells",
    "next_publish_dates",
    "order_combinations",
    "publish_days",
    "render_question",
    "same_utc_hour",
    "slot_index_for_hour",
    "sunday_based_weekday",
    "time_slot_label",
    "total_cells",
    "weekday_slot_load",
]
