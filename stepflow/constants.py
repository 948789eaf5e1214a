"""Shared defaults for stepflow."""

DEFAULT_BATCH_CONCURRENCY = 5
DEFAULT_HISTORY_LIMIT = 100

CURRENT_ITEM_VARIABLE = "currentItem"
CURRENT_RANGE_VARIABLE = "currentRange"
LOOP_ITEM_VARIABLE = "loopItem"

WORKFLOW_ERROR_STEP_ID = "workflow"
BATCH_COMPLETE_ITEM = "Complete"
