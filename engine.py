"""Pure trial constants: star thresholds, eval weights, attempt rules. No UI."""
# Stars: finish = 1, score ratio >= 0.70 = 2, time ratio >= 0.35 = 3
# Eval = (score_ratio * 0.70 + time_ratio * 0.30) * 100, one decimal
import os

from dotenv import load_dotenv

load_dotenv()

STAR2_SCORE_RATIO = 0.70
STAR3_TIME_RATIO = 0.35
MAX_STARS = 3
EVAL_SCORE_WEIGHT = 0.70
EVAL_TIME_WEIGHT = 0.30

MAX_ATTEMPTS = int(os.environ.get("TRIAL_MAX_ATTEMPTS", "3"))
UTC_OFFSET_HOURS = float(os.environ.get("TRIAL_UTC_OFFSET_HOURS", "8"))
TICK_SECONDS = 1
AUTO_SAVE_INTERVAL = 3  # Autosave draft every N answer changes

STATUS_ONGOING = "Ongoing"
STATUS_FINISHED = "Finished"

QTYPE_SINGLE = "Single"
QTYPE_MULTIPLE = "Multiple"
QTYPE_INPUT = "Input"

SESSION_COOKIE = "session"
SESSION_TOKEN_PREFIX = "session-token-"

MSG_FIRST_ATTEMPT = "Good job completing the trial"
MSG_BEAT_PREVIOUS = "You beat your previous attempt"
MSG_TRY_AGAIN = "Try again next time"
MSG_COMPLETED = "Trial completed"  # later attempt, comparison unavailable

# Levels: 100 exp for level 2, +50 for every level after
LEVEL_BASE_EXP = 100
LEVEL_EXP_STEP = 50
MAX_LEVEL = 100
