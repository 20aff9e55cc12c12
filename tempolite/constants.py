TIMER_STEP_NAME = "sleep"
DEFAULT_HISTORY_PATH = "history.json"
DEFAULT_SAVE_ATTEMPTS = 3
