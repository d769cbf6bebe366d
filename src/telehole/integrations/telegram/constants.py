TELEGRAM_API_BASE_URL = "https://api.telegram.org"
TELEGRAM_MAX_CAPTION_LENGTH = 1024
TELEGRAM_ALLOWED_UPDATES = ("message", "callback_query")

BOT_COMMANDS = (
    ("post", "Post a new hole"),
    ("reply", "Reply to a hole"),
    ("cancel", "Cancel a operation"),
    ("help", "Help me"),
)
