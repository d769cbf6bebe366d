"""User-facing texts."""

WELCOME = "Welcome to TeleHole Bot"
PRIVATE_ONLY = "TeleHole Bot currently only works in private chats"
HELP = (
    "TeleHole Bot relays anonymous posts into the channel and anonymous "
    "replies into its discussion group.\n\n"
    "/post - publish your next message as a new hole\n"
    "/reply - reply to a hole by its ID\n"
    "/cancel - cancel the current operation\n"
    "/help - show this message\n\n"
    "Inside a hole everyone is shown as a pseudonym: the author, or a "
    "numbered commenter. Tap a reply button in the discussion group to "
    "answer a specific message."
)
IDLE_HINT = "Use /post to publish a hole, or /reply to answer one."
NEED_START = "Please run /start command first"
CANCELED = "Operation canceled."
POST_PROMPT = "Your next message will be posted."
REPLY_TARGET_PROMPT = "Please enter the message ID that you want to reply."
REPLY_BODY_PROMPT = "All right, then write your reply:"
BAD_TARGET = "Bad message ID."
MISSING_REPLY_TARGET = "How can you reach here?"
NO_OWN_IDEA = "You cannot reply others without your own idea."
GENERIC_ERROR = "Something went wrong, please try again later."
AUTH_DISABLED = "Authorization is disabled."
AUTH_OK = "You are now authorized."
AUTH_FAILED = "Wrong secret."
GOTO_BOT = "Goto bot and reply"
REPLY_TO_HOLE = "Reply to this hole"


def hole_created(link: str) -> str:
    return f"Hole created:\n\n{link}"


def reply_done(link: str) -> str:
    return f"Well done.\n\nGoto the hole: {link}"


def replying_to(internal_id: int) -> str:
    return f"You are replying to hole {internal_id}. Please enter your reply:"


def discovery_notice(internal_id: int) -> str:
    return f"Hole ID is {internal_id}, use this ID to reply."


def sent_from(label: str) -> str:
    return f"The message is sent from {label}"
