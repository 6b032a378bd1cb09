"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages
- Button labels and callback verbs
- Reusable constants

(Prevents hardcoding across the codebase)
"""

# ============================================================
# DEFAULTS
# ============================================================

UNNAMED_USER = "Unnamed User"
UNNAMED_HANDLE = "unnamed_user"

REFERRAL_PREFIX = "ref_"
CONSULTATION_START_PARAM = "astro"

# ============================================================
# BUTTONS & CALLBACKS
# ============================================================

SHARE_BUTTON_TEXT = "Send to a friend"
TAKE_ORDER_BUTTON_TEXT = "✅ Take order"
CONTINUE_CONSULTATION_BUTTON_TEXT = "🔮 Continue consultation"
WRITE_TO_CONSULTANT_CAPTION = "Write to the consultant"

CALLBACK_TAKE_ORDER = "take_order"
CALLBACK_CONSULTATION_CONTINUE = "consultation_continue"

# ============================================================
# WELCOME & SHARING
# ============================================================

WELCOME_MESSAGE = """🎉 Your gift is ready!
👉 Just forward this message to a friend and they will get
a free mini consultation with an astrologer."""

SHARE_PROMPT_MESSAGE = "Tap the button below to prepare an invitation for a friend 👇"

FREE_TEXT_HINT_MESSAGE = "Hello! Send /start to begin working with the bot."

SHARE_LINK_MESSAGE = (
    "Hi! I just got an astrology reading and it is really great! 🙌\n\n"
    "I have a unique gift for you: a mini consultation with an astrologer!\n\n"
    "🚀 Tap here: [💌 {caption}]({link})"
)

SHARE_INSTRUCTION_MESSAGE = "👆 Forward this message to a friend so they get the gift!"

# ============================================================
# CONSULTATION FLOW
# ============================================================

CONSULTATION_REQUESTED_MESSAGE = (
    "✨ Thank you for your request! Our consultant will be notified "
    "and will contact you soon."
)

CONSULTATION_EXISTS_MESSAGE = (
    "You already have an active consultation request. "
    "Please wait for the consultant to contact you."
)

CONSULTATION_TAKEN_CLIENT_MESSAGE = (
    "🔮 Your consultation has been taken by {staff_name}. "
    "They will write to you shortly."
)

REFERRER_NOTICE_MESSAGE = (
    "🎉 Great news! Your friend {client_name} used your recommendation "
    "and requested a consultation."
)

REMINDER_MESSAGE = (
    "How did you like your consultation? "
    "Tap the button below to continue with a full consultation."
)

FULL_CONSULTATION_REQUESTED_MESSAGE = (
    "✨ Thank you for your request for a full consultation! "
    "Our consultant will contact you shortly."
)

# ============================================================
# STAFF CHANNEL
# ============================================================

STAFF_NEW_ORDER_TITLE = "🆕 *New consultation request*"
STAFF_FULL_ORDER_TITLE = "💎 *Full consultation requested*"
STAFF_REPEAT_CLIENT_NOTE = "🔁 Repeat client"

STAFF_ALREADY_CLAIMED_MESSAGE = "Order {order_id} is already taken or finished."
STAFF_ORDER_NOT_FOUND_MESSAGE = "Order {order_id} was not found."

# ============================================================
# ERRORS
# ============================================================

GENERIC_ERROR_MESSAGE = (
    "An error occurred while processing your request. Please try again later."
)
