"""
Triage Value Objects
====================

Keyword tables and reply templates used by the keyword classifier and the
reply drafter. Pure data, no behavior.
"""

from helpdesk_ai.config import TicketCategory

# Ordered by tie-break precedence: tech > billing > shipping > other
CATEGORY_PRECEDENCE = (
    TicketCategory.TECH,
    TicketCategory.BILLING,
    TicketCategory.SHIPPING,
    TicketCategory.OTHER,
)

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    TicketCategory.BILLING: (
        "refund", "invoice", "charge", "payment", "billing", "credit",
        "card", "subscription", "plan", "cost", "fee", "price",
    ),
    TicketCategory.TECH: (
        "error", "bug", "stack", "crash", "exception", "500", "404",
        "not working", "issue", "broken", "malfunction", "glitch", "problem", "fail",
    ),
    TicketCategory.SHIPPING: (
        "delivery", "shipment", "shipping", "tracking", "package",
        "courier", "address", "delayed", "lost", "damaged",
    ),
    TicketCategory.OTHER: (
        "account", "login", "password", "profile", "settings",
        "general", "question", "inquiry",
    ),
}

# Confidence steps by winning keyword score
CONFIDENCE_STEPS = ((3, 0.85), (2, 0.75), (1, 0.65))
BASE_CONFIDENCE = 0.5
MAX_CLASSIFY_CONFIDENCE = 0.95

REPLY_OPENINGS: dict[str, tuple[str, ...]] = {
    TicketCategory.BILLING: (
        "Thank you for reaching out about your billing concern. I understand how important it is to get charges right, and I'm here to help.",
        "Thanks for contacting us about your account charges. Let's get this sorted out for you.",
        "I'm sorry for any confusion with your billing. I've reviewed your request and here is how we can resolve it.",
    ),
    TicketCategory.TECH: (
        "Thank you for reporting this technical issue. I'm sorry for the disruption and I'll help you get things working again.",
        "Thanks for the detailed report. Technical problems are frustrating, so let's work through this together.",
        "I appreciate you letting us know about this problem. Here are the steps that usually resolve it.",
    ),
    TicketCategory.SHIPPING: (
        "Thank you for contacting us about your order. I understand you want your package to arrive on time, and I'm here to help.",
        "Thanks for reaching out about your delivery. Let me help you track down what's happening.",
        "I'm sorry your shipment hasn't gone as expected. Here's what we can do right away.",
    ),
    TicketCategory.OTHER: (
        "Thank you for contacting our support team. I'm happy to help with your request.",
        "Thanks for getting in touch. I've looked into your question and here's what I can share.",
        "I appreciate you reaching out. Let me walk you through the next steps.",
    ),
}

BASE_ACTION_STEPS: dict[str, tuple[str, ...]] = {
    TicketCategory.BILLING: (
        "Review the charge in the Billing section of your account dashboard.",
        "Compare the charge date and amount with your latest invoice.",
        "If the charge is incorrect, request a refund from the invoice details page.",
        "Allow 5-7 business days for refunds to appear on your statement.",
    ),
    TicketCategory.TECH: (
        "Clear your browser cache and cookies, then reload the page.",
        "Try again in a private window or a different browser.",
        "Make sure you are running the latest version of the application.",
        "If the error persists, note the exact error message and the time it occurred.",
    ),
    TicketCategory.SHIPPING: (
        "Check the tracking link in your order confirmation email.",
        "Confirm the shipping address on the order matches your current address.",
        "Allow 1-2 business days for tracking information to update.",
        "If the package is marked delivered but missing, check with neighbours or your building office.",
    ),
    TicketCategory.OTHER: (
        "Sign in to your account and open the Settings page.",
        "Review the relevant section of our Help Center.",
        "Make sure your contact details are up to date so we can reach you.",
        "Reply to this message with any additional details about your request.",
    ),
}

# Verbs that mark a KB sentence as an actionable step
ACTION_VERBS: dict[str, tuple[str, ...]] = {
    TicketCategory.BILLING: ("review", "request", "update", "contact", "check", "cancel", "submit"),
    TicketCategory.TECH: ("clear", "restart", "update", "reset", "try", "reinstall", "check", "disable"),
    TicketCategory.SHIPPING: ("track", "check", "confirm", "contact", "verify", "update", "wait"),
    TicketCategory.OTHER: ("open", "go", "select", "click", "review", "update", "contact"),
}

IMPORTANT_NOTES: dict[str, str] = {
    TicketCategory.BILLING: "Refunds are returned to the original payment method. We will never ask for your full card number by email.",
    TicketCategory.TECH: "If you see the same error on several devices, please include screenshots so our engineers can reproduce it.",
    TicketCategory.SHIPPING: "Carrier delays can occur during peak periods. Claims for lost or damaged packages must be filed within 30 days of the ship date.",
    TicketCategory.OTHER: "For security reasons we can only make account changes requested from the email address on file.",
}

FOLLOW_UP_HIGH = "These steps should resolve your request. If anything is still not right, just reply to this message and we'll take care of it."
FOLLOW_UP_MEDIUM = "If these steps don't fully resolve the issue, reply with any additional details and a support specialist will follow up."
FOLLOW_UP_LOW = "A member of our support team will review your request personally and follow up with you shortly."

SIGN_OFF = "Best regards,\nCustomer Support Team"
