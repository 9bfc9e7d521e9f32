"""
Reply texts sent back over the chat.
"""

from decimal import Decimal
from typing import Optional

from ledgerbot.models.ledger import IntentAction, ReconcileOutcome, ReconcileStatus

NOT_UNDERSTOOD = "🤔 I didn't understand that. Try something like: \"spent 25.50 on lunch\"."
NOTHING_UNDERSTOOD = "🤔 I couldn't find any expense or income in that message."
RATE_LIMITED = "⏳ I'm getting too many requests right now. Please try again in a minute."
ONBOARDING = (
    "👋 I don't know this number yet. Sign up with your phone number, "
    "then send me that number here to link this chat."
)
LINKED = "🔗 This chat is now linked to your account, {name}! Send me your expenses and income."
RENAME_USAGE = "✏️ Usage: !name <your new name>"
RENAME_FAILED = "❌ Couldn't change your name right now."
RENAMED = "✅ Name changed to: *{name}*"
AUTH_CODE = "🔐 Code: *{code}*"


def format_amount(amount: Optional[Decimal], currency_symbol: str = "R$") -> str:
    if amount is None:
        return "?"
    return f"{currency_symbol} {amount:.2f}"


def format_outcome(outcome: ReconcileOutcome, currency_symbol: str = "R$") -> str:
    status = outcome.status

    if status == ReconcileStatus.CREATED:
        lines = [
            f"✅ *Saved! (#{outcome.entry_id})*",
            f"🏷️ {outcome.fields.category}",
            f"💰 {format_amount(outcome.fields.amount, currency_symbol)}",
        ]
        if outcome.fields.description:
            lines.append(f"📝 {outcome.fields.description}")
        return "\n".join(lines)

    if status == ReconcileStatus.UPDATED:
        return f"✏️ *Updated (#{outcome.entry_id})!*"

    if status == ReconcileStatus.NOTHING_TO_UPDATE:
        return f"ℹ️ Nothing to change on #{outcome.entry_id}."

    if status == ReconcileStatus.TARGET_NOT_FOUND:
        if outcome.entry_id is not None:
            return f"❌ Entry #{outcome.entry_id} not found."
        if outcome.search_amount is not None:
            return f"❌ No entry of {format_amount(outcome.search_amount, currency_symbol)} found."
        return "❌ Tell me which entry to edit (its # or its amount)."

    if outcome.action == IntentAction.CREATE:
        return "❌ Error saving."
    if outcome.entry_id is not None:
        return f"❌ Error editing #{outcome.entry_id}."
    return "❌ Error editing."


def format_outcomes(outcomes: list[ReconcileOutcome], currency_symbol: str = "R$") -> str:
    """One message aggregating every outcome of a turn."""
    if not outcomes:
        return NOTHING_UNDERSTOOD
    return "\n\n".join(format_outcome(o, currency_symbol) for o in outcomes)
