from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from ..common import preview
from ..services.lookup_client import LookupResult
from ..storage.principals import BASE_BALANCE, REFERRAL_SIGNUP_BONUS, REFERRER_BONUS, RegistrationResult

SEARCH_LABEL = "📱 Enter 10 Digit Number"
WALLET_LABEL = "💰 Wallet"
REFER_LABEL = "🎁 Refer & Earn"
HELP_LABEL = "❓ Help"
ABOUT_LABEL = "ℹ️ About"
CANCEL_LABEL = "❌ Cancel"

PLACEHOLDER = "N/A"


class Keyboard(str, Enum):
    MAIN = "main"
    CANCEL = "cancel"
    REMOVE = "remove"


KEYBOARD_ROWS: dict[Keyboard, tuple[tuple[str, ...], ...]] = {
    Keyboard.MAIN: (
        (SEARCH_LABEL,),
        (WALLET_LABEL, REFER_LABEL),
        (HELP_LABEL, ABOUT_LABEL),
    ),
    Keyboard.CANCEL: ((CANCEL_LABEL,),),
    Keyboard.REMOVE: (),
}


@dataclass(frozen=True, slots=True)
class Reply:
    text: str
    keyboard: Keyboard | None = None


ReplySink = Callable[[Reply], Awaitable[None]]


def welcome(name: str, registration: RegistrationResult, prefix: str) -> str:
    commands = (
        f"📱 Press \"{SEARCH_LABEL}\" to search information\n"
        f"💰 Check your wallet with \"{WALLET_LABEL}\"\n"
        f"🎁 Invite friends with `{prefix}refer` and earn credits!\n"
        f"❓ Get help with `{prefix}help`"
    )
    if not registration.is_new:
        return (
            f"👋 Welcome back, {name}!\n\n"
            "🔄 **Your information has been updated.**\n\n"
            "Great to see you again! Ready to search for more information?\n\n"
            f"{commands}\n\nLet's continue! 🚀"
        )
    if registration.used_referral:
        bonus = registration.referral_bonus
        credits_line = (
            f"🎁 **Referral Bonus: +{bonus} credits!**\n\n"
            f"You received {BASE_BALANCE + bonus} credits total ({BASE_BALANCE} base + {bonus} referral bonus)!"
        )
    else:
        credits_line = f"You received {BASE_BALANCE} free credits to get started!"
    return (
        f"👋 Welcome {name}!\n\n"
        "✅ **You have been registered successfully!**\n"
        f"{credits_line}\n\n"
        "I'm here to help you search for information using mobile numbers.\n\n"
        f"{commands}\n\nLet's get started! 🚀"
    )


def help_text(prefix: str) -> str:
    return (
        "📚 **Available Commands:**\n\n"
        f"`{prefix}start` - Start the bot and show main menu\n"
        f"`{prefix}help` - Show this help message\n"
        f"`{prefix}about` - Learn more about this bot\n"
        f"`{prefix}wallet` - Check your balance\n"
        f"`{prefix}refer` - Get your referral code and earn credits\n"
        f"`{prefix}search` - Submit a 10-digit number\n"
        f"`{prefix}cancel` - Cancel the current search\n\n"
        "🔘 **Buttons:**\n\n"
        f"{SEARCH_LABEL} - Submit a 10-digit number\n"
        f"{WALLET_LABEL} - Check your balance and referral stats\n"
        f"{REFER_LABEL} - Get your referral code\n"
        f"{HELP_LABEL} - Get help\n"
        f"{ABOUT_LABEL} - Bot information"
    )


def about_text(bot_name: str) -> str:
    return (
        f"ℹ️ **About {bot_name}**\n\n"
        "Look up information for a 10-digit mobile number.\n\n"
        "✅ Each search costs 1 credit\n"
        "✅ Failed lookups are refunded automatically\n"
        "✅ Invite friends to earn more credits"
    )


def wallet_text(summary: dict, cost: int) -> str:
    balance = int(summary["balance"])
    status = "✅ Active" if balance > 0 else "⚠️ Low Balance"
    return (
        "💰 **Your Wallet**\n\n"
        f"💵 **Current Balance:** {balance} credits\n\n"
        "🎁 **Referral Earnings:**\n"
        f"👥 Total Referrals: {summary['total_referrals']}\n"
        f"💰 Credits from Referrals: {summary['credits_earned']}\n\n"
        "ℹ️ **How to use credits:**\n"
        f"• Each search costs {cost} credit\n"
        f"• New users get {BASE_BALANCE} free credits\n"
        f"• Invite friends to earn {REFERRER_BONUS} credits each\n\n"
        f"📊 **Status:** {status}"
    )


def referral_text(summary: dict, bot_name: str, prefix: str) -> str:
    code = summary["referral_code"]
    return (
        "🎁 **Your Referral Program**\n\n"
        f"📋 **Your Referral Code:** `{code}`\n\n"
        f"🔗 **How to share:** ask your friends to send `{prefix}start {code}` to {bot_name} as their first message.\n\n"
        "📊 **Your Stats:**\n"
        f"👥 Total Referrals: {summary['total_referrals']}\n"
        f"💰 Credits Earned: {summary['credits_earned']}\n"
        f"💳 Current Balance: {summary['balance']}\n\n"
        "🎯 **How it works:**\n"
        f"1. Share your referral code with friends\n"
        f"2. When they join with it, they get **{BASE_BALANCE + REFERRAL_SIGNUP_BONUS} credits** "
        f"(instead of {BASE_BALANCE})\n"
        f"3. You get **+{REFERRER_BONUS} credits** for each successful referral!"
    )


def ban_notice(reason: str | None) -> str:
    lines = ["🚫 **You have been banned from using this bot.**"]
    if reason:
        lines.append(f"📝 Reason: {reason}")
    lines.append("Please contact the administrator if you believe this is a mistake.")
    return "\n\n".join(lines)


SEARCH_PROMPT = "📱 Please enter a 10-digit number:"
CANCELLED = "❌ Cancelled. What would you like to do next?"


def invalid_input(text: str) -> str:
    return (
        "❌ **Invalid Input!**\n\n"
        "Please enter exactly **10 digits**.\n\n"
        "Examples of valid numbers:\n"
        "• 9876543210\n"
        "• 1234567890\n\n"
        f"Your input: \"{text}\"\n"
        f"Length: {len(text)} characters\n\n"
        f"Please try again or press {CANCEL_LABEL} to go back."
    )


def insufficient_balance(balance: int, required: int) -> str:
    return (
        "❌ **Insufficient Balance!**\n\n"
        f"💰 Your current balance: {balance} credits\n"
        f"💵 Required: {required} credit per search\n\n"
        "Please contact the administrator to add more credits to your wallet."
    )


def searching(cost: int) -> str:
    return f"🔍 Searching for information...\n💰 {cost} credit deducted"


def found_summary(number: str, total: int, shown: int) -> str:
    text = f"✅ Found {total} result(s) for number: `{number}`"
    if total > shown:
        text += f"\n\nShowing first {shown} results:"
    return text


def format_result(index: int, result: LookupResult, address_preview_chars: int) -> str:
    def _field(value: str | None) -> str:
        return value if value else PLACEHOLDER

    address = preview(result.address, address_preview_chars) if result.address else PLACEHOLDER
    return (
        f"📱 **Result {index}**\n\n"
        f"👤 **Name:** {_field(result.name)}\n"
        f"👨‍👦 **Father:** {_field(result.father_name)}\n"
        f"📞 **Mobile:** `{_field(result.mobile)}`\n"
        f"📞 **Alt Mobile:** `{_field(result.alt_mobile)}`\n"
        f"📍 **Address:** {address}\n"
        f"🌐 **Circle:** {_field(result.circle)}\n"
        f"🆔 **ID:** `{_field(result.id_number)}`"
    )


def more_results(total: int, shown: int) -> str:
    if total > shown:
        return f"ℹ️ Showing {shown} of {total} results. There are {total - shown} more results available."
    return "✅ All results displayed!"


def remaining_balance(balance: int) -> str:
    return f"💰 Remaining balance: {balance} credits"


def not_found(number: str) -> str:
    return f"❌ No information found for number: `{number}`"


SERVICE_UNAVAILABLE_REFUNDED = (
    "⚠️ Service temporarily unavailable. Please try again later.\n\n💰 Your credit has been refunded."
)
SERVICE_UNAVAILABLE_REFUND_FAILED = (
    "⚠️ Service temporarily unavailable. Please try again later.\n\n"
    "We could not refund your credit automatically. Please contact the administrator."
)
