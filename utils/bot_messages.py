"""Bot Messages - user-facing WhatsApp copy in one place"""

from typing import Optional

from config import Config
from utils.decimal_precision import format_stx, micro_stx_to_stx


def short_address(address: str, head: int = 10, tail: int = 6) -> str:
    if not address or len(address) <= head + tail:
        return address or ""
    return f"{address[:head]}...{address[-tail:]}"


def short_tx(tx_id: str) -> str:
    return short_address(tx_id, 10, 6)


ESCROW_STATUS_ICONS = {
    "active": "🟢",
    "released": "✅",
    "refunded": "💰",
    "cancelled": "❌",
}

TRANSACTION_STATUS_ICONS = {
    "confirmed": "✅",
    "pending": "⏳",
}


class BotMessages:
    """Centralized message copy for consistent communication"""

    CONFIRMATION_REMINDER = "⚠️ Please reply *yes* to confirm or *no* to cancel."
    PAYMENT_CANCELLED = "❌ Payment cancelled."
    ESCROW_CANCELLED = "❌ Cancelled."
    REGISTRATION_CANCELLED = 'Registration cancelled. Type "register" to start again.'
    GENERIC_FAILURE = "❌ Sorry, something went wrong. Please try again or type *help* for assistance."
    CONFIRM_FOOTER = "Reply:\n*yes* to confirm\n*no* to cancel"

    @staticmethod
    def unknown_command() -> str:
        return (
            "❓ *Command not recognized*\n\n"
            "Type *help* to see available commands.\n\n"
            "Quick commands:\n"
            "• balance\n"
            "• send [amount] to [name]\n"
            "• escrow [amount] to [name] for [time]\n"
            "• contacts\n"
            "• history"
        )

    @staticmethod
    def help_unregistered() -> str:
        return (
            "👋 *Welcome to STX WhatsApp Bot!*\n\n"
            "Send and receive STX (Stacks) via WhatsApp.\n\n"
            "*To get started:*\n"
            "register [your-stx-address]\n\n"
            "Example:\n"
            "register SP2J6ZY48GV1EZ5V..."
        )

    @staticmethod
    def help_registered(ledger_address: str) -> str:
        return (
            "💸 *STX WhatsApp Bot - Commands*\n\n"
            "*Balance & History*\n"
            "• balance - Check your balance\n"
            "• history - View transactions\n\n"
            "*Sending STX*\n"
            "• send [amount] to [name/address]\n"
            "  Example: send 5 to John\n\n"
            "*Escrow* 🔒\n"
            "• escrow [amount] to [name] for [time] hours/days\n"
            "  Example: escrow 5 to John for 24 hours\n"
            "• release escrow #[id]\n"
            "• refund escrow #[id]\n"
            "• cancel escrow #[id]\n"
            "• escrow status #[id]\n"
            "• my escrows - List all escrows\n\n"
            "*Contacts*\n"
            "• contacts - List your contacts\n"
            "• add contact [name] [address]\n"
            "  Example: add contact John SP2J6ZY...\n\n"
            "*Other*\n"
            "• help - Show this menu\n\n"
            f"Your address: {ledger_address[:10]}..."
        )

    # Registration

    @staticmethod
    def registration_prompt() -> str:
        return (
            "👋 Welcome to STX WhatsApp Bot!\n\n"
            "You're not registered yet. To get started, please send your Stacks (STX) address.\n\n"
            "Format: SP... or ST...\n"
            "Example: SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7\n\n"
            "Reply with your STX address to register, or *cancel* to stop."
        )

    @staticmethod
    def registration_welcome(user_id: str, ledger_address: str) -> str:
        return (
            "🎉 Welcome to STX WhatsApp Bot!\n\n"
            "Your account has been registered successfully.\n\n"
            f"📱 Phone: {user_id}\n"
            f"🔑 STX Address: {ledger_address}\n\n"
            "You can now:\n"
            '• Send STX: "send <amount> to <contact or address>"\n'
            '• Add contact: "add contact <name> <address>"\n'
            '• Check balance: "balance"\n'
            '• Get help: "help"'
        )

    @staticmethod
    def invalid_registration_address(reason: str) -> str:
        return (
            f"❌ Invalid STX address: {reason}\n\n"
            "Please send a valid Stacks address (starting with SP or ST)."
        )

    # Payments

    @staticmethod
    def balance(balance_micro_stx: int, locked_micro_stx: int, ledger_address: str) -> str:
        return (
            "💰 *Your Balance*\n\n"
            f"Available: *{format_stx(balance_micro_stx - locked_micro_stx)}*\n"
            f"Locked: {format_stx(locked_micro_stx)}\n\n"
            f"Address: {short_address(ledger_address)}"
        )

    @staticmethod
    def insufficient_balance(spendable_micro_stx: int, needed_micro_stx: int, fee_micro_stx: int) -> str:
        return (
            "Insufficient balance.\n\n"
            f"You have: {format_stx(spendable_micro_stx)}\n"
            f"Need: {format_stx(needed_micro_stx)} (including ~{format_stx(fee_micro_stx)} fee)"
        )

    @staticmethod
    def confirm_send(amount: str, recipient_label: str, recipient_address: str, fee_micro_stx: int,
                     total_micro_stx: int) -> str:
        return (
            "💸 *Confirm Payment*\n\n"
            f"Amount: *{amount} STX*\n"
            f"To: {recipient_label}\n"
            f"{short_address(recipient_address)}\n"
            f"Fee: ~{format_stx(fee_micro_stx)}\n"
            f"Total: *{format_stx(total_micro_stx)}*\n\n"
            f"{BotMessages.CONFIRM_FOOTER}"
        )

    @staticmethod
    def payment_sent(amount: str, recipient_label: str, tx_id: str) -> str:
        return (
            "✅ *Payment Sent!*\n\n"
            f"Amount: {amount} STX\n"
            f"To: {recipient_label}\n"
            f"TX ID: {short_tx(tx_id)}\n\n"
            "⏳ Confirming on blockchain...\n"
            f"View: {Config.explorer_tx_url(tx_id)}"
        )

    @staticmethod
    def payment_received(amount: str, sender_user_id: str, tx_id: str) -> str:
        return (
            "📥 *Payment Received!*\n\n"
            f"Amount: {amount} STX\n"
            f"From: {sender_user_id}\n"
            f"TX ID: {tx_id[:10]}..."
        )

    @staticmethod
    def contact_added(name: str, address: str) -> str:
        return (
            "✅ Contact added!\n\n"
            f"*{name}*\n{address}\n\n"
            f'You can now send: "send 5 to {name}"'
        )

    @staticmethod
    def contact_list(contacts) -> str:
        if not contacts:
            return (
                "📇 *Contacts*\n\nYou have no contacts yet.\n\n"
                'Add one: "add contact John SP2J6ZY48GV1EZ5V..."'
            )
        lines = [f"📇 *Your Contacts* ({len(contacts)})", ""]
        for index, contact in enumerate(contacts, start=1):
            lines.append(f"{index}. *{contact.display_name}*")
            lines.append(f"   {short_address(contact.ledger_address)}")
        return "\n".join(lines)

    @staticmethod
    def history(transactions, user_id: str) -> str:
        if not transactions:
            return "📜 *Transaction History*\n\nNo transactions yet."
        lines = [f"📜 *Recent Transactions* ({len(transactions)})", ""]
        for index, tx in enumerate(transactions, start=1):
            is_sent = tx.sender_user_id == user_id
            icon = "📤" if is_sent else "📥"
            status_icon = TRANSACTION_STATUS_ICONS.get(tx.status, "❌")
            counterparty = (
                tx.recipient_user_id or short_address(tx.recipient_address)
                if is_sent
                else tx.sender_user_id
            )
            lines.append(f"{index}. {icon} {'Sent' if is_sent else 'Received'}")
            lines.append(f"   {format_stx(tx.amount_micro_stx)} {status_icon}")
            lines.append(f"   {'To' if is_sent else 'From'}: {counterparty}")
            lines.append(f"   {tx.created_at:%Y-%m-%d}")
            lines.append("")
        return "\n".join(lines).rstrip()

    # Escrow

    @staticmethod
    def confirm_escrow_create(amount: str, recipient_label: str, recipient_address: str,
                              time_description: str, fee_micro_stx: int, total_micro_stx: int) -> str:
        return (
            "🔒 *Confirm Escrow*\n\n"
            f"Amount: *{amount} STX*\n"
            f"To: {recipient_label}\n"
            f"{short_address(recipient_address)}\n"
            f"Timeout: {time_description}\n"
            f"Fee: ~{format_stx(fee_micro_stx)}\n"
            f"Total: *{format_stx(total_micro_stx)}*\n\n"
            "⚠️ Funds will be locked until:\n"
            "• You or recipient release them\n"
            f"• Timeout expires ({time_description})\n\n"
            f"{BotMessages.CONFIRM_FOOTER}"
        )

    @staticmethod
    def escrow_created(amount: str, recipient_label: str, time_description: str, tx_id: str) -> str:
        return (
            "🔒 *Escrow Created!*\n\n"
            f"Amount: {amount} STX\n"
            f"To: {recipient_label}\n"
            f"Timeout: {time_description}\n"
            f"TX ID: {short_tx(tx_id)}\n\n"
            "⏳ Confirming on blockchain...\n"
            f"View: {Config.explorer_tx_url(tx_id)}"
        )

    @staticmethod
    def escrow_received(amount: str, sender_user_id: str, time_description: str) -> str:
        return (
            "🔒 *Escrow Received!*\n\n"
            f"Amount: {amount} STX\n"
            f"From: {sender_user_id}\n"
            f"Timeout: {time_description}\n\n"
            'Send "my escrows" once it is confirmed to see its ID.'
        )

    @staticmethod
    def confirm_escrow_action(action: str, escrow_id: int, amount_micro_stx: int,
                              memo: Optional[str], counterparty: Optional[str] = None) -> str:
        amount = f"{micro_stx_to_stx(amount_micro_stx)} STX"
        if action == "release":
            return (
                "🔓 *Confirm Release*\n\n"
                f"Escrow ID: #{escrow_id}\n"
                f"Amount: {amount}\n"
                f"To: {counterparty}\n"
                f"Memo: {memo or '-'}\n\n"
                "This will release the funds to the recipient.\n\n"
                f"{BotMessages.CONFIRM_FOOTER}"
            )
        if action == "refund":
            return (
                "💰 *Confirm Refund*\n\n"
                f"Escrow ID: #{escrow_id}\n"
                f"Amount: {amount}\n"
                f"Memo: {memo or '-'}\n\n"
                "⏰ Timeout reached. You can now get your refund.\n\n"
                f"{BotMessages.CONFIRM_FOOTER}"
            )
        return (
            "❌ *Confirm Cancel*\n\n"
            f"Escrow ID: #{escrow_id}\n"
            f"Amount: {amount}\n"
            f"Memo: {memo or '-'}\n\n"
            "This will cancel the escrow and return funds to you.\n\n"
            f"{BotMessages.CONFIRM_FOOTER}"
        )

    @staticmethod
    def escrow_action_done(action: str, escrow_id: int, tx_id: str) -> str:
        titles = {
            "release": "🔓 *Escrow Released!*",
            "refund": "💰 *Escrow Refunded!*",
            "cancel": "❌ *Escrow Cancelled!*",
        }
        return (
            f"{titles[action]}\n\n"
            f"Escrow ID: #{escrow_id}\n"
            f"TX ID: {tx_id[:10]}...\n\n"
            f"View: {Config.explorer_tx_url(tx_id)}"
        )

    @staticmethod
    def escrow_action_notice(action: str, escrow_id: int, amount_micro_stx: int, actor_user_id: str) -> str:
        verbs = {"release": "released", "refund": "refunded", "cancel": "cancelled"}
        return (
            f"🔔 *Escrow #{escrow_id} {verbs[action]}*\n\n"
            f"Amount: {format_stx(amount_micro_stx)}\n"
            f"By: {actor_user_id}"
        )

    @staticmethod
    def refund_timeout_not_reached(escrow_id: int, timeout_blocks: int) -> str:
        return (
            "❌ Timeout not reached yet.\n\n"
            f"You can refund after {timeout_blocks} blocks.\n\n"
            f'Or use "cancel escrow #{escrow_id}" to cancel immediately.'
        )

    @staticmethod
    def escrow_status(escrow, sender_label: str, recipient_label: str) -> str:
        icon = ESCROW_STATUS_ICONS.get(escrow.status, "⏳")
        text = (
            f"{icon} *Escrow #{escrow.display_id}*\n\n"
            f"Amount: {format_stx(escrow.amount_micro_stx)}\n"
            f"Status: {escrow.status}\n"
            f"Sender: {sender_label}\n"
            f"Recipient: {recipient_label}\n"
            f"Timeout: {escrow.timeout_blocks} blocks\n"
            f"Memo: {escrow.memo or '-'}\n"
        )
        if escrow.tx_id:
            text += f"\nTX: {escrow.tx_id[:10]}..."
        return text

    @staticmethod
    def escrow_list(escrows, user_id: str) -> str:
        if not escrows:
            return (
                "📋 *My Escrows*\n\nNo escrows found.\n\n"
                'Create one: "escrow 5 to John for 24 hours"'
            )
        lines = [f"📋 *My Escrows* ({len(escrows)})", ""]
        for escrow in escrows:
            is_sender = escrow.sender_user_id == user_id
            icon = ESCROW_STATUS_ICONS.get(escrow.status, "⏳")
            if is_sender:
                other = escrow.recipient_user_id or f"{escrow.recipient_address[:10]}..."
            else:
                other = escrow.sender_user_id or f"{escrow.sender_address[:10]}..."
            lines.append(f"{icon} Escrow #{escrow.display_id}")
            lines.append(f"   {format_stx(escrow.amount_micro_stx)} {'📤 Sent' if is_sender else '📥 Received'}")
            lines.append(f"   {'To' if is_sender else 'From'}: {other}")
            lines.append(f"   Status: {escrow.status}")
            lines.append("")
        lines.append('Check status: "escrow status #[id]"')
        return "\n".join(lines)
