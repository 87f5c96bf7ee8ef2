"""
Admin Dashboard for SpinBet

SECURITY: This tool can move player balances and reveals deposit codes.
Only run this on a secure, admin-only machine.

Features:
- Pending deposits with their one-time codes
- Pending withdrawals with payout bank details
- Mark withdrawals paid or cancelled, cancel deposits
- Manual balance adjustments
- User lookup and recent security events
"""
import logging
from typing import Optional
from tabulate import tabulate

from .config import DATABASE_URL, database_path_from_url
from .database import Database, RecordStatus
from .errors import SpinBetError
from .payments import set_withdrawal_status, cancel_deposit
from .security.audit import AuditLogger, AuditSeverity, AuditEventType
from .utils import format_naira, format_timestamp, format_win_rate

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class AdminDashboard:
    """Operator console for the manual money workflows."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or Database(database_path_from_url(DATABASE_URL))
        self.audit = AuditLogger(self.db.db_path)

    def main_menu(self):
        """Display main menu."""
        while True:
            print("\n" + "="*60)
            print("🎰 SPINBET ADMIN DASHBOARD")
            print("="*60)
            print("\n💰 DEPOSITS:")
            print("  1. View Pending Deposits (with codes)")
            print("  2. Cancel Pending Deposit")
            print("\n💸 WITHDRAWALS:")
            print("  3. View Pending Withdrawals")
            print("  4. Mark Withdrawal Paid")
            print("  5. Cancel Withdrawal")
            print("\n👤 USER MANAGEMENT:")
            print("  6. Search User")
            print("  7. Manual Balance Adjustment")
            print("\n🔒 SECURITY:")
            print("  8. View Recent Security Events")
            print("\n  0. Exit")
            print("="*60)

            choice = input("\nSelect option: ").strip()

            try:
                if choice == "1":
                    self.view_pending_deposits()
                elif choice == "2":
                    self.cancel_pending_deposit()
                elif choice == "3":
                    self.view_pending_withdrawals()
                elif choice == "4":
                    self.update_withdrawal(RecordStatus.COMPLETED)
                elif choice == "5":
                    self.update_withdrawal(RecordStatus.CANCELLED)
                elif choice == "6":
                    self.search_user()
                elif choice == "7":
                    self.adjust_balance()
                elif choice == "8":
                    self.view_security_events()
                elif choice == "0":
                    print("\n👋 Exiting admin dashboard...")
                    break
                else:
                    print("\n❌ Invalid option. Try again.")
            except KeyboardInterrupt:
                print("\n\n👋 Exiting admin dashboard...")
                break
            except SpinBetError as e:
                print(f"\n❌ {e.message}")
            except Exception as e:
                logger.error(f"Dashboard error: {e}", exc_info=True)
                print(f"\n❌ Error: {e}")
                input("\nPress Enter to continue...")

    def _log_action(self, details: str, user_id: Optional[int] = None):
        self.audit.log(
            event_type=AuditEventType.ADMIN_ACTION,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            details=details,
        )

    # ===== DEPOSITS =====

    def view_pending_deposits(self):
        """View pending deposits and the codes to relay to players."""
        print("\n" + "="*80)
        print("💰 PENDING DEPOSITS")
        print("="*80)

        deposits = self.db.get_deposits_by_status(RecordStatus.PENDING)

        if deposits:
            data = []
            for deposit in deposits:
                user = self.db.get_user(deposit.user_id)
                data.append({
                    "ID": deposit.id,
                    "User": f"{user.username} ({user.id})" if user else deposit.user_id,
                    "Amount": format_naira(deposit.amount),
                    "Code": deposit.withdrawal_code,
                    "Requested": format_timestamp(deposit.created_at),
                })

            print("\n" + tabulate(data, headers="keys", tablefmt="grid"))
        else:
            print("\n✅ No pending deposits.")

        input("\nPress Enter to continue...")

    def cancel_pending_deposit(self):
        """Cancel a pending deposit so its code can no longer be used."""
        deposit_id = input("\nEnter Deposit ID: ").strip()
        if not deposit_id.isdigit():
            print("\n❌ Invalid input.")
            return

        confirm = input(f"Cancel deposit #{deposit_id}? (yes/no): ").strip().lower()
        if confirm != "yes":
            print("\n❌ Cancelled.")
            return

        deposit = cancel_deposit(self.db, int(deposit_id))
        self._log_action(f"Cancelled deposit #{deposit.id} ({deposit.amount:.2f})", user_id=deposit.user_id)
        print(f"\n✅ Deposit #{deposit.id} cancelled.")

    # ===== WITHDRAWALS =====

    def view_pending_withdrawals(self):
        """View withdrawals waiting for a manual bank payout."""
        print("\n" + "="*80)
        print("💸 PENDING WITHDRAWALS")
        print("="*80)

        withdrawals = self.db.get_withdrawals_by_status(RecordStatus.PENDING)

        if withdrawals:
            data = []
            for w in withdrawals:
                data.append({
                    "ID": w.id,
                    "User": f"{w.username} ({w.user_id})",
                    "Amount": format_naira(w.amount),
                    "Bank": w.bank_name,
                    "Account": w.account_number,
                    "Name": w.account_name,
                    "Requested": format_timestamp(w.created_at),
                })

            print("\n" + tabulate(data, headers="keys", tablefmt="grid"))
        else:
            print("\n✅ No pending withdrawals.")

        input("\nPress Enter to continue...")

    def update_withdrawal(self, status: RecordStatus):
        """Mark a pending withdrawal paid or cancelled. Cancelling does not refund."""
        withdrawal_id = input("\nEnter Withdrawal ID: ").strip()
        if not withdrawal_id.isdigit():
            print("\n❌ Invalid input.")
            return

        if status == RecordStatus.CANCELLED:
            print("\n⚠️  The player's balance is NOT refunded. Use a manual adjustment if needed.")

        confirm = input(f"Mark withdrawal #{withdrawal_id} {status.value}? (yes/no): ").strip().lower()
        if confirm != "yes":
            print("\n❌ Cancelled.")
            return

        withdrawal = set_withdrawal_status(self.db, int(withdrawal_id), status)
        self.audit.log(
            event_type=AuditEventType.WITHDRAWAL_STATUS_CHANGED,
            user_id=withdrawal.user_id,
            details=f"withdrawal={withdrawal.id} status={status.value}",
        )
        self._log_action(f"Withdrawal #{withdrawal.id} marked {status.value}", user_id=withdrawal.user_id)
        print(f"\n✅ Withdrawal #{withdrawal.id} marked {status.value}.")

    # ===== USERS =====

    def search_user(self):
        """Search for user by ID, username or email."""
        print("\n" + "="*60)
        print("🔍 SEARCH USER")
        print("="*60)

        search = input("\nEnter User ID, username or email: ").strip()
        if not search:
            print("\n❌ Invalid input.")
            return

        users = self.db.search_users(search)
        if not users:
            print("\n❌ User not found.")
            return

        data = []
        for user in users:
            games = self.db.get_user_games(user.id)
            data.append({
                "ID": user.id,
                "Username": user.username,
                "Email": user.email,
                "Balance": format_naira(user.balance),
                "Games": len(games),
                "Win Rate": format_win_rate(len(games), sum(1 for g in games if g.is_win)),
                "Referral Code": user.referral_code,
                "Referred By": user.referred_by or "None",
                "Bank": f"{user.bank_name} {user.account_number}" if user.bank_name else "NOT SET",
            })

        print("\n" + tabulate(data, headers="keys", tablefmt="grid"))
        input("\nPress Enter to continue...")

    def adjust_balance(self):
        """Credit (positive) or debit (negative) a player's balance."""
        print("\n" + "="*60)
        print("🧾 MANUAL BALANCE ADJUSTMENT")
        print("="*60)

        user_id = input("\nEnter User ID: ").strip()
        amount = input("Enter amount (negative to debit): ").strip()
        reason = input("Enter reason: ").strip()

        if not all([user_id.isdigit(), reason]):
            print("\n❌ Invalid input.")
            return

        try:
            amount_float = float(amount)
        except ValueError:
            print("\n❌ Invalid amount.")
            return

        user = self.db.get_user(int(user_id))
        if not user:
            print("\n❌ User not found.")
            return

        print(f"\nAdjusting {user.username}: {format_naira(user.balance)} -> {format_naira(user.balance + amount_float)}")
        confirm = input("Confirm? (yes/no): ").strip().lower()
        if confirm != "yes":
            print("\n❌ Adjustment cancelled.")
            return

        new_balance = self.db.adjust_balance(user.id, amount_float, f"Admin adjustment: {reason}")
        self._log_action(f"Balance adjustment {amount_float:+.2f} ({reason})", user_id=user.id)
        print(f"\n✅ New balance: {format_naira(new_balance)}")

    # ===== SECURITY =====

    def view_security_events(self):
        """View recent security events."""
        print("\n" + "="*80)
        print("📋 RECENT SECURITY EVENTS")
        print("="*80)

        hours = input("\nShow events from last N hours (default 24): ").strip()
        hours = int(hours) if hours.isdigit() else 24

        events = self.audit.get_recent_events(limit=50, hours=hours)

        if events:
            data = []
            for event in events:
                details = event["details"] or ""
                data.append({
                    "Time": event["timestamp"][:19],
                    "Type": event["event_type"],
                    "Severity": event["severity"],
                    "User": event["user_id"] or "N/A",
                    "IP": event["ip_address"] or "N/A",
                    "Details": details[:40] + "..." if len(details) > 40 else details,
                })

            print("\n" + tabulate(data, headers="keys", tablefmt="grid"))
        else:
            print("\n✅ No recent security events.")

        input("\nPress Enter to continue...")


def main():
    """Run the admin dashboard."""
    print("\n" + "="*60)
    print("🎰 SPINBET ADMIN DASHBOARD")
    print("="*60)
    print("\n⚠️  This tool can change player balances.\n")

    try:
        dashboard = AdminDashboard()
    except (RuntimeError, ValueError) as e:
        print(f"❌ ERROR: {e}")
        print("\nPlease set DATABASE_URL in your .env file, e.g.:")
        print("   DATABASE_URL=sqlite:///spinbet.db")
        return

    dashboard.audit.log(
        event_type=AuditEventType.ADMIN_ACTION,
        severity=AuditSeverity.INFO,
        details="Admin dashboard opened",
    )

    try:
        dashboard.main_menu()
    except KeyboardInterrupt:
        print("\n\n👋 Dashboard closed by user.")


if __name__ == "__main__":
    main()
