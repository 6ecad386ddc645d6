"""Script to create the database schema and the default invoice settings row."""

import argparse

from invoice_delivery.config import settings
from invoice_delivery.db.database import create_db_engine, create_session_factory, init_db
from invoice_delivery.repositories.settings import SettingsProvider


def main():
    """Main function."""
    parser = argparse.ArgumentParser(description="Create tables and default invoice settings")
    parser.add_argument("--database-url", type=str, default=settings.database_url, help="SQLAlchemy URL")
    parser.add_argument("--company-name", type=str, help="Company name for the default settings row")
    parser.add_argument("--company-email", type=str, help="Company email for the default settings row")
    parser.add_argument(
        "--email-provider",
        type=str,
        choices=["sendgrid", "mailgun", "ses", "smtp"],
        help="Email provider for the default settings row",
    )
    parser.add_argument(
        "--sms-provider",
        type=str,
        choices=["twilio", "vonage", "api"],
        help="SMS provider for the default settings row",
    )
    parser.add_argument("--enable-sms", action="store_true", help="Enable SMS delivery")
    parser.add_argument("--disable-auto-send", action="store_true", help="Do not send on invoice creation")

    args = parser.parse_args()

    if args.database_url.startswith("sqlite:///"):
        settings.model_copy(update={"database_url": args.database_url}).ensure_directories()

    print("Creating tables...")
    engine = create_db_engine(args.database_url)
    init_db(engine)

    overrides: dict = {}
    if args.company_name:
        overrides["company_name"] = args.company_name
    if args.company_email:
        overrides["company_email"] = args.company_email
    if args.email_provider:
        overrides["email_provider"] = args.email_provider
    if args.sms_provider:
        overrides["sms_provider"] = args.sms_provider
    if args.enable_sms:
        overrides["sms_enabled"] = True
    if args.disable_auto_send:
        overrides["auto_send_on_create"] = False

    snapshot = SettingsProvider(create_session_factory(engine)).ensure_defaults(**overrides)
    engine.dispose()

    print("\nMigration complete!")
    print(f"Company: {snapshot.company_name}")
    print(f"Email: {'on' if snapshot.email_enabled else 'off'} ({snapshot.email_provider})")
    print(f"SMS: {'on' if snapshot.sms_enabled else 'off'} ({snapshot.sms_provider})")
    print(f"Auto-send on create: {snapshot.auto_send_on_create}")


if __name__ == "__main__":
    main()
