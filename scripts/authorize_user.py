#!/usr/bin/env python3
"""
Authorize a tracker user's Google Calendar from the command line.

Prints the consent URL, reads back the authorization code and stores the
resulting tokens (and optionally the calendar id) for the user.

Usage:
    python scripts/authorize_user.py alice --calendar-id=alice@example.com

Requirements:
    - GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set in .env
    - Or pass them as arguments: --client-id=XXX --client-secret=YYY
"""
import argparse
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import Session

from issue_calendar.calendar.tokens import TokenManager, build_authorization_url
from issue_calendar.core.config import settings
from issue_calendar.core.database import create_db_and_tables, engine
from issue_calendar.core.errors import NoRefreshTokenIssuedError, SyncError
from issue_calendar.stores import SqlCredentialStore


def main():
    parser = argparse.ArgumentParser(description="Authorize a user's Google Calendar")
    parser.add_argument("user_id", help="Tracker user id to store the tokens under")
    parser.add_argument("--calendar-id", help="Calendar to sync the user's issues into")
    parser.add_argument("--client-id", help="Google OAuth Client ID")
    parser.add_argument("--client-secret", help="Google OAuth Client Secret")
    args = parser.parse_args()

    client_id = args.client_id or settings.google_client_id
    client_secret = args.client_secret or settings.google_client_secret

    if not client_id or not client_secret:
        print("Error: GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required.")
        print()
        print("Either:")
        print("  1. Set them in .env file, or")
        print("  2. Pass them as arguments:")
        print("     python scripts/authorize_user.py USER --client-id=XXX --client-secret=YYY")
        sys.exit(1)

    print("=" * 60)
    print(f"Google Calendar authorization for {args.user_id}")
    print("=" * 60)
    print()
    print("Open this URL in a browser and approve access:")
    print()
    print(build_authorization_url(client_id))
    print()

    code = input("Paste the authorization code here: ").strip()

    create_db_and_tables()
    with Session(engine) as session:
        store = SqlCredentialStore(session)
        tokens = TokenManager(store, client_id, client_secret)

        try:
            tokens.authorize(args.user_id, code)
        except NoRefreshTokenIssuedError as e:
            print(f"Error: {e}")
            print("Revoke access at https://myaccount.google.com/permissions and retry.")
            sys.exit(1)
        except SyncError as e:
            print(f"Error: authorization failed: {e}")
            sys.exit(1)

        if args.calendar_id:
            store.put(args.user_id, {"calendar_id": args.calendar_id})

    print()
    print("=" * 60)
    print(f"SUCCESS! Tokens stored for {args.user_id}.")
    print("=" * 60)


if __name__ == "__main__":
    main()
