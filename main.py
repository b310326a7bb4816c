#!/usr/bin/env python3
"""
weblogin - OpenID Connect front door for a small web application.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep weblogin imports lazy (inside functions) so `--help` works without
# the web stack installed.
#


def check_config(section: str) -> int:
    """Validate authentication settings and print a summary (no secrets)."""
    from weblogin.auth.config import ConfigurationError, load_auth_config

    cfg = load_auth_config(section)
    try:
        cfg.validate()
    except ConfigurationError as e:
        print(f"Configuration invalid: {e}", file=sys.stderr)
        return 1

    print(f"Section:            {cfg.section}")
    print(f"Authority:          {cfg.authority or '(from metadata address)'}")
    print(f"Discovery URL:      {cfg.discovery_url}")
    print(f"Client ID:          {cfg.client_id}")
    print(f"Client secret:      {'set' if cfg.client_secret else 'not set (public client)'}")
    print(f"Callback path:      {cfg.callback_path}")
    print(f"Signed-out path:    {cfg.signed_out_callback_path}")
    print(f"Scopes:             {' '.join(cfg.scopes)}")
    secure = "same as request" if cfg.cookie_secure is None else cfg.cookie_secure
    print(f"Secure cookies:     {secure}")
    print(f"Session TTL:        {cfg.session_ttl_seconds}s")
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Web front door with OpenID Connect sign-in",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate AZUREAD_* and AUTH_* environment settings
  python main.py --check-config

  # Serve the application
  python main.py --serve --port 8080
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--check-config", action="store_true", help="Validate authentication configuration and exit")
    parser.add_argument("--section", default="AzureAd", help="Identity provider configuration section (default: AzureAd)")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config(args.section))

    if args.serve:
        from weblogin.app import run

        run(host=args.host, port=args.port, section=args.section)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
