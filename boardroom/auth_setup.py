"""Command-line tool that obtains a Google Calendar refresh token for the room calendar."""

import argparse
import json
import logging
import os
import secrets
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import yaml

from boardroom.config import ConfigurationError, get_last_loaded_config_path, load_config

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

DEFAULT_REDIRECT_URI = "http://localhost:8080/oauth2callback"
DEFAULT_CONFIG_PATH = "config/config.yaml"


def load_client_credentials(credentials_file: str) -> Tuple[str, str]:
    """Load client credentials from the JSON file downloaded from Google Cloud Console."""
    credentials_path = Path(credentials_file)
    if not credentials_path.exists():
        raise FileNotFoundError(f"Credentials file not found: {credentials_file}")

    with open(credentials_path) as f:
        try:
            credentials = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Invalid JSON in credentials file: {credentials_file}. Error: {str(e)}"
            )

    client_config = credentials.get("installed") or credentials.get("web")
    if not client_config:
        raise ValueError(f"Invalid credentials format in {credentials_file}")

    client_id = client_config.get("client_id")
    client_secret = client_config.get("client_secret")
    if not client_id or not client_secret:
        raise ValueError(f"Missing client_id or client_secret in {credentials_file}")

    return client_id, client_secret


def build_auth_url(client_id: str, redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(OAUTH_SCOPES),
        "access_type": "offline",
        "state": secrets.token_urlsafe(16),
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def extract_code(pasted: str) -> Optional[str]:
    """Accept either the full redirect URL or the bare code."""
    pasted = pasted.strip()
    if not pasted:
        return None
    if "://" not in pasted and "code=" not in pasted:
        return pasted
    query = urlparse(pasted).query or pasted.split("?", 1)[-1]
    return parse_qs(query).get("code", [None])[0]


def exchange_code(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
    http_client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """Trade an authorization code for tokens. Raises ``httpx.HTTPStatusError`` on rejection."""
    data = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }
    client = http_client or httpx.Client(timeout=30.0)
    try:
        response = client.post(GOOGLE_TOKEN_URL, data=data)
        response.raise_for_status()
        return response.json()
    finally:
        if http_client is None:
            client.close()


def default_config_path() -> Path:
    """The config file the engine would load, or where a new one should go."""
    config_path = os.environ.get("CONFIG_PATH")
    try:
        load_config(config_path)
    except (ConfigurationError, yaml.YAMLError) as e:
        logger.warning(f"Existing configuration could not be validated: {e}")
    return get_last_loaded_config_path() or Path(config_path or DEFAULT_CONFIG_PATH)


def save_calendar_credentials(
    config_path: str, client_id: str, client_secret: str, refresh_token: str
) -> Dict[str, Any]:
    """Merge the calendar credentials into the YAML config at ``config_path``."""
    config_file = Path(config_path).expanduser()
    config_data: Dict[str, Any] = {}
    if config_file.exists():
        with open(config_file, "r") as f:
            config_data = yaml.safe_load(f) or {}
        logger.info(f"Loaded existing configuration from {config_file}")

    calendar = config_data.setdefault("calendar", {})
    calendar.update(
        {
            "enabled": True,
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
    )

    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        yaml.dump(config_data, f, default_flow_style=False)
    logger.info(f"Saved calendar credentials to {config_file}")
    return config_data


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(
        description="Set up OAuth2 access to the room's Google Calendar"
    )
    parser.add_argument("--client-id", default=os.environ.get("GOOGLE_CLIENT_ID"))
    parser.add_argument(
        "--client-secret",
        default=os.environ.get("GOOGLE_CLIENT_SECRET"),
        help="Use = syntax if the secret starts with a hyphen: --client-secret=-xyz",
    )
    parser.add_argument(
        "--credentials-file",
        help="OAuth2 client credentials JSON downloaded from Google Cloud Console",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Config file to update (default: the file the engine loads, else config/config.yaml)",
    )
    parser.add_argument("--redirect-uri", default=DEFAULT_REDIRECT_URI)
    args = parser.parse_args()

    client_id, client_secret = args.client_id, args.client_secret
    if args.credentials_file and not (client_id and client_secret):
        client_id, client_secret = load_client_credentials(args.credentials_file)

    if not client_id or not client_secret:
        print("Client ID and Client Secret are required (flags, env, or --credentials-file).")
        sys.exit(1)

    print("\n1. Open this URL in your browser:\n")
    print(build_auth_url(client_id, args.redirect_uri))
    print("\n2. Approve access. The redirect page may not load; that's fine.")
    print("3. Copy the ENTIRE URL from the address bar.\n")

    code = extract_code(input("Paste the full redirect URL here: "))
    if not code:
        print("Error: No authorization code found in what you pasted.")
        sys.exit(1)

    try:
        tokens = exchange_code(code, client_id, client_secret, args.redirect_uri)
    except httpx.HTTPError as e:
        logger.error(f"Failed to exchange authorization code: {e}")
        sys.exit(1)

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        logger.error("Google did not return a refresh token; revoke access and retry")
        sys.exit(1)

    config_path = args.config or str(default_config_path())
    save_calendar_credentials(config_path, client_id, client_secret, refresh_token)

    print("\nOAuth2 setup complete. Environment variables (alternative to config file):")
    print(f"  GOOGLE_CLIENT_ID={client_id}")
    print(f"  GOOGLE_CLIENT_SECRET={client_secret}")
    print(f"  GOOGLE_REFRESH_TOKEN={refresh_token}")


if __name__ == "__main__":
    main()
