"""
Qwen Chat API Proxy - command line entry point
"""

import argparse
import os
from typing import Any, Dict, Optional

import yaml

from .config import DEBUG, HOST, PORT
from .generate_config import generate_config_file, get_config_path
from .state import state
from .utils import print_model_mappings


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read config.yaml; a missing or unreadable file yields an empty config"""
    config_path = config_path or get_config_path()
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"Error loading config file: {e}")
        return {}

    if not isinstance(config, dict):
        print(f"Error loading config file: {config_path} does not contain a mapping")
        return {}
    return config


def list_tokens() -> None:
    accounts = state.credentials.describe()
    if not accounts:
        print("No tokens configured")
        return
    print(f"{'ID':<24} {'NAME':<20} {'STATUS':<14} {'ORIGIN':<12} RESET AT")
    for account in accounts:
        print(f"{account['id']:<24} {account['name']:<20} {account['status']:<14} "
              f"{account['origin']:<12} {account['resetAt'] or '-'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Qwen Chat API Proxy')
    parser.add_argument('-p', '--port', type=int, help='Port to listen on', default=None)
    parser.add_argument('-a', '--address', type=str, help='Address to listen on', default=None)
    parser.add_argument('-c', '--config', type=str, help='Path to a YAML config file', default=None)
    parser.add_argument('--generate-config', action='store_true', help='Generate a YAML config file')
    parser.add_argument('--add-token', metavar='TOKEN', help='Add an account token to tokens.json')
    parser.add_argument('--name', help='Label for the token added with --add-token')
    parser.add_argument('--remove-token', metavar='ID', help='Remove an account by id')
    parser.add_argument('--list-tokens', action='store_true', help='List configured accounts')
    return parser


def main(argv=None):
    """Main entry point for the application"""
    args = build_parser().parse_args(argv)

    if args.generate_config:
        generate_config_file()
        return

    config = load_config(args.config)
    state.load_from_config(config)

    if args.add_token:
        credential = state.credentials.store.add(args.add_token, name=args.name)
        print(f"Added account {credential.id}")
        return

    if args.remove_token:
        if state.credentials.store.remove(args.remove_token):
            print(f"Removed account {args.remove_token}")
        else:
            print(f"No persisted account with id {args.remove_token}")
        return

    if args.list_tokens:
        list_tokens()
        return

    host = args.address or config.get('address') or HOST
    port = args.port or config.get('port') or PORT
    debug = bool(config.get('debug', DEBUG))

    from .app import create_app, initialize_app

    app = create_app(state)
    initialize_app(state)
    print_model_mappings()

    print(f"Starting Qwen Chat API Proxy on {host}:{port}")
    print(f"Chat API: http://{host}:{port}/api/chat")
    print(f"OpenAI API: http://{host}:{port}/api/chat/completions")
    print(f"Status: http://{host}:{port}/api/status")

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
