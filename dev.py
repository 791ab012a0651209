#!/usr/bin/env python3

"""
Development utility for the DQoS Remote MCP Server
"""

import argparse
import os
import secrets
import subprocess
import sys
from pathlib import Path

from config import Config

REQUIRED_VARS = ["JWT_SECRET", "OAUTH_CLIENT_SECRET"]


def generate_secret_key(nbytes: int = 48) -> str:
    """Generate a secret suitable for JWT_SECRET or OAUTH_CLIENT_SECRET"""
    return secrets.token_urlsafe(nbytes)


def check_env() -> bool:
    """Check environment configuration"""
    missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
    if missing:
        print(f"Missing required variables: {', '.join(missing)}")
        return False

    try:
        config = Config()
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        return False

    print("Environment configuration looks good!")
    print(f"   Environment: {config.environment}")
    print(f"   Server URL: {config.base_url}")
    print(f"   DQoS API: {config.dqos_api_url}")
    print(f"   OAuth client id: {config.oauth_client_id}")
    print(f"   Code expiry: {config.oauth_code_expiry}s, token expiry: {config.oauth_token_expiry}s")
    return True


def run_server():
    """Run development server"""
    env = dict(os.environ, ENVIRONMENT=os.getenv("ENVIRONMENT", "development"))
    subprocess.run(
        [sys.executable, "-m", "uvicorn", "main:create_app", "--factory", "--reload",
         "--host", env.get("HOST", "127.0.0.1"), "--port", env.get("PORT", "4000")],
        env=env,
        check=False
    )


def run_tests() -> int:
    """Run tests"""
    return subprocess.run([sys.executable, "-m", "pytest", "tests"], check=False).returncode


def main(argv=None) -> int:
    """Main CLI interface"""
    parser = argparse.ArgumentParser(
        description="Development utility for the DQoS Remote MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python dev.py secret       # Generate a secure secret
  python dev.py check        # Check environment configuration
  python dev.py run          # Run development server
  python dev.py test         # Run tests
        """
    )
    parser.add_argument("command", choices=["secret", "check", "run", "test"], help="Command to execute")
    args = parser.parse_args(argv)

    os.chdir(Path(__file__).parent)

    if args.command == "secret":
        print(generate_secret_key())
    elif args.command == "check":
        return 0 if check_env() else 1
    elif args.command == "run":
        run_server()
    elif args.command == "test":
        return run_tests()
    return 0


if __name__ == "__main__":
    sys.exit(main())
