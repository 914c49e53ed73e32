#!/usr/bin/env python3
"""
Monad Testnet Trading Bot Launcher

Launcher script with pre-flight checks.
"""

import importlib.util
import os
import sys

import requests
from dotenv import load_dotenv

REQUIRED_PACKAGES = [
    'telegram',
    'web3',
    'eth_account',
    'requests',
]


def check_requirements():
    """Check if all requirements are met."""
    print("🔍 Checking requirements...")

    if not os.path.exists('.env'):
        print("⚠️ .env file not found, using environment variables")
        print("Copy .env.example to .env to configure the bot.")
    load_dotenv()

    bot_token = os.getenv('TELEGRAM_BOT_TOKEN') or os.getenv('BOT_TOKEN')
    if not bot_token or bot_token == 'YOUR_BOT_TOKEN_HERE':
        print("❌ Bot token not set!")
        print("Please set TELEGRAM_BOT_TOKEN in your .env file.")
        return False
    print("✅ Bot token found")

    if not os.getenv('UNISWAP_V2_ROUTER'):
        print("⚠️ UNISWAP_V2_ROUTER not set, buy and sell will fail until it is configured")

    missing_packages = [name for name in REQUIRED_PACKAGES if importlib.util.find_spec(name) is None]
    if missing_packages:
        print(f"❌ Missing packages: {', '.join(missing_packages)}")
        print("Run 'pip install -e .' to install them.")
        return False

    print("✅ All required packages installed")
    return True


def test_network_connection():
    """Check that the Monad testnet RPC answers eth_chainId."""
    rpc_url = os.getenv('MONAD_TESTNET_RPC', 'https://testnet-rpc.monad.xyz')
    expected_chain_id = int(os.getenv('CHAIN_ID', '10143'))

    print("🌐 Testing network connection...")
    try:
        response = requests.post(
            rpc_url,
            json={"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 1},
            timeout=10
        )
        response.raise_for_status()
        chain_id = int(response.json().get('result', '0x0'), 16)
    except (requests.RequestException, ValueError) as e:
        print(f"⚠️ Network test failed: {e}")
        return False

    if chain_id != expected_chain_id:
        print(f"⚠️ Chain ID mismatch. Expected {expected_chain_id}, got {chain_id}")
        return False

    print(f"✅ Connected to Monad Testnet (Chain ID: {chain_id})")
    return True


def start_bot():
    """Start the telegram bot."""
    print("🚀 Starting Monad Testnet Trading Bot...")
    print("Press Ctrl+C to stop the bot")
    print("-" * 40)

    from monad_trader.bot import main
    main()
    return True


def main():
    """Main launcher function."""
    print("🤖 Monad Testnet Trading Bot Launcher")
    print("=" * 40)

    if not check_requirements():
        print("\n❌ Pre-flight checks failed!")
        print("Please fix the issues above and try again.")
        return False

    if not test_network_connection():
        # Don't block on network issues
        print("\n⚠️ Network issues detected, but continuing...")

    print("\n✅ All checks passed!")
    print("\n" + "=" * 40)

    return start_bot()


if __name__ == "__main__":
    try:
        success = main()
        if not success:
            sys.exit(1)
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
        sys.exit(0)
