#!/usr/bin/env python3
"""
Batch Key Import for the Key Pool Proxy

Reads upstream API keys from a file (one per line) and registers each one
through the proxy's POST /keys endpoint.

USAGE:
    python add_keys.py --base-url https://your-proxy.example.com --file keys.csv

The shared secret is taken from --auth-key or the API_AUTH_KEY environment
variable and sent in the x-goog-api-key header.
"""

import argparse
import os
import sys
from typing import List

import httpx

DEFAULT_KEYS_FILE = "./keys.csv"
AUTH_HEADER = "x-goog-api-key"


def mask(api_key: str) -> str:
    return f"{api_key[:4]}...{api_key[-4:]}"


def read_keys(path: str) -> List[str]:
    with open(path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def import_keys(client: httpx.Client, keys: List[str]) -> int:
    """
    POST each key to /keys.

    Returns the process exit code: 1 as soon as the server rejects a key,
    0 otherwise. Network errors are counted and the import continues.
    """
    success_count = 0
    failure_count = 0

    for api_key in keys:
        masked = mask(api_key)
        print(f"  Importing key: {masked}")
        try:
            response = client.post("/keys", json={"api_key": api_key})
        except httpx.HTTPError as e:
            print(f"    ❌ Network error importing {masked}: {e}")
            failure_count += 1
            continue

        if response.is_success:
            print(f"    ✅ OK: {masked} - status {response.status_code}")
            success_count += 1
        else:
            print(f"    ❌ Failed: {masked} - status {response.status_code}, error: {response.text}")
            return 1

    print("\n--- Import finished ---")
    print(f"Succeeded: {success_count}")
    print(f"Failed: {failure_count}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Batch import API keys into the key pool proxy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python add_keys.py --base-url http://localhost:3000
    python add_keys.py -u https://proxy.example.com -f my_keys.txt
        """
    )
    parser.add_argument(
        "--base-url", "-u",
        default=os.environ.get("API_BASE_URL", ""),
        help="Proxy base URL (default: $API_BASE_URL)"
    )
    parser.add_argument(
        "--file", "-f",
        default=DEFAULT_KEYS_FILE,
        help=f"File with one key per line (default: {DEFAULT_KEYS_FILE})"
    )
    parser.add_argument(
        "--auth-key", "-k",
        default=os.environ.get("API_AUTH_KEY", ""),
        help="Shared secret of the proxy (default: $API_AUTH_KEY)"
    )

    args = parser.parse_args(argv)

    if not args.auth_key:
        print("Error: set API_AUTH_KEY or pass --auth-key.")
        return 1
    if not args.base_url:
        print("Error: set API_BASE_URL or pass --base-url.")
        return 1
    if not os.path.exists(args.file):
        print(f"Error: file {args.file} does not exist.")
        return 1

    keys = read_keys(args.file)
    if not keys:
        print("No API keys found in the file.")
        return 0

    print(f"Importing {len(keys)} keys from {args.file} into {args.base_url}")
    with httpx.Client(
        base_url=args.base_url.rstrip("/"),
        headers={AUTH_HEADER: args.auth_key},
        timeout=30.0,
    ) as client:
        return import_keys(client, keys)


if __name__ == "__main__":
    sys.exit(main())
