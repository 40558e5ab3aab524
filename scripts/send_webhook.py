"""
Send a test gift webhook to a running relay.

    python scripts/send_webhook.py            # random segment
    python scripts/send_webhook.py rosa       # aim at the segment with sku/id "rosa"
"""
import argparse
import logging
import os
import sys

from livewheel.client import HttpRelayClient
from livewheel.errors import RelayError


def main(argv=None):
    parser = argparse.ArgumentParser(description="Send a test TikFinity-style webhook")
    parser.add_argument('sku', nargs='?', default=None, help="segment id or text; omit for random")
    parser.add_argument('--server', default=os.environ.get('SERVER_URL', 'http://localhost:5000'))
    parser.add_argument('--username', default='TestUser123')
    parser.add_argument('--text', default='Test gift')
    parser.add_argument('--secret', default=os.environ.get('WHEEL_WEBHOOK_SECRET'))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    if not args.secret:
        logging.error("❌ No secret: pass --secret or set WHEEL_WEBHOOK_SECRET")
        return 2

    logging.info(f"🎡 Webhook test -> {args.server} (sku: {args.sku or 'random'})")
    client = HttpRelayClient(args.server)
    try:
        response = client.send_webhook(args.secret, username=args.username, text=args.text, sku=args.sku)
    except RelayError as e:
        logging.error(f"❌ {e}")
        return 1
    logging.info(f"✅ Response: {response}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
