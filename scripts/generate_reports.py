import csv
import logging
import os
import sys
from datetime import timedelta

from toppest.database import initialize_store
from toppest.database.models import utcnow

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

REPORT_DIR = "reports/suspicious"
LOOKBACK_DAYS = 7
MIN_INCIDENTS = 3

FIELDNAMES = ['wallet_address', 'incident_count', 'reasons', 'first_incident', 'last_incident']


def generate_suspicious_wallets_report(store=None, report_dir=REPORT_DIR, now=None):
    """Write a CSV of wallets with repeated anti-cheat incidents"""
    store = store or initialize_store()
    now = now or utcnow()
    since = now - timedelta(days=LOOKBACK_DAYS)

    wallets = store.get_suspicious_wallets(since, min_incidents=MIN_INCIDENTS)

    os.makedirs(report_dir, exist_ok=True)
    filename = os.path.join(report_dir, f"suspicious_wallets_{now.strftime('%Y-%m-%d')}.csv")

    with open(filename, 'w', newline='') as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=FIELDNAMES)
        writer.writeheader()
        for entry in wallets:
            writer.writerow({
                'wallet_address': entry['wallet_address'],
                'incident_count': entry['incident_count'],
                'reasons': ';'.join(sorted(entry['reasons'])),
                'first_incident': entry['first_incident'].isoformat(),
                'last_incident': entry['last_incident'].isoformat()
            })

    logger.info(f"Generated suspicious wallets report: {filename} ({len(wallets)} wallets)")
    return filename


if __name__ == '__main__':
    generate_suspicious_wallets_report(report_dir=sys.argv[1] if len(sys.argv) > 1 else REPORT_DIR)
