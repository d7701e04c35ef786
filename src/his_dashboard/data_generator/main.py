"""Standalone script to run the HIS export generator."""

import argparse
import logging
from datetime import date, datetime

from his_dashboard.data_generator.generator import main


def cli():
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    parser = argparse.ArgumentParser(
        description="Synthetic HIS export generator: writes one export to data/raw/YYYY/MM/DD/"
    )
    parser.add_argument(
        "--date",
        type=lambda s: datetime.strptime(s, "%Y-%m-%d").date(),
        default=date.today(),
        help="Partition date to generate (default: today). Format: YYYY-MM-DD",
    )
    parser.add_argument(
        "--upload",
        action="store_true",
        help="Also upload the file to the MinIO bronze bucket",
    )
    args = parser.parse_args()
    main(args.date, upload=args.upload)


if __name__ == "__main__":
    cli()
