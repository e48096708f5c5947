#!/usr/bin/env python3
"""Initialize a storefront data directory.

Creates an empty JSON array file for every collection that is missing
and, with ``--seed``, fills an empty product catalog with the sample
coffee-shop products.

Usage:

  python scripts/seed_store.py --data-dir ./data --seed
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from storefront import StoreConfig, create_storefront


async def _run(data_dir: str, seed: bool) -> None:
    shop = await create_storefront(StoreConfig(data_dir=data_dir), seed=seed)
    products = await shop.catalog.list_products()
    print(f"Data directory: {data_dir}")
    print(f"Products:       {len(products)}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--data-dir", default="data", help="collection directory")
    parser.add_argument("--seed", action="store_true", help="add sample products")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(_run(args.data_dir, args.seed))


if __name__ == "__main__":
    main()
