"""
Contoso-style Dataset Generator
Writes customer and sales tables to the raw zone for local runs.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config.logging import configure_logging  # noqa: E402
from src.data.generators import DataGenerator  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic Contoso dataset")
    parser.add_argument("--customers", type=int, default=10000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output-dir", default=None)
    args = parser.parse_args()

    configure_logging(log_format="text")

    print("=" * 60)
    print("Contoso Dataset Generator")
    print("=" * 60 + "\n")

    generator = DataGenerator(output_dir=args.output_dir, seed=args.seed)
    data = generator.generate_all(n_customers=args.customers)

    print("\n" + "=" * 60)
    print("Dataset Generation Complete!")
    print("=" * 60)
    print(f"\nOutput: {generator.output_dir}\n")

    for name, df in data.items():
        print(f"   {name}: {len(df):,} rows")


if __name__ == "__main__":
    main()
