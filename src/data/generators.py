"""
Synthetic Data Generator

Generates Contoso-style source tables for development and testing.
Includes:
- Customers with country, age and names
- Sale lines with repeat purchases, multi-line orders and churn
"""

from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import polars as pl
import structlog
from faker import Faker

from src.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# CONFIGURATION
# =============================================================================

# (country, locale, exchange rate to USD, weight)
COUNTRIES = [
    ("United States", "en_US", 1.0, 0.45),
    ("United Kingdom", "en_GB", 1.27, 0.10),
    ("Germany", "de_DE", 1.09, 0.10),
    ("France", "fr_FR", 1.09, 0.07),
    ("Italy", "it_IT", 1.09, 0.06),
    ("Netherlands", "nl_NL", 1.09, 0.05),
    ("Canada", "en_CA", 0.74, 0.10),
    ("Australia", "en_AU", 0.66, 0.07),
]

DEFAULT_START = date(2015, 1, 1)
DEFAULT_END = date(2024, 4, 20)


# =============================================================================
# GENERATORS
# =============================================================================

class CustomerGenerator:
    """Generate customer records"""

    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)
        self.fakers = {locale: Faker(locale) for _, locale, _, _ in COUNTRIES}
        for i, faker in enumerate(self.fakers.values()):
            faker.seed_instance(seed + i)

    def generate(self, n: int = 1000) -> pl.DataFrame:
        """Generate n customers"""
        weights = np.array([w for *_, w in COUNTRIES])
        picks = self.rng.choice(len(COUNTRIES), size=n, p=weights / weights.sum())

        rows = []
        for key, idx in enumerate(picks, start=1):
            country, locale, _, _ = COUNTRIES[idx]
            faker = self.fakers[locale]
            rows.append({
                "customerkey": key,
                "countryfull": country,
                "age": int(self.rng.integers(18, 90)),
                "givenname": faker.first_name(),
                "surname": faker.last_name(),
            })

        return pl.DataFrame(rows)


class SalesGenerator:
    """
    Generate sale lines for a customer base.

    Each customer is acquired on a random date, stays active for an
    exponentially distributed lifetime and places a geometric number of
    orders inside it. Orders have one to four lines.
    """

    def __init__(
        self,
        customers_df: pl.DataFrame,
        start: date = DEFAULT_START,
        end: date = DEFAULT_END,
        mean_lifetime_days: float = 540.0,
        repeat_probability: float = 0.6,
        seed: int = 42,
    ):
        if end <= start:
            raise ValueError("end must be after start")
        self.customers = customers_df
        self.start = start
        self.end = end
        self.mean_lifetime_days = mean_lifetime_days
        self.repeat_probability = repeat_probability
        self.rng = np.random.default_rng(seed)
        self.rates = {country: rate for country, _, rate, _ in COUNTRIES}

    def _order_dates(self) -> list:
        span = (self.end - self.start).days
        first = self.start + timedelta(days=int(self.rng.integers(0, span + 1)))
        lifetime = int(self.rng.exponential(self.mean_lifetime_days))
        last_possible = min(self.end, first + timedelta(days=lifetime))

        n_orders = int(self.rng.geometric(1 - self.repeat_probability))
        window = (last_possible - first).days
        dates = [first]
        if window > 0:
            offsets = self.rng.integers(0, window + 1, size=n_orders - 1)
            dates.extend(first + timedelta(days=int(o)) for o in offsets)
        return sorted(dates)

    def generate(self) -> pl.DataFrame:
        """Generate sale lines for every customer"""
        rows = []
        orderkey = 1000

        for customer in self.customers.iter_rows(named=True):
            rate = self.rates.get(customer["countryfull"], 1.0)
            for orderdate in self._order_dates():
                orderkey += 1
                for linenumber in range(int(self.rng.integers(1, 5))):
                    rows.append({
                        "orderkey": orderkey,
                        "linenumber": linenumber,
                        "customerkey": customer["customerkey"],
                        "orderdate": orderdate,
                        "quantity": int(self.rng.integers(1, 6)),
                        "netprice": round(float(self.rng.lognormal(4.5, 1.0)), 2),
                        "exchangerate": rate,
                    })

        return pl.DataFrame(rows).sort(["orderdate", "orderkey", "linenumber"])


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class DataGenerator:
    """Main data generator orchestrator"""

    def __init__(self, output_dir: Optional[str] = None, seed: int = 42):
        self.output_dir = Path(output_dir or settings.data_lake.raw_path)
        self.seed = seed

    def generate_all(
        self,
        n_customers: int = 1000,
        start: date = DEFAULT_START,
        end: date = DEFAULT_END,
        save: bool = True,
    ) -> Dict[str, pl.DataFrame]:
        """Generate the customer and sales tables"""
        logger.info("Generating synthetic Contoso data", customers=n_customers, seed=self.seed)

        customers_df = CustomerGenerator(seed=self.seed).generate(n_customers)
        sales_df = SalesGenerator(customers_df, start=start, end=end, seed=self.seed).generate()

        data = {
            "customer": customers_df,
            "sales": sales_df,
        }

        if save:
            self._save_data(data)

        logger.info("Data generation complete", customers=len(customers_df), sales=len(sales_df))
        return data

    def _save_data(self, data: Dict[str, pl.DataFrame]) -> None:
        """Save generated data as CSV and Parquet"""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for name, df in data.items():
            csv_path = self.output_dir / f"{name}.csv"
            df.write_csv(csv_path)
            df.write_parquet(self.output_dir / f"{name}.parquet")
            logger.info(f"Saved {name}: {len(df)} rows -> {csv_path}")
