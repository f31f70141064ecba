from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
import math
import random
from typing import List, Optional, Sequence

import pandas as pd

from retail_star_schema.foundation.sales_fact import RAW_COLUMNS


@dataclass(frozen=True)
class Customer:
    customer_id: str
    country: str
    acquisition_date: date


@dataclass(frozen=True)
class RawTransaction:
    """One line of an Online-Retail-shaped export (canonical column names)."""

    invoice_id: str
    customer_id: Optional[str]
    product_name: str
    invoice_ts: str
    quantity: int
    unit_price: float
    country: str


@dataclass(frozen=True)
class ScenarioConfig:
    """Configuration for the synthetic export.

    Attributes
    ----------
    churn_hazard: Baseline monthly churn probability for existing customers.
    base_orders_per_month: Average invoices per active customer per month.
    mean_unit_price: Average item price used to sample line items.
    price_variability: Coefficient in (0, 1] controlling price variance.
    quantity_mean: Average quantity per invoice line.
    return_rate: Probability that a sold line is later partially returned.
    excess_return_rate: Probability that a return exceeds what was bought.
    invalid_row_rate: Probability of emitting a zero-price or anonymous line.
    timestamp_format: strftime format of ``invoice_ts``.
    seed: Optional RNG seed for reproducibility.
    """

    churn_hazard: float = 0.08
    base_orders_per_month: float = 1.2
    mean_unit_price: float = 3.5
    price_variability: float = 0.6
    quantity_mean: float = 6.0
    return_rate: float = 0.05
    excess_return_rate: float = 0.01
    invalid_row_rate: float = 0.02
    timestamp_format: str = "%m/%d/%Y %H:%M"
    seed: Optional[int] = None


DEFAULT_COUNTRIES: tuple[str, ...] = (
    "United Kingdom",
    "United Kingdom",
    "United Kingdom",
    "Germany",
    "France",
    "EIRE",
    "Spain",
    "Malta",
)

DEFAULT_CATALOG: tuple[str, ...] = (
    "WHITE HANGING HEART T-LIGHT HOLDER",
    "REGENCY CAKESTAND 3 TIER",
    "JUMBO BAG RED RETROSPOT",
    "PARTY BUNTING",
    "LUNCH BAG RED RETROSPOT",
    "ASSORTED COLOUR BIRD ORNAMENT",
    "SET OF 3 CAKE TINS PANTRY DESIGN",
    "PACK OF 72 RETROSPOT CAKE CASES",
    "NATURAL SLATE HEART CHALKBOARD",
    "HEART OF WICKER SMALL",
)


def _month_range(start: date, end: date) -> List[date]:
    cur = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    out: List[date] = []
    while cur <= last:
        out.append(cur)
        if cur.month == 12:
            cur = date(cur.year + 1, 1, 1)
        else:
            cur = date(cur.year, cur.month + 1, 1)
    return out


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    countries: Optional[Sequence[str]] = None,
    seed: Optional[int] = None,
) -> List[Customer]:
    """Generate ``n`` customers with acquisition dates uniformly between start/end."""

    if n <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")
    rng = random.Random(seed)
    pool = list(countries) if countries else list(DEFAULT_COUNTRIES)
    total_days = (end - start).days + 1

    customers: List[Customer] = []
    for i in range(n):
        offset = rng.randrange(total_days)
        customers.append(
            Customer(
                customer_id=str(12346 + i),
                country=rng.choice(pool),
                acquisition_date=start + timedelta(days=offset),
            )
        )
    return customers


def _orders_for_customer_month(rng: random.Random, lam: float) -> int:
    # Poisson-like draw via Knuth's algorithm approximation for small lambdas
    if lam <= 0:
        return 0
    L = math.exp(-lam)
    k = 0
    p = 1.0
    while p > L:
        k += 1
        p *= rng.random()
    return max(0, k - 1)


def _sample_price(rng: random.Random, mean: float, variability: float) -> float:
    variability = min(max(variability, 0.01), 1.0)
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return round(max(price, 0.01), 2)


def _sample_quantity(rng: random.Random, mean_q: float) -> int:
    q = max(1.0, rng.lognormvariate(mu=math.log(max(mean_q, 0.1)), sigma=0.5))
    return max(1, int(round(q)))


def generate_transactions(
    customers: Sequence[Customer],
    start: date,
    end: date,
    *,
    scenario: Optional[ScenarioConfig] = None,
    catalog: Optional[Sequence[str]] = None,
) -> List[RawTransaction]:
    """Generate raw export lines for customers between ``start`` and ``end``.

    Besides ordinary sales the generator emits the data-quality cases the
    fact builder has to deal with:
    - partial returns on a later credit-note invoice (``C`` prefix)
    - returns larger than the quantity bought
    - lines with a zero unit price or no customer id
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or ScenarioConfig()
    rng = random.Random(scenario.seed)
    product_catalog = list(catalog) if catalog else list(DEFAULT_CATALOG)

    transactions: List[RawTransaction] = []
    invoice_seq = 536365
    active = {c.customer_id: c for c in customers if c.acquisition_date <= end}

    def stamp(ts: datetime) -> str:
        return ts.strftime(scenario.timestamp_format)

    for month_start in _month_range(start, end):
        month_end = (
            date(month_start.year + 1, 1, 1)
            if month_start.month == 12
            else date(month_start.year, month_start.month + 1, 1)
        )

        if scenario.churn_hazard > 0:
            to_remove = [
                cid
                for cid, cust in active.items()
                if cust.acquisition_date < month_start
                and rng.random() < scenario.churn_hazard
            ]
            for cid in to_remove:
                active.pop(cid, None)

        for cust in list(active.values()):
            if cust.acquisition_date >= month_end:
                continue
            first_day = max(cust.acquisition_date, month_start)
            days_available = (min(month_end, end + timedelta(days=1)) - first_day).days
            if days_available <= 0:
                continue

            num_orders = _orders_for_customer_month(rng, scenario.base_orders_per_month)
            if cust.acquisition_date >= month_start:
                # Acquisition month always has the first purchase.
                num_orders = max(1, num_orders)

            for _ in range(num_orders):
                day = first_day + timedelta(days=rng.randrange(days_available))
                ts = datetime(
                    day.year,
                    day.month,
                    day.day,
                    8 + rng.randrange(0, 10),
                    rng.randrange(0, 60),
                )
                invoice_id = str(invoice_seq)
                invoice_seq += 1

                for _line in range(1 + rng.randrange(4)):
                    product = rng.choice(product_catalog)
                    quantity = _sample_quantity(rng, scenario.quantity_mean)
                    price = _sample_price(
                        rng, scenario.mean_unit_price, scenario.price_variability
                    )
                    transactions.append(
                        RawTransaction(
                            invoice_id=invoice_id,
                            customer_id=cust.customer_id,
                            product_name=product,
                            invoice_ts=stamp(ts),
                            quantity=quantity,
                            unit_price=price,
                            country=cust.country,
                        )
                    )

                    roll = rng.random()
                    if roll < scenario.excess_return_rate + scenario.return_rate:
                        if roll < scenario.excess_return_rate:
                            returned = quantity + 1 + rng.randrange(5)
                        else:
                            returned = 1 + rng.randrange(quantity)
                        credit_ts = ts + timedelta(days=1 + rng.randrange(14))
                        transactions.append(
                            RawTransaction(
                                invoice_id=f"C{invoice_seq}",
                                customer_id=cust.customer_id,
                                product_name=product,
                                invoice_ts=stamp(credit_ts),
                                quantity=-returned,
                                unit_price=price,
                                country=cust.country,
                            )
                        )
                        invoice_seq += 1

                    if rng.random() < scenario.invalid_row_rate:
                        anonymous = rng.random() < 0.5
                        transactions.append(
                            RawTransaction(
                                invoice_id=invoice_id,
                                customer_id=None if anonymous else cust.customer_id,
                                product_name=product,
                                invoice_ts=stamp(ts),
                                quantity=quantity,
                                unit_price=price if anonymous else 0.0,
                                country=cust.country,
                            )
                        )

    transactions.sort(key=lambda t: (t.invoice_id.lstrip("C"), t.invoice_id))
    return transactions


def transactions_to_frame(transactions: Sequence[RawTransaction]) -> pd.DataFrame:
    """Convert generated lines to a DataFrame with canonical raw columns."""
    if not transactions:
        return pd.DataFrame(columns=RAW_COLUMNS)
    return pd.DataFrame([asdict(t) for t in transactions])[RAW_COLUMNS]
