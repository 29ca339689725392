"""Sales analytics engine computing revenue, check and order-distribution statistics."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pytz
from dateutil.parser import isoparse

from . import statistics
from .cancellation import CancellationToken
from .ledger import Order, OrderLedger

LOGGER = logging.getLogger(__name__)

METRIC_ORDER_TOTAL = "order_total"
METRIC_CUSTOMER_SPENDING = "customer_spending"

CALENDAR_DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
PERCENTILE_PATTERN = re.compile(r"^[+-]?[0-9]+$")


# ---------------------------------------------------------------------------
# Helper utilities
# ---------------------------------------------------------------------------


class InvalidRange(ValueError):
    """Raised when a date range is malformed or starts after it ends."""


class InvalidPercentile(ValueError):
    """Raised when a percentile is not an integer between 0 and 100."""


def _serialise_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float):
        return round(value, 2)
    if isinstance(value, (list, tuple)):
        return [_serialise_value(entry) for entry in value]
    return value


def _safe_timezone(tz_name: str) -> Optional[timezone]:
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOGGER.warning("Unknown report timezone %s; falling back to UTC", tz_name)
        return None
    now = datetime.now(tz)
    return now.tzinfo


def _checkpoint(cancellation: Optional[CancellationToken], operation: str) -> None:
    if cancellation is not None:
        cancellation.raise_if_cancelled(operation)


def parse_calendar_date(value: Any, name: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string into a :class:`date`."""
    text = str(value or "").strip()
    if not CALENDAR_DATE_PATTERN.match(text):
        raise InvalidRange(f"invalid {name} date format, use YYYY-MM-DD")
    try:
        return isoparse(text).date()
    except ValueError:
        raise InvalidRange(f"invalid {name} date format, use YYYY-MM-DD")


def parse_percentile(value: Any) -> int:
    """Parse a decimal integer percentile such as ``"75"`` or ``"+5"``."""
    text = str(value or "").strip()
    if not PERCENTILE_PATTERN.match(text):
        raise InvalidPercentile("invalid percentile, must be between 0 and 100")
    return validate_percentile(int(text))


def validate_percentile(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPercentile(f"percentile must be an integer, got {value!r}")
    if value < 0 or value > 100:
        raise InvalidPercentile("invalid percentile, must be between 0 and 100")
    return value


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        for bound in (self.start, self.end):
            if isinstance(bound, datetime) or not isinstance(bound, date):
                raise InvalidRange(f"range bounds must be calendar dates, got {bound!r}")
        if self.start > self.end:
            raise InvalidRange(
                f"start date {self.start.isoformat()} is after end date {self.end.isoformat()}"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def iter_days(self) -> Iterator[date]:
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)


@dataclass(frozen=True)
class PeriodSummary:
    start: date
    end: date
    total_revenue: float
    order_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": _serialise_value(self.start),
            "end_date": _serialise_value(self.end),
            "total_revenue": _serialise_value(self.total_revenue),
            "order_count": self.order_count,
        }


@dataclass(frozen=True)
class DailyOrders:
    date: date
    order_count: int
    total_amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": _serialise_value(self.date),
            "order_count": self.order_count,
            "total_amount": _serialise_value(self.total_amount),
        }


@dataclass(frozen=True)
class AverageCheckStats:
    start: date
    end: date
    average_check: float
    min_check: float
    max_check: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": _serialise_value(self.start),
            "end_date": _serialise_value(self.end),
            "average_check": _serialise_value(self.average_check),
            "min_check": _serialise_value(self.min_check),
            "max_check": _serialise_value(self.max_check),
        }


@dataclass(frozen=True)
class MedianStats:
    metric: str
    value: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "median": _serialise_value(self.value),
            "sample_size": self.sample_size,
        }


@dataclass(frozen=True)
class PercentileStats:
    metric: str
    percentile: int
    value: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "percentile": self.percentile,
            "value": _serialise_value(self.value),
            "sample_size": self.sample_size,
        }


@dataclass(frozen=True)
class SalesReport:
    period: PeriodSummary
    daily_stats: List[DailyOrders]
    average_check: AverageCheckStats
    median: MedianStats
    percentile_75: PercentileStats
    percentile_95: PercentileStats
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "daily_stats": [entry.to_dict() for entry in self.daily_stats],
            "average_check": self.average_check.to_dict(),
            "median": self.median.to_dict(),
            "percentile_75": self.percentile_75.to_dict(),
            "percentile_95": self.percentile_95.to_dict(),
            "generated_at": _serialise_value(self.generated_at),
        }


# ---------------------------------------------------------------------------
# Analytics engine
# ---------------------------------------------------------------------------


class SalesAnalytics:
    """Computes sales statistics from an injected :class:`OrderLedger`.

    The engine keeps no state between calls: every operation re-reads the
    ledger, so results always reflect the snapshot current at query time.
    Every operation accepts an optional :class:`CancellationToken` which is
    checked before each ledger query.
    """

    def __init__(self, ledger: OrderLedger, *, timezone_name: str = "UTC") -> None:
        self._ledger = ledger
        self._timezone_name = timezone_name

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    def revenue_summary(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> PeriodSummary:
        period = DateRange(start, end)
        orders = self._orders_in_range(period, cancellation)
        total_revenue = sum(order.total_amount for order in orders)
        return PeriodSummary(
            start=period.start,
            end=period.end,
            total_revenue=float(total_revenue),
            order_count=len(orders),
        )

    def average_check(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> AverageCheckStats:
        """Mean, minimum and maximum order total in the range.

        A range without orders reports ``0.0`` for all three figures.
        """
        period = DateRange(start, end)
        amounts = [order.total_amount for order in self._orders_in_range(period, cancellation)]
        if not amounts:
            return AverageCheckStats(period.start, period.end, 0.0, 0.0, 0.0)
        return AverageCheckStats(
            start=period.start,
            end=period.end,
            average_check=sum(amounts) / len(amounts),
            min_check=min(amounts),
            max_check=max(amounts),
        )

    # ------------------------------------------------------------------
    # Order-set statistics
    # ------------------------------------------------------------------
    def daily_order_counts(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[DailyOrders]:
        period = DateRange(start, end)
        daily: List[DailyOrders] = []
        for day in period.iter_days():
            _checkpoint(cancellation, "daily_order_counts")
            orders = self._ledger.orders_on_date(day)
            daily.append(
                DailyOrders(
                    date=day,
                    order_count=len(orders),
                    total_amount=float(sum(order.total_amount for order in orders)),
                )
            )
        return daily

    def orders_median(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> MedianStats:
        sample = self._order_totals(DateRange(start, end), cancellation)
        return MedianStats(METRIC_ORDER_TOTAL, statistics.median(sample), len(sample))

    def customer_spending_median(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> MedianStats:
        sample = self._customer_spend(DateRange(start, end), cancellation)
        return MedianStats(METRIC_CUSTOMER_SPENDING, statistics.median(sample), len(sample))

    def orders_percentile(
        self,
        start: date,
        end: date,
        percentile: int,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> PercentileStats:
        rank = validate_percentile(percentile)
        sample = self._order_totals(DateRange(start, end), cancellation)
        return PercentileStats(
            METRIC_ORDER_TOTAL, rank, statistics.percentile(sample, rank), len(sample)
        )

    def customer_spending_percentile(
        self,
        start: date,
        end: date,
        percentile: int,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> PercentileStats:
        rank = validate_percentile(percentile)
        sample = self._customer_spend(DateRange(start, end), cancellation)
        return PercentileStats(
            METRIC_CUSTOMER_SPENDING, rank, statistics.percentile(sample, rank), len(sample)
        )

    # ------------------------------------------------------------------
    # Composite report
    # ------------------------------------------------------------------
    def generate_report(
        self,
        start: date,
        end: date,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> SalesReport:
        """Assemble the full sales report for ``start``..``end``.

        The first failing sub-computation aborts the report and its exception
        propagates unchanged; a returned report is always complete. The
        sub-computations read the ledger separately, so a report is not a
        point-in-time snapshot when orders are written concurrently.
        """
        period = DateRange(start, end)
        LOGGER.info(
            "Generating sales report for %s..%s", period.start.isoformat(), period.end.isoformat()
        )
        summary = self.revenue_summary(period.start, period.end, cancellation=cancellation)
        daily_stats = self.daily_order_counts(period.start, period.end, cancellation=cancellation)
        average_check = self.average_check(period.start, period.end, cancellation=cancellation)
        median = self.orders_median(period.start, period.end, cancellation=cancellation)
        percentile_75 = self.orders_percentile(
            period.start, period.end, 75, cancellation=cancellation
        )
        percentile_95 = self.orders_percentile(
            period.start, period.end, 95, cancellation=cancellation
        )
        tzinfo = _safe_timezone(self._timezone_name)
        return SalesReport(
            period=summary,
            daily_stats=daily_stats,
            average_check=average_check,
            median=median,
            percentile_75=percentile_75,
            percentile_95=percentile_95,
            generated_at=datetime.now(tzinfo or timezone.utc),
        )

    # ------------------------------------------------------------------
    # Sample helpers
    # ------------------------------------------------------------------
    def _orders_in_range(
        self, period: DateRange, cancellation: Optional[CancellationToken]
    ) -> Sequence[Order]:
        _checkpoint(cancellation, "orders_in_range")
        return self._ledger.orders_in_range(period.start, period.end)

    def _order_totals(
        self, period: DateRange, cancellation: Optional[CancellationToken]
    ) -> List[float]:
        return statistics.sorted_sample(
            order.total_amount for order in self._orders_in_range(period, cancellation)
        )

    def _customer_spend(
        self, period: DateRange, cancellation: Optional[CancellationToken]
    ) -> List[float]:
        _checkpoint(cancellation, "customer_spend_in_range")
        spend = self._ledger.customer_spend_in_range(period.start, period.end)
        return statistics.sorted_sample(spend.values())
