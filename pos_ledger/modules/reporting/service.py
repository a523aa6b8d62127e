from __future__ import annotations

import sqlite3
from typing import Optional

from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.reporting_repo import ReportingRepo
from ...utils.loggers import get_logger
from . import aggregations as agg

_log = get_logger()


class ReportingService:
    """
    Wires ReportingRepo reads to the pure aggregations. Dates are inclusive
    ISO 'YYYY-MM-DD'; None leaves that side of the range open.
    """

    def __init__(self, conn: sqlite3.Connection, integer_currency: bool = False) -> None:
        self.repo = ReportingRepo(conn)
        self.products = ProductsRepo(conn)
        self.integer_currency = integer_currency

    def product_performance(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[agg.ProductPerformance]:
        sales = self.repo.transactions_between(date_from, date_to)
        return agg.product_performance(
            sales, self.repo.catalog_items(), integer_currency=self.integer_currency
        )

    def customer_metrics(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> dict[int, agg.CustomerMetrics]:
        sales = self.repo.transactions_between(date_from, date_to, customer_id)
        return agg.customer_metrics(sales, integer_currency=self.integer_currency)

    def sales_summary(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> agg.SalesSummary:
        sales = self.repo.transactions_between(date_from, date_to)
        summary = agg.sales_summary(sales, integer_currency=self.integer_currency)
        for w in summary.warnings:
            _log.warning("%s: %s", w.code, w.message)
        return summary

    def low_stock(self) -> list:
        return agg.low_stock(self.products.list_products())
