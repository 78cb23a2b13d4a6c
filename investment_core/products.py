"""
Investment Product Catalog

Fixed-ticket products: every investment in a product places exactly the
product's amount and grows at its daily rate for its duration. Changing a
product never affects investments already placed in it; those keep the rate
they were created with.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .currency import Money, Currency, check_precision, parse_decimal
from .errors import NotFound, ValidationError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord

logger = logging.getLogger(__name__)


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class InvestmentProduct(StorageRecord):
    name: str
    amount: Money  # fixed ticket size
    duration_days: int
    growth_rate: Decimal  # daily percent
    risk: RiskLevel = RiskLevel.MEDIUM
    description: str = ""
    active: bool = True


UPDATABLE_FIELDS = {"name", "description", "risk", "amount", "duration_days", "growth_rate"}


class ProductCatalog:
    """Creates and maintains investment products"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 clock: Optional[Clock] = None, currency: Currency = Currency.USDT):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.currency = currency
        self.table_name = "products"

    def _validate_terms(self, amount: Decimal, duration_days: int, growth_rate: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Product amount must be positive")
        if duration_days <= 0:
            raise ValidationError("Product duration must be at least one day")
        if growth_rate <= 0:
            raise ValidationError("Daily growth rate must be positive")

    def _parse(self, value: Union[str, int, Decimal], field_name: str) -> Decimal:
        try:
            return parse_decimal(value, field_name)
        except ValueError as e:
            raise ValidationError(str(e))

    def _parse_amount(self, value: Union[str, int, Decimal]) -> Decimal:
        amount = self._parse(value, "amount")
        try:
            return check_precision(amount, self.currency)
        except ValueError as e:
            raise ValidationError(str(e))

    def _risk(self, value: Union[RiskLevel, str]) -> RiskLevel:
        try:
            return RiskLevel(value)
        except ValueError:
            raise ValidationError(f"Unknown risk level: {value}")

    def create_product(
        self,
        name: str,
        amount: Union[str, int, Decimal],
        duration_days: int,
        growth_rate: Union[str, int, Decimal],
        risk: Union[RiskLevel, str] = RiskLevel.MEDIUM,
        description: str = "",
    ) -> InvestmentProduct:
        """
        Create a new active product

        Args:
            name: Display name
            amount: Ticket size every investment places
            duration_days: Term in days
            growth_rate: Daily growth in percent of principal
            risk: Risk label shown to investors
            description: Free text
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Product name is required")
        amount = self._parse_amount(amount)
        growth_rate = self._parse(growth_rate, "growth_rate")
        self._validate_terms(amount, duration_days, growth_rate)

        now = self.clock.now()
        product = InvestmentProduct(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            amount=Money(amount, self.currency),
            duration_days=int(duration_days),
            growth_rate=growth_rate,
            risk=self._risk(risk),
            description=description,
        )

        with self.storage.atomic():
            self.storage.save_record(self.table_name, product)
            self.audit_trail.log_event(
                event_type=AuditEventType.PRODUCT_CREATED,
                entity_type="product",
                entity_id=product.id,
                metadata={
                    "name": name,
                    "amount": product.amount.amount,
                    "duration_days": product.duration_days,
                    "growth_rate": growth_rate,
                }
            )

        log_action(logger, "info", f"Product {name} created",
                   action="create_product", resource=f"product:{product.id}")
        return product

    def get_product(self, product_id: str) -> InvestmentProduct:
        product = self.storage.load_record(InvestmentProduct, self.table_name, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found")
        return product

    def list_products(self, include_inactive: bool = False) -> List[InvestmentProduct]:
        products = self.storage.load_all_records(InvestmentProduct, self.table_name)
        if not include_inactive:
            products = [p for p in products if p.active]
        products.sort(key=lambda p: p.amount.amount)
        return products

    def update_product(self, product_id: str, **changes: Any) -> InvestmentProduct:
        """Change product terms; existing investments keep their snapshot"""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update product fields: {', '.join(sorted(unknown))}")

        with self.storage.atomic():
            product = self.get_product(product_id)
            recorded: Dict[str, Any] = {}

            if "name" in changes:
                product.name = (changes["name"] or "").strip()
                if not product.name:
                    raise ValidationError("Product name is required")
            if "description" in changes:
                product.description = changes["description"] or ""
            if "risk" in changes:
                product.risk = self._risk(changes["risk"])
            if "amount" in changes:
                product.amount = Money(self._parse_amount(changes["amount"]), self.currency)
            if "duration_days" in changes:
                product.duration_days = int(changes["duration_days"])
            if "growth_rate" in changes:
                product.growth_rate = self._parse(changes["growth_rate"], "growth_rate")
            self._validate_terms(product.amount.amount, product.duration_days, product.growth_rate)

            for key in changes:
                recorded[key] = getattr(product, key)

            product.updated_at = self.clock.now()
            self.storage.save_record(self.table_name, product)
            self.audit_trail.log_event(
                event_type=AuditEventType.PRODUCT_UPDATED,
                entity_type="product",
                entity_id=product.id,
                metadata={"changes": recorded}
            )

        log_action(logger, "info", f"Product {product.name} updated",
                   action="update_product", resource=f"product:{product.id}",
                   extra={"fields": sorted(changes)})
        return product

    def deactivate_product(self, product_id: str) -> InvestmentProduct:
        """Stop offering a product; existing investments are unaffected"""
        with self.storage.atomic():
            product = self.get_product(product_id)
            if not product.active:
                return product
            product.active = False
            product.updated_at = self.clock.now()
            self.storage.save_record(self.table_name, product)
            self.audit_trail.log_event(
                event_type=AuditEventType.PRODUCT_DEACTIVATED,
                entity_type="product",
                entity_id=product.id,
                metadata={"name": product.name}
            )

        log_action(logger, "info", f"Product {product.name} deactivated",
                   action="deactivate_product", resource=f"product:{product.id}")
        return product
